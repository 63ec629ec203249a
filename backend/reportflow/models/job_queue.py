"""
JobQueue entity - a named lane with its own concurrency and retry policy.

The queue only stores the concurrency limit; the worker pool enforces it.
Counters are mutated exclusively by JobQueueService.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from reportflow.lib.clock import ensure_utc, utc_now
from reportflow.lib.errors import ValidationError
from reportflow.models.job_priority import JobPriority


class JobQueue:
    """Queue configuration plus aggregate job counters."""
    
    def __init__(
        self,
        name: str,
        description: Optional[str] = None,
        default_priority: JobPriority = JobPriority.NORMAL,
        concurrency: int = 1,
        max_retries: int = 3,
        default_timeout: Optional[int] = None,
        default_delay: Optional[int] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        if not name or not name.strip():
            raise ValidationError("name", "Queue name is required")
        
        self._id = id or str(uuid4())
        self._name = name.strip()
        self._description = description
        self._default_priority = JobPriority.parse(default_priority)
        self._concurrency = 1
        self._max_retries = 0
        self._default_timeout: Optional[int] = None
        self._default_delay: Optional[int] = None
        self._is_active = True
        self._is_paused = False
        self._job_count = 0
        self._completed_count = 0
        self._failed_count = 0
        
        now = ensure_utc(created_at) if created_at else utc_now()
        self._created_at = now
        self._updated_at = now
        
        self.set_concurrency(concurrency)
        self.set_max_retries(max_retries)
        self.set_default_timeout(default_timeout)
        self.set_default_delay(default_delay)
    
    # Getters
    @property
    def id(self) -> str:
        return self._id
    
    @property
    def name(self) -> str:
        return self._name
    
    @property
    def description(self) -> Optional[str]:
        return self._description
    
    @property
    def default_priority(self) -> JobPriority:
        return self._default_priority
    
    @property
    def concurrency(self) -> int:
        return self._concurrency
    
    @property
    def max_retries(self) -> int:
        return self._max_retries
    
    @property
    def default_timeout(self) -> Optional[int]:
        return self._default_timeout
    
    @property
    def default_delay(self) -> Optional[int]:
        return self._default_delay
    
    @property
    def is_active(self) -> bool:
        return self._is_active
    
    @property
    def is_paused(self) -> bool:
        return self._is_paused
    
    @property
    def job_count(self) -> int:
        return self._job_count
    
    @property
    def completed_count(self) -> int:
        return self._completed_count
    
    @property
    def failed_count(self) -> int:
        return self._failed_count
    
    @property
    def pending_count(self) -> int:
        return self._job_count - self._completed_count - self._failed_count
    
    @property
    def success_rate(self) -> float:
        """Completed share of finished jobs, in percent. 0 when nothing finished."""
        finished = self._completed_count + self._failed_count
        if finished == 0:
            return 0.0
        return self._completed_count / finished * 100
    
    @property
    def created_at(self) -> datetime:
        return self._created_at
    
    @property
    def updated_at(self) -> datetime:
        return self._updated_at
    
    @property
    def accepts_work(self) -> bool:
        """Workers may start jobs from this queue."""
        return self._is_active and not self._is_paused
    
    # Guarded setters
    def set_description(self, description: Optional[str]) -> None:
        self._description = description
        self._touch()
    
    def set_default_priority(self, priority: JobPriority) -> None:
        self._default_priority = JobPriority.parse(priority)
        self._touch()
    
    def set_concurrency(self, concurrency: int) -> None:
        if concurrency < 1:
            raise ValidationError("concurrency", "Concurrency must be at least 1")
        self._concurrency = concurrency
        self._touch()
    
    def set_max_retries(self, max_retries: int) -> None:
        if max_retries < 0:
            raise ValidationError("max_retries", "Max retries cannot be negative")
        self._max_retries = max_retries
        self._touch()
    
    def set_default_timeout(self, timeout: Optional[int]) -> None:
        if timeout is not None and timeout < 0:
            raise ValidationError("default_timeout", "Default timeout cannot be negative")
        self._default_timeout = timeout
        self._touch()
    
    def set_default_delay(self, delay: Optional[int]) -> None:
        if delay is not None and delay < 0:
            raise ValidationError("default_delay", "Default delay cannot be negative")
        self._default_delay = delay
        self._touch()
    
    # Flags
    def pause(self) -> None:
        self._is_paused = True
        self._touch()
    
    def resume(self) -> None:
        self._is_paused = False
        self._touch()
    
    def activate(self) -> None:
        self._is_active = True
        self._touch()
    
    def deactivate(self) -> None:
        self._is_active = False
        self._touch()
    
    # Counters
    def increment_job_count(self) -> None:
        self._job_count += 1
        self._touch()
    
    def increment_completed_count(self) -> None:
        self._completed_count += 1
        self._touch()
    
    def increment_failed_count(self) -> None:
        self._failed_count += 1
        self._touch()
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "name": self._name,
            "description": self._description,
            "default_priority": self._default_priority.name,
            "concurrency": self._concurrency,
            "max_retries": self._max_retries,
            "default_timeout": self._default_timeout,
            "default_delay": self._default_delay,
            "is_active": self._is_active,
            "is_paused": self._is_paused,
            "job_count": self._job_count,
            "completed_count": self._completed_count,
            "failed_count": self._failed_count,
            "pending_count": self.pending_count,
            "success_rate": self.success_rate,
        }
    
    def _touch(self) -> None:
        self._updated_at = utc_now()
    
    def __repr__(self) -> str:
        return f"<JobQueue(name={self._name}, active={self._is_active}, paused={self._is_paused})>"
