"""
BackgroundJob entity - one unit of work dispatched through a queue.

State machine:
    PENDING -> ACTIVE -> COMPLETED
                      -> DELAYED  (failed, attempts left; waits for next_retry_at)
                      -> FAILED   (failed, attempts exhausted)
    DELAYED -> PENDING (retry) or ACTIVE (re-dispatched)
    ACTIVE/DELAYED <-> PAUSED (manual)

Transition methods return True when they changed the job and False when the
call was an allowed no-op (e.g. a second start()). They never do I/O.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from uuid import uuid4

from reportflow.lib.clock import ensure_utc, utc_now
from reportflow.lib.errors import ValidationError
from reportflow.lib.policy import get_retry_policy
from reportflow.models.job_priority import JobPriority
from reportflow.models.job_status import JobStatus


@dataclass
class JobResult:
    """Outcome of the most recent attempt."""
    
    success: bool
    data: Any = None
    error: Optional[str] = None


class BackgroundJob:
    """
    Background job with its own retry budget and timing.
    
    Delay and timeout are in milliseconds.
    """
    
    def __init__(
        self,
        id: str,
        name: str,
        queue_name: str,
        data: Optional[Dict[str, Any]] = None,
        priority: JobPriority = JobPriority.NORMAL,
        status: JobStatus = JobStatus.PENDING,
        max_attempts: int = 3,
        attempts: int = 0,
        delay: Optional[int] = None,
        timeout: Optional[int] = None,
        created_at: Optional[datetime] = None,
        run_at: Optional[datetime] = None,
    ):
        self._id = id
        self._name = name
        self._queue_name = queue_name
        self._data: Dict[str, Any] = dict(data or {})
        self._priority = JobPriority.parse(priority)
        self._status = status
        self._result: Optional[JobResult] = None
        self._error_message: Optional[str] = None
        self._progress = 0
        self._attempts = attempts
        self._max_attempts = max_attempts
        self._delay = delay
        self._timeout = timeout
        
        now = ensure_utc(created_at) if created_at else utc_now()
        self._created_at = now
        self._updated_at = now
        self._run_at = run_at
        self._started_at: Optional[datetime] = None
        self._completed_at: Optional[datetime] = None
        self._failed_at: Optional[datetime] = None
        self._next_retry_at: Optional[datetime] = None
    
    @classmethod
    def create(
        cls,
        name: str,
        queue_name: str,
        data: Optional[Dict[str, Any]] = None,
        priority: JobPriority = JobPriority.NORMAL,
        max_attempts: int = 3,
        delay: Optional[int] = None,
        timeout: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> "BackgroundJob":
        """
        Create a new PENDING job.
        
        A positive delay holds the job back: it becomes ready at
        created_at + delay.
        
        Raises:
            ValidationError: empty name/queue, attempts < 1, negative delay/timeout
        """
        if not name or not name.strip():
            raise ValidationError("name", "Job name is required")
        if not queue_name or not queue_name.strip():
            raise ValidationError("queue_name", "Queue name is required")
        if max_attempts < 1:
            raise ValidationError("max_attempts", "Max attempts must be at least 1")
        if delay is not None and delay < 0:
            raise ValidationError("delay", "Delay cannot be negative")
        if timeout is not None and timeout < 0:
            raise ValidationError("timeout", "Timeout cannot be negative")
        
        created_at = ensure_utc(now) if now else utc_now()
        run_at = created_at + timedelta(milliseconds=delay) if delay else None
        return cls(
            id=str(uuid4()),
            name=name.strip(),
            queue_name=queue_name,
            data=data,
            priority=priority,
            max_attempts=max_attempts,
            delay=delay,
            timeout=timeout,
            created_at=created_at,
            run_at=run_at,
        )
    
    # Getters
    @property
    def id(self) -> str:
        return self._id
    
    @property
    def name(self) -> str:
        return self._name
    
    @property
    def queue_name(self) -> str:
        return self._queue_name
    
    @property
    def data(self) -> Dict[str, Any]:
        return dict(self._data)
    
    @property
    def priority(self) -> JobPriority:
        return self._priority
    
    @property
    def status(self) -> JobStatus:
        return self._status
    
    @property
    def result(self) -> Optional[JobResult]:
        return self._result
    
    @property
    def error_message(self) -> Optional[str]:
        return self._error_message
    
    @property
    def progress(self) -> int:
        return self._progress
    
    @property
    def attempts(self) -> int:
        return self._attempts
    
    @property
    def max_attempts(self) -> int:
        return self._max_attempts
    
    @property
    def delay(self) -> Optional[int]:
        return self._delay
    
    @property
    def timeout(self) -> Optional[int]:
        return self._timeout
    
    @property
    def created_at(self) -> datetime:
        return self._created_at
    
    @property
    def updated_at(self) -> datetime:
        return self._updated_at
    
    @property
    def run_at(self) -> Optional[datetime]:
        return self._run_at
    
    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at
    
    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at
    
    @property
    def failed_at(self) -> Optional[datetime]:
        return self._failed_at
    
    @property
    def next_retry_at(self) -> Optional[datetime]:
        return self._next_retry_at
    
    # Transitions
    def start(self, now: Optional[datetime] = None) -> bool:
        """
        Begin an attempt.
        
        Only PENDING and DELAYED jobs start. Otherwise this is a no-op
        (ACTIVE, terminal, or out of attempts); a PAUSED job goes back
        through resume() first.
        """
        if self._status not in (JobStatus.PENDING, JobStatus.DELAYED):
            return False
        if self._attempts >= self._max_attempts:
            return False
        
        now = self._now(now)
        self._status = JobStatus.ACTIVE
        self._started_at = now
        self._attempts += 1
        self._next_retry_at = None
        self._updated_at = now
        return True
    
    def complete(self, result: Any = None, now: Optional[datetime] = None) -> bool:
        """Finish the current attempt successfully. No-op unless ACTIVE."""
        if self._status != JobStatus.ACTIVE:
            return False
        
        now = self._now(now)
        self._status = JobStatus.COMPLETED
        self._completed_at = now
        self._progress = 100
        self._result = JobResult(success=True, data=result)
        self._error_message = None
        self._next_retry_at = None
        self._updated_at = now
        return True
    
    def fail(self, error: str, now: Optional[datetime] = None) -> bool:
        """
        Record a failed attempt. No-op unless ACTIVE.
        
        With attempts left the job goes to DELAYED and next_retry_at is set
        to failed_at + base * 2^(attempts-1), where base is the job's delay
        or the policy default (5000 ms). Otherwise the job is FAILED for good.
        """
        if self._status != JobStatus.ACTIVE:
            return False
        
        now = self._now(now)
        self._failed_at = now
        self._error_message = error
        self._result = JobResult(success=False, error=error)
        self._updated_at = now
        
        if self.can_retry():
            self._status = JobStatus.DELAYED
            self._next_retry_at = now + timedelta(milliseconds=self.backoff_ms())
        else:
            self._status = JobStatus.FAILED
            self._next_retry_at = None
        return True
    
    def retry(self, now: Optional[datetime] = None) -> bool:
        """Move a FAILED or DELAYED job back to PENDING. Attempts are kept."""
        if self._status not in (JobStatus.FAILED, JobStatus.DELAYED):
            return False
        
        self._status = JobStatus.PENDING
        self._error_message = None
        self._next_retry_at = None
        self._run_at = None
        self._updated_at = self._now(now)
        return True
    
    def update_progress(self, progress: float, now: Optional[datetime] = None) -> bool:
        """Set progress clamped to [0, 100]. Ignored once terminal."""
        if self._status.is_terminal:
            return False
        self._progress = int(max(0, min(100, progress)))
        self._updated_at = self._now(now)
        return True
    
    def pause(self, now: Optional[datetime] = None) -> bool:
        if self._status not in (JobStatus.ACTIVE, JobStatus.DELAYED):
            return False
        self._status = JobStatus.PAUSED
        self._updated_at = self._now(now)
        return True
    
    def resume(self, now: Optional[datetime] = None) -> bool:
        if self._status != JobStatus.PAUSED:
            return False
        self._status = JobStatus.ACTIVE
        self._updated_at = self._now(now)
        return True
    
    # Queries
    def can_retry(self) -> bool:
        return self._attempts < self._max_attempts
    
    def backoff_ms(self) -> int:
        """Delay before the next retry given the attempts made so far."""
        base = self._delay or get_retry_policy().default_backoff_ms
        exponent = max(self._attempts - 1, 0)
        return base * (2 ** exponent)
    
    def is_ready(self, now: datetime) -> bool:
        """PENDING and past any initial delay."""
        if self._status != JobStatus.PENDING:
            return False
        return self._run_at is None or self._run_at <= ensure_utc(now)
    
    def is_ready_for_retry(self, now: datetime) -> bool:
        """DELAYED and the backoff has elapsed."""
        return (
            self._status == JobStatus.DELAYED
            and self._next_retry_at is not None
            and self._next_retry_at <= ensure_utc(now)
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "name": self._name,
            "queue_name": self._queue_name,
            "priority": self._priority.name,
            "status": self._status.value,
            "data": self.data,
            "progress": self._progress,
            "attempts": self._attempts,
            "max_attempts": self._max_attempts,
            "error_message": self._error_message,
            "created_at": self._created_at,
            "started_at": self._started_at,
            "completed_at": self._completed_at,
            "failed_at": self._failed_at,
            "next_retry_at": self._next_retry_at,
        }
    
    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now else utc_now()
    
    def __repr__(self) -> str:
        return (
            f"<BackgroundJob(id={self._id}, queue={self._queue_name}, "
            f"status={self._status.value}, attempts={self._attempts}/{self._max_attempts})>"
        )
