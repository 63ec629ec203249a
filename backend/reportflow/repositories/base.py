"""
Repository contracts the engine is written against.

Storage technology is a host concern; every method is a coroutine so an
implementation can sit on an async driver. Implementations must make each
single-entity save atomic; the entities themselves are not synchronized.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from reportflow.models.background_job import BackgroundJob
from reportflow.models.job_queue import JobQueue
from reportflow.models.job_status import JobStatus
from reportflow.models.report import Report
from reportflow.models.scheduled_report import ScheduledReport


class JobRepository(ABC):
    """Storage for BackgroundJob entities."""
    
    @abstractmethod
    async def save(self, job: BackgroundJob) -> BackgroundJob:
        pass
    
    @abstractmethod
    async def find_by_id(self, job_id: str) -> Optional[BackgroundJob]:
        pass
    
    @abstractmethod
    async def find_by_queue_name(self, queue_name: str) -> List[BackgroundJob]:
        pass
    
    @abstractmethod
    async def find_by_status(self, status: JobStatus) -> List[BackgroundJob]:
        pass
    
    @abstractmethod
    async def find_pending_jobs(
        self,
        queue_name: str,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[BackgroundJob]:
        """
        PENDING jobs of a queue, highest priority first, then oldest first.
        
        Args:
            queue_name: Queue to look in
            limit: Maximum number of jobs to return
            now: When given, jobs still inside their initial delay are skipped
        """
        pass
    
    @abstractmethod
    async def find_failed_jobs(self, queue_name: str, limit: Optional[int] = None) -> List[BackgroundJob]:
        pass
    
    @abstractmethod
    async def find_delayed_jobs_ready_for_retry(self, now: datetime) -> List[BackgroundJob]:
        pass
    
    @abstractmethod
    async def delete_by_id(self, job_id: str) -> bool:
        pass
    
    @abstractmethod
    async def delete_completed_older_than(self, cutoff: datetime) -> int:
        pass
    
    @abstractmethod
    async def delete_failed_older_than(self, cutoff: datetime) -> int:
        pass
    
    @abstractmethod
    async def count_by_queue_name(self, queue_name: str) -> int:
        pass
    
    @abstractmethod
    async def count_by_status(self, status: JobStatus) -> int:
        pass
    
    @abstractmethod
    async def get_queue_statistics(self, queue_name: str) -> Dict[str, int]:
        """
        Counts for one queue.
        
        Returns:
            Dict with total, pending, active, completed, failed, delayed
        """
        pass


class QueueRepository(ABC):
    """Storage for JobQueue entities. Queue names are unique."""
    
    @abstractmethod
    async def save(self, queue: JobQueue) -> JobQueue:
        pass
    
    @abstractmethod
    async def find_by_id(self, queue_id: str) -> Optional[JobQueue]:
        pass
    
    @abstractmethod
    async def find_by_name(self, name: str) -> Optional[JobQueue]:
        pass
    
    @abstractmethod
    async def find_all(self) -> List[JobQueue]:
        pass
    
    @abstractmethod
    async def find_active(self) -> List[JobQueue]:
        pass
    
    @abstractmethod
    async def find_paused(self) -> List[JobQueue]:
        pass
    
    @abstractmethod
    async def delete_by_id(self, queue_id: str) -> bool:
        pass
    
    @abstractmethod
    async def delete_by_name(self, name: str) -> bool:
        pass
    
    @abstractmethod
    async def exists_by_name(self, name: str) -> bool:
        pass
    
    @abstractmethod
    async def count(self) -> int:
        pass
    
    @abstractmethod
    async def count_active(self) -> int:
        pass
    
    @abstractmethod
    async def get_global_statistics(self) -> Dict[str, Any]:
        """
        Totals across all queues.
        
        Returns:
            Dict with total_queues, active_queues, paused_queues, total_jobs,
            completed_jobs, failed_jobs, pending_jobs
        """
        pass


class ReportRepository(ABC):
    """Read access to the reports that scheduled reports point at."""
    
    @abstractmethod
    async def find_by_id(self, report_id: str) -> Optional[Report]:
        pass
    
    @abstractmethod
    async def exists_by_id(self, report_id: str) -> bool:
        pass
    
    @abstractmethod
    async def save(self, report: Report) -> Report:
        pass


class ScheduledReportRepository(ABC):
    """Storage for ScheduledReport entities."""
    
    @abstractmethod
    async def save(self, scheduled_report: ScheduledReport) -> ScheduledReport:
        pass
    
    @abstractmethod
    async def find_by_id(self, scheduled_report_id: str) -> Optional[ScheduledReport]:
        pass
    
    @abstractmethod
    async def find_all(self) -> List[ScheduledReport]:
        pass
    
    @abstractmethod
    async def exists_by_name(
        self,
        name: str,
        created_by: str,
        organization_id: Optional[str] = None,
    ) -> bool:
        """Name taken within the (creator, organization) scope."""
        pass
    
    @abstractmethod
    async def find_due_for_execution(self, now: datetime) -> List[ScheduledReport]:
        """ACTIVE scheduled reports whose next_execution_at is at or before now."""
        pass
    
    @abstractmethod
    async def delete_by_id(self, scheduled_report_id: str) -> bool:
        pass
