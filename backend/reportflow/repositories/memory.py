"""
In-memory repositories for tests and single-process deployments.

Entities are stored by reference. A threading lock guards each store so
the APScheduler thread and the event loop can share one instance.
"""
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from reportflow.lib.clock import ensure_utc
from reportflow.models.background_job import BackgroundJob
from reportflow.models.job_queue import JobQueue
from reportflow.models.job_status import JobStatus
from reportflow.models.report import Report
from reportflow.models.scheduled_report import ScheduledReport
from reportflow.repositories.base import (
    JobRepository,
    QueueRepository,
    ReportRepository,
    ScheduledReportRepository,
)


def _limited(items: List[Any], limit: Optional[int]) -> List[Any]:
    return items[:limit] if limit is not None else items


class InMemoryJobRepository(JobRepository):
    
    def __init__(self):
        self._jobs: Dict[str, BackgroundJob] = {}
        self._lock = threading.Lock()
    
    async def save(self, job: BackgroundJob) -> BackgroundJob:
        with self._lock:
            self._jobs[job.id] = job
        return job
    
    async def find_by_id(self, job_id: str) -> Optional[BackgroundJob]:
        with self._lock:
            return self._jobs.get(job_id)
    
    async def find_by_queue_name(self, queue_name: str) -> List[BackgroundJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.queue_name == queue_name]
        return sorted(jobs, key=lambda j: j.created_at)
    
    async def find_by_status(self, status: JobStatus) -> List[BackgroundJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.status == status]
        return sorted(jobs, key=lambda j: j.created_at)
    
    async def find_pending_jobs(
        self,
        queue_name: str,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[BackgroundJob]:
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.queue_name == queue_name and j.status == JobStatus.PENDING
            ]
        if now is not None:
            jobs = [j for j in jobs if j.is_ready(now)]
        jobs.sort(key=lambda j: (-int(j.priority), j.created_at))
        return _limited(jobs, limit)
    
    async def find_failed_jobs(self, queue_name: str, limit: Optional[int] = None) -> List[BackgroundJob]:
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.queue_name == queue_name and j.status == JobStatus.FAILED
            ]
        jobs.sort(key=lambda j: j.failed_at, reverse=True)
        return _limited(jobs, limit)
    
    async def find_delayed_jobs_ready_for_retry(self, now: datetime) -> List[BackgroundJob]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if j.is_ready_for_retry(now)]
        return sorted(jobs, key=lambda j: j.next_retry_at)
    
    async def delete_by_id(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None
    
    async def delete_completed_older_than(self, cutoff: datetime) -> int:
        cutoff = ensure_utc(cutoff)
        return self._delete_where(
            lambda j: j.status == JobStatus.COMPLETED and j.completed_at is not None and j.completed_at < cutoff
        )
    
    async def delete_failed_older_than(self, cutoff: datetime) -> int:
        cutoff = ensure_utc(cutoff)
        return self._delete_where(
            lambda j: j.status == JobStatus.FAILED and j.failed_at is not None and j.failed_at < cutoff
        )
    
    async def count_by_queue_name(self, queue_name: str) -> int:
        with self._lock:
            return sum(1 for j in self._jobs.values() if j.queue_name == queue_name)
    
    async def count_by_status(self, status: JobStatus) -> int:
        with self._lock:
            return sum(1 for j in self._jobs.values() if j.status == status)
    
    async def get_queue_statistics(self, queue_name: str) -> Dict[str, int]:
        stats = {
            "total": 0,
            "pending": 0,
            "active": 0,
            "completed": 0,
            "failed": 0,
            "delayed": 0,
        }
        with self._lock:
            for job in self._jobs.values():
                if job.queue_name != queue_name:
                    continue
                stats["total"] += 1
                key = job.status.value
                if key in stats:
                    stats[key] += 1
        return stats
    
    def _delete_where(self, predicate) -> int:
        with self._lock:
            doomed = [job_id for job_id, job in self._jobs.items() if predicate(job)]
            for job_id in doomed:
                del self._jobs[job_id]
        return len(doomed)


class InMemoryQueueRepository(QueueRepository):
    
    def __init__(self):
        self._queues: Dict[str, JobQueue] = {}
        self._lock = threading.Lock()
    
    async def save(self, queue: JobQueue) -> JobQueue:
        with self._lock:
            self._queues[queue.name] = queue
        return queue
    
    async def find_by_id(self, queue_id: str) -> Optional[JobQueue]:
        with self._lock:
            return next((q for q in self._queues.values() if q.id == queue_id), None)
    
    async def find_by_name(self, name: str) -> Optional[JobQueue]:
        with self._lock:
            return self._queues.get(name)
    
    async def find_all(self) -> List[JobQueue]:
        with self._lock:
            return sorted(self._queues.values(), key=lambda q: q.name)
    
    async def find_active(self) -> List[JobQueue]:
        return [q for q in await self.find_all() if q.is_active]
    
    async def find_paused(self) -> List[JobQueue]:
        return [q for q in await self.find_all() if q.is_paused]
    
    async def delete_by_id(self, queue_id: str) -> bool:
        with self._lock:
            name = next((n for n, q in self._queues.items() if q.id == queue_id), None)
            if name is None:
                return False
            del self._queues[name]
            return True
    
    async def delete_by_name(self, name: str) -> bool:
        with self._lock:
            return self._queues.pop(name, None) is not None
    
    async def exists_by_name(self, name: str) -> bool:
        with self._lock:
            return name in self._queues
    
    async def count(self) -> int:
        with self._lock:
            return len(self._queues)
    
    async def count_active(self) -> int:
        return len(await self.find_active())
    
    async def get_global_statistics(self) -> Dict[str, Any]:
        queues = await self.find_all()
        return {
            "total_queues": len(queues),
            "active_queues": sum(1 for q in queues if q.is_active),
            "paused_queues": sum(1 for q in queues if q.is_paused),
            "total_jobs": sum(q.job_count for q in queues),
            "completed_jobs": sum(q.completed_count for q in queues),
            "failed_jobs": sum(q.failed_count for q in queues),
            "pending_jobs": sum(q.pending_count for q in queues),
        }


class InMemoryReportRepository(ReportRepository):
    
    def __init__(self):
        self._reports: Dict[str, Report] = {}
        self._lock = threading.Lock()
    
    async def find_by_id(self, report_id: str) -> Optional[Report]:
        with self._lock:
            return self._reports.get(report_id)
    
    async def exists_by_id(self, report_id: str) -> bool:
        with self._lock:
            return report_id in self._reports
    
    async def save(self, report: Report) -> Report:
        with self._lock:
            self._reports[report.id] = report
        return report


class InMemoryScheduledReportRepository(ScheduledReportRepository):
    
    def __init__(self):
        self._items: Dict[str, ScheduledReport] = {}
        self._lock = threading.Lock()
    
    async def save(self, scheduled_report: ScheduledReport) -> ScheduledReport:
        with self._lock:
            self._items[scheduled_report.id] = scheduled_report
        return scheduled_report
    
    async def find_by_id(self, scheduled_report_id: str) -> Optional[ScheduledReport]:
        with self._lock:
            return self._items.get(scheduled_report_id)
    
    async def find_all(self) -> List[ScheduledReport]:
        with self._lock:
            return sorted(self._items.values(), key=lambda s: s.created_at)
    
    async def exists_by_name(
        self,
        name: str,
        created_by: str,
        organization_id: Optional[str] = None,
    ) -> bool:
        with self._lock:
            return any(
                s.name == name and s.created_by == created_by and s.organization_id == organization_id
                for s in self._items.values()
            )
    
    async def find_due_for_execution(self, now: datetime) -> List[ScheduledReport]:
        with self._lock:
            due = [s for s in self._items.values() if s.is_due(now)]
        return sorted(due, key=lambda s: s.next_execution_at)
    
    async def delete_by_id(self, scheduled_report_id: str) -> bool:
        with self._lock:
            return self._items.pop(scheduled_report_id, None) is not None
