"""
Report dispatcher - turns due scheduled reports into jobs.

Each tick plans the overdue slots, enqueues one job per report and moves
the report's next_execution_at past now. A report that missed several slots
(the driver was down) still gets a single job.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from reportflow.lib.clock import ensure_utc
from reportflow.lib.logging import get_logger
from reportflow.lib.metrics import MetricsCollector, get_metrics_collector
from reportflow.lib.settings import settings
from reportflow.models.background_job import BackgroundJob
from reportflow.models.job_priority import JobPriority
from reportflow.models.scheduled_report import ExecutionStatus
from reportflow.services.job_queue_service import JobProcessor, JobQueueService
from reportflow.services.report_scheduling_service import ExecutionPlan, PlanPriority, TimeWindow
from reportflow.services.schedule_calculator import calculate_next_execution
from reportflow.services.scheduled_report_service import ScheduledReportService


logger = get_logger(__name__)


JOB_PRIORITY_BY_PLAN = {
    PlanPriority.HIGH: JobPriority.HIGH,
    PlanPriority.MEDIUM: JobPriority.NORMAL,
    PlanPriority.LOW: JobPriority.LOW,
}

SCHEDULED_REPORT_JOB = "scheduled-report"


class ReportDispatcher:
    
    def __init__(
        self,
        scheduled_reports: ScheduledReportService,
        job_queue: JobQueueService,
        queue_name: Optional[str] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.scheduled_reports = scheduled_reports
        self.job_queue = job_queue
        self.queue_name = queue_name or settings.report_queue_name
        self._metrics = metrics
    
    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics or get_metrics_collector()
    
    async def dispatch_due_reports(self, now: Optional[datetime] = None) -> List[BackgroundJob]:
        """
        Enqueue a job for every active report that is due.
        
        Args:
            now: Tick instant (defaults to the service clock)
        
        Returns:
            The jobs enqueued, in plan order
        """
        now = ensure_utc(now) if now else self.job_queue.clock.now()
        due = await self.scheduled_reports.find_due(now)
        if not due:
            return []
        
        by_id = {scheduled.id: scheduled for scheduled in due}
        window = TimeWindow(start=min(s.next_execution_at for s in due), end=now)
        plan = self.scheduled_reports.scheduling.create_execution_plan(due, window)
        
        jobs: List[BackgroundJob] = []
        for entry in self._first_slot_per_report(plan):
            scheduled = by_id[entry.scheduled_report_id]
            job = await self.job_queue.add_job(
                self.queue_name,
                f"{SCHEDULED_REPORT_JOB}:{scheduled.name}",
                data={
                    "scheduled_report_id": scheduled.id,
                    "report_id": scheduled.report_id,
                    "scheduled_for": entry.next_execution_at.isoformat(),
                    "estimated_duration_ms": entry.estimated_duration_ms,
                    "delivery": scheduled.delivery_config.model_dump(mode="json"),
                },
                priority=JOB_PRIORITY_BY_PLAN[entry.priority],
            )
            
            scheduled.record_execution_start(job.id, now)
            scheduled.update_next_execution(calculate_next_execution(scheduled.schedule_config, now))
            await self.scheduled_reports.scheduled_reports.save(scheduled)
            
            self.metrics.increment_dispatched(queue=self.queue_name)
            jobs.append(job)
        
        logger.info(
            f"Dispatched {len(jobs)} scheduled reports",
            extra={"queue": self.queue_name, "due": len(due)}
        )
        return jobs
    
    async def upcoming(self, now: Optional[datetime] = None) -> List[ExecutionPlan]:
        """Execution plan for the look-ahead window after now."""
        now = ensure_utc(now) if now else self.job_queue.clock.now()
        window = TimeWindow(start=now, end=now + timedelta(minutes=settings.execution_window_minutes))
        reports = await self.scheduled_reports.list_scheduled_reports()
        return self.scheduled_reports.scheduling.create_execution_plan(reports, window)
    
    def report_processor(self, render: Callable[[Dict[str, Any]], Awaitable[Any]]) -> JobProcessor:
        """
        Wrap a report renderer as a job processor for the report queue.
        
        The scheduled report's outcome is recorded once the job is final:
        on success, or on the failure that uses up the last attempt.
        
        Args:
            render: Async callable receiving the job payload
        """
        async def process(job: BackgroundJob) -> Any:
            scheduled_report_id = job.data["scheduled_report_id"]
            started = self.job_queue.clock.now()
            try:
                result = await render(job.data)
            except asyncio.CancelledError:
                # A job timeout cancels the render through asyncio.wait_for
                await self._record_last_failure(job, started, f"Job timed out after {job.timeout} ms")
                raise
            except Exception as exc:
                await self._record_last_failure(job, started, str(exc))
                raise
            
            await self.scheduled_reports.record_execution(
                scheduled_report_id,
                success=True,
                execution_id=job.id,
                status=ExecutionStatus.COMPLETED,
                duration_ms=self._elapsed_ms(started),
            )
            return result
        
        return process
    
    async def _record_last_failure(self, job: BackgroundJob, started: datetime, error: str) -> None:
        if job.attempts < job.max_attempts:
            return
        await self.scheduled_reports.record_execution(
            job.data["scheduled_report_id"],
            success=False,
            execution_id=job.id,
            status=ExecutionStatus.FAILED,
            duration_ms=self._elapsed_ms(started),
            error_message=error,
        )
    
    def _elapsed_ms(self, started: datetime) -> int:
        return int((self.job_queue.clock.now() - started).total_seconds() * 1000)
    
    @staticmethod
    def _first_slot_per_report(plan: List[ExecutionPlan]) -> List[ExecutionPlan]:
        seen = set()
        entries = []
        for entry in plan:
            if entry.scheduled_report_id in seen:
                continue
            seen.add(entry.scheduled_report_id)
            entries.append(entry)
        return entries
