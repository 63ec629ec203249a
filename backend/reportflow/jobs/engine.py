"""
Engine wiring and the periodic ticks APScheduler runs.

ReportEngine bundles the repositories, services, dispatcher and per-queue
workers of one process. Its async tick methods are what the scheduler calls
(wrapped in asyncio.run, since APScheduler runs plain callables in a
thread pool). Each tick gets its own correlation ID.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from reportflow.lib.clock import Clock
from reportflow.lib.errors import NotFoundError
from reportflow.lib.logging import get_logger, set_correlation_id
from reportflow.lib.settings import settings
from reportflow.models.background_job import BackgroundJob
from reportflow.jobs.report_dispatcher import ReportDispatcher
from reportflow.jobs.worker import QueueWorker
from reportflow.repositories.base import (
    JobRepository,
    QueueRepository,
    ReportRepository,
    ScheduledReportRepository,
)
from reportflow.repositories.memory import (
    InMemoryJobRepository,
    InMemoryQueueRepository,
    InMemoryReportRepository,
    InMemoryScheduledReportRepository,
)
from reportflow.services.job_queue_service import JobProcessor, JobQueueService
from reportflow.services.report_scheduling_service import ReportSchedulingService
from reportflow.services.scheduled_report_service import ScheduledReportService


logger = get_logger(__name__)


class ReportEngine:
    """
    One process worth of job engine and report scheduler.
    
    Example:
        engine = ReportEngine()
        await engine.setup(render_report)
        register_engine_jobs(get_scheduler(), engine)
    """
    
    def __init__(
        self,
        job_repository: Optional[JobRepository] = None,
        queue_repository: Optional[QueueRepository] = None,
        report_repository: Optional[ReportRepository] = None,
        scheduled_report_repository: Optional[ScheduledReportRepository] = None,
        clock: Optional[Clock] = None,
    ):
        self.job_queue = JobQueueService(
            job_repository or InMemoryJobRepository(),
            queue_repository or InMemoryQueueRepository(),
            clock=clock,
        )
        self.scheduling = ReportSchedulingService(clock=clock)
        self.scheduled_reports = ScheduledReportService(
            report_repository or InMemoryReportRepository(),
            scheduled_report_repository or InMemoryScheduledReportRepository(),
            scheduling=self.scheduling,
            clock=clock,
        )
        self.dispatcher = ReportDispatcher(self.scheduled_reports, self.job_queue)
        self.workers: Dict[str, QueueWorker] = {}
    
    async def setup(
        self,
        render: Callable[[Dict[str, Any]], Awaitable[Any]],
        concurrency: int = 5,
        max_retries: int = 3,
    ) -> None:
        """
        Create the report queue if missing and attach the report worker.
        
        Args:
            render: Async renderer receiving a scheduled-report job payload
            concurrency: Report queue concurrency when the queue is created
            max_retries: Report queue attempt budget when the queue is created
        """
        queue_name = self.dispatcher.queue_name
        try:
            await self.job_queue.get_queue(queue_name)
        except NotFoundError:
            await self.job_queue.create_queue(
                queue_name,
                description="Scheduled report executions",
                concurrency=concurrency,
                max_retries=max_retries,
            )
        self.add_worker(queue_name, self.dispatcher.report_processor(render))
    
    def add_worker(self, queue_name: str, processor: JobProcessor) -> QueueWorker:
        worker = QueueWorker(self.job_queue, queue_name, processor)
        self.workers[queue_name] = worker
        return worker
    
    # Ticks
    async def dispatch_tick(self) -> int:
        set_correlation_id(str(uuid4()))
        jobs = await self.dispatcher.dispatch_due_reports()
        return len(jobs)
    
    async def drain_tick(self) -> int:
        set_correlation_id(str(uuid4()))
        processed: List[BackgroundJob] = []
        for worker in self.workers.values():
            processed.extend(await worker.drain())
        return len(processed)
    
    async def wake_delayed_tick(self) -> int:
        set_correlation_id(str(uuid4()))
        return len(await self.job_queue.requeue_delayed_jobs())
    
    async def cleanup_tick(self) -> Dict[str, int]:
        set_correlation_id(str(uuid4()))
        return await self.job_queue.cleanup_old_jobs()


def register_engine_jobs(scheduler_manager, engine: ReportEngine) -> None:
    """
    Register the engine's periodic work with the scheduler.
    
    Args:
        scheduler_manager: SchedulerManager instance from get_scheduler()
        engine: Engine whose ticks should run
    """
    interval = settings.scheduler_poll_interval_seconds
    
    scheduler_manager.add_interval_job(
        func=lambda: asyncio.run(engine.dispatch_tick()),
        job_id="reportflow_dispatch_due_reports",
        seconds=interval,
    )
    scheduler_manager.add_interval_job(
        func=lambda: asyncio.run(engine.wake_delayed_tick()),
        job_id="reportflow_wake_delayed_jobs",
        seconds=interval,
    )
    scheduler_manager.add_interval_job(
        func=lambda: asyncio.run(engine.drain_tick()),
        job_id="reportflow_drain_queues",
        seconds=interval,
    )
    # Daily retention cleanup at 03:00 UTC
    scheduler_manager.add_cron_job(
        func=lambda: asyncio.run(engine.cleanup_tick()),
        job_id="reportflow_cleanup_old_jobs",
        hour=3,
        minute=0,
    )
    
    logger.info("Engine jobs registered", extra={"poll_interval_seconds": interval})
