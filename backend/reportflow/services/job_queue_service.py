"""
Job queue service.

Orchestrates queues and jobs over the injected repositories. process_job is
the only place work actually runs, and the only place job state and queue
counters are brought back in line after an attempt.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from reportflow.lib.clock import Clock, ensure_utc, get_clock
from reportflow.lib.errors import ConflictError, InvalidStateError, NotFoundError
from reportflow.lib.logging import bind_job_context, get_logger
from reportflow.lib.metrics import MetricsCollector, get_metrics_collector
from reportflow.lib.policy import get_retry_policy
from reportflow.lib.settings import settings
from reportflow.models.background_job import BackgroundJob
from reportflow.models.job_priority import JobPriority
from reportflow.models.job_queue import JobQueue
from reportflow.models.job_status import JobStatus
from reportflow.repositories.base import JobRepository, QueueRepository


logger = get_logger(__name__)


JobProcessor = Callable[[BackgroundJob], Awaitable[Any]]


class JobQueueService:
    """
    Queue and job lifecycle over repositories.
    
    Repository errors are never caught here; they reach the caller unchanged.
    """
    
    def __init__(
        self,
        job_repository: JobRepository,
        queue_repository: QueueRepository,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.jobs = job_repository
        self.queues = queue_repository
        self._clock = clock
        self._metrics = metrics
    
    @property
    def clock(self) -> Clock:
        return self._clock or get_clock()
    
    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics or get_metrics_collector()
    
    # Queues
    async def create_queue(
        self,
        name: str,
        description: Optional[str] = None,
        default_priority: JobPriority = JobPriority.NORMAL,
        concurrency: int = 1,
        max_retries: Optional[int] = None,
        default_timeout: Optional[int] = None,
        default_delay: Optional[int] = None,
    ) -> JobQueue:
        """
        Create and persist a queue.
        
        Raises:
            ConflictError: a queue with this name exists
            ValidationError: invalid concurrency/retry/timeout/delay values
        """
        if await self.queues.exists_by_name(name):
            raise ConflictError(f"Queue '{name}' already exists", details={"queue": name})
        
        queue = JobQueue(
            name=name,
            description=description,
            default_priority=default_priority,
            concurrency=concurrency,
            max_retries=max_retries if max_retries is not None else get_retry_policy().default_max_attempts,
            default_timeout=default_timeout,
            default_delay=default_delay,
            created_at=self.clock.now(),
        )
        await self.queues.save(queue)
        logger.info(
            f"Created queue {queue.name}",
            extra={"queue": queue.name, "concurrency": queue.concurrency, "max_retries": queue.max_retries}
        )
        return queue
    
    async def get_queue(self, name: str) -> JobQueue:
        queue = await self.queues.find_by_name(name)
        if queue is None:
            raise NotFoundError("Queue", name)
        return queue
    
    async def get_queues(self) -> List[JobQueue]:
        return await self.queues.find_all()
    
    async def pause_queue(self, name: str) -> JobQueue:
        queue = await self.get_queue(name)
        queue.pause()
        await self.queues.save(queue)
        logger.info(f"Paused queue {name}")
        return queue
    
    async def resume_queue(self, name: str) -> JobQueue:
        queue = await self.get_queue(name)
        queue.resume()
        await self.queues.save(queue)
        logger.info(f"Resumed queue {name}")
        return queue
    
    async def activate_queue(self, name: str) -> JobQueue:
        queue = await self.get_queue(name)
        queue.activate()
        await self.queues.save(queue)
        logger.info(f"Activated queue {name}")
        return queue
    
    async def deactivate_queue(self, name: str) -> JobQueue:
        queue = await self.get_queue(name)
        queue.deactivate()
        await self.queues.save(queue)
        logger.info(f"Deactivated queue {name}")
        return queue
    
    async def delete_queue(self, name: str) -> None:
        """Remove a queue. Its jobs stay in the job repository."""
        if not await self.queues.delete_by_name(name):
            raise NotFoundError("Queue", name)
        logger.info(f"Deleted queue {name}")
    
    # Jobs
    async def add_job(
        self,
        queue_name: str,
        job_name: str,
        data: Optional[Dict[str, Any]] = None,
        priority: Optional[JobPriority] = None,
        delay: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> BackgroundJob:
        """
        Create a job on a queue.
        
        Priority, delay and timeout fall back to the queue defaults. The
        queue's max_retries is the job's attempt budget (at least one).
        
        Raises:
            NotFoundError: queue does not exist
            InvalidStateError: queue is inactive
        """
        queue = await self.queues.find_by_name(queue_name)
        if queue is None:
            raise NotFoundError("Queue", queue_name)
        if not queue.is_active:
            logger.warning(f"Rejected job {job_name}: queue {queue_name} is inactive")
            raise InvalidStateError(
                f"Cannot add jobs to inactive queue '{queue_name}'",
                details={"queue": queue_name},
            )
        
        job = BackgroundJob.create(
            name=job_name,
            queue_name=queue.name,
            data=data,
            priority=priority if priority is not None else queue.default_priority,
            max_attempts=max(1, queue.max_retries),
            delay=delay if delay is not None else queue.default_delay,
            timeout=timeout if timeout is not None else queue.default_timeout,
            now=self.clock.now(),
        )
        # Job first, counter second: a crash in between leaves drift that
        # get_queue_statistics reports.
        await self.jobs.save(job)
        queue.increment_job_count()
        await self.queues.save(queue)
        
        self.metrics.increment_enqueued(queue=queue.name)
        logger.info(
            f"Enqueued job {job.name}",
            extra={"job_id": job.id, "queue": queue.name, "priority": job.priority.name}
        )
        return job
    
    async def process_job(self, job: BackgroundJob, processor: JobProcessor) -> BackgroundJob:
        """
        Run one attempt of a job through the processor.
        
        The job is started unless it is already ACTIVE. A successful return
        completes it; any exception (including a timeout) records a failed
        attempt, which either delays the job for a retry or fails it for good.
        
        Args:
            job: Job to run
            processor: Async callable doing the actual work
        
        Returns:
            The job after the attempt
        
        Raises:
            InvalidStateError: the job cannot be started (terminal, paused,
                or out of attempts)
        """
        bind_job_context(job.id, job.queue_name)
        try:
            if job.status != JobStatus.ACTIVE:
                if not job.start(self.clock.now()):
                    raise InvalidStateError(
                        f"Job {job.id} cannot be started from status {job.status.value}",
                        details={"job_id": job.id, "status": job.status.value, "attempts": job.attempts},
                    )
                await self.jobs.save(job)
            
            try:
                result = await self._run_processor(job, processor)
            except Exception as exc:
                logger.error(
                    f"Job {job.name} attempt {job.attempts}/{job.max_attempts} raised",
                    exc_info=True,
                )
                job.fail(str(exc) or exc.__class__.__name__, self.clock.now())
            else:
                job.complete(result, self.clock.now())
            
            await self.jobs.save(job)
            await self._record_outcome(job)
            return job
        finally:
            bind_job_context(None, None)
    
    async def retry_job(self, job_id: str) -> BackgroundJob:
        """
        Put a delayed job back to PENDING immediately.
        
        Raises:
            NotFoundError: job does not exist
            InvalidStateError: job has no attempts left or is not retryable
        """
        job = await self.get_job(job_id)
        if not job.can_retry():
            raise InvalidStateError(
                f"Job {job_id} has exhausted its {job.max_attempts} attempts",
                details={"job_id": job_id, "attempts": job.attempts, "max_attempts": job.max_attempts},
            )
        if not job.retry(self.clock.now()):
            raise InvalidStateError(
                f"Job {job_id} cannot be retried from status {job.status.value}",
                details={"job_id": job_id, "status": job.status.value},
            )
        await self.jobs.save(job)
        self.metrics.increment_retried(queue=job.queue_name)
        logger.info(f"Retrying job {job.name}", extra={"job_id": job.id, "queue": job.queue_name})
        return job
    
    async def delete_job(self, job_id: str) -> None:
        if not await self.jobs.delete_by_id(job_id):
            raise NotFoundError("Job", job_id)
        logger.info(f"Deleted job {job_id}")
    
    async def get_job(self, job_id: str) -> BackgroundJob:
        job = await self.jobs.find_by_id(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job
    
    async def get_jobs_by_queue(self, queue_name: str) -> List[BackgroundJob]:
        await self.get_queue(queue_name)
        return await self.jobs.find_by_queue_name(queue_name)
    
    async def update_job_progress(self, job_id: str, progress: float) -> BackgroundJob:
        job = await self.get_job(job_id)
        if job.update_progress(progress, self.clock.now()):
            await self.jobs.save(job)
        return job
    
    async def pause_job(self, job_id: str) -> BackgroundJob:
        """Pause an ACTIVE or DELAYED job; other statuses are left as they are."""
        job = await self.get_job(job_id)
        if job.pause(self.clock.now()):
            await self.jobs.save(job)
            logger.info(f"Paused job {job.name}", extra={"job_id": job.id})
        return job
    
    async def resume_job(self, job_id: str) -> BackgroundJob:
        job = await self.get_job(job_id)
        if job.resume(self.clock.now()):
            await self.jobs.save(job)
            logger.info(f"Resumed job {job.name}", extra={"job_id": job.id})
        return job
    
    async def requeue_delayed_jobs(self, now: Optional[datetime] = None) -> List[BackgroundJob]:
        """
        Move DELAYED jobs whose backoff has elapsed back to PENDING.
        
        Returns:
            The jobs that were requeued
        """
        now = ensure_utc(now) if now else self.clock.now()
        requeued = []
        for job in await self.jobs.find_delayed_jobs_ready_for_retry(now):
            if job.retry(now):
                await self.jobs.save(job)
                requeued.append(job)
        
        if requeued:
            logger.info(f"Requeued {len(requeued)} delayed jobs")
        return requeued
    
    async def cleanup_old_jobs(
        self,
        completed_before: Optional[datetime] = None,
        failed_before: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        Delete finished jobs past their retention window.
        
        Args:
            completed_before: Cutoff for COMPLETED jobs (default: retention setting)
            failed_before: Cutoff for FAILED jobs (default: retention setting)
        
        Returns:
            Dict with completed and failed deletion counts
        """
        now = self.clock.now()
        if completed_before is None:
            completed_before = now - timedelta(days=settings.completed_job_retention_days)
        if failed_before is None:
            failed_before = now - timedelta(days=settings.failed_job_retention_days)
        
        deleted = {
            "completed": await self.jobs.delete_completed_older_than(completed_before),
            "failed": await self.jobs.delete_failed_older_than(failed_before),
        }
        logger.info("Cleaned up old jobs", extra=deleted)
        return deleted
    
    # Statistics
    async def get_queue_statistics(self, queue_name: str) -> Dict[str, Any]:
        """
        Queue counters next to the job repository's own counts.
        
        The repository counts are authoritative. drift is queue counter minus
        repository count; it is non-zero after a partial write or after
        retention cleanup removed finished jobs. Nothing is corrected here.
        
        Raises:
            NotFoundError: queue does not exist
        """
        queue = await self.get_queue(queue_name)
        jobs = await self.jobs.get_queue_statistics(queue_name)
        
        return {
            "queue": queue.name,
            "is_active": queue.is_active,
            "is_paused": queue.is_paused,
            "concurrency": queue.concurrency,
            "job_count": queue.job_count,
            "completed_count": queue.completed_count,
            "failed_count": queue.failed_count,
            "pending_count": queue.pending_count,
            "success_rate": queue.success_rate,
            "jobs": jobs,
            "drift": {
                "total": queue.job_count - jobs["total"],
                "completed": queue.completed_count - jobs["completed"],
                "failed": queue.failed_count - jobs["failed"],
            },
        }
    
    async def get_global_statistics(self) -> Dict[str, Any]:
        stats = await self.queues.get_global_statistics()
        stats["jobs_by_status"] = {
            status.value: await self.jobs.count_by_status(status) for status in JobStatus
        }
        return stats
    
    async def _run_processor(self, job: BackgroundJob, processor: JobProcessor) -> Any:
        if job.timeout:
            try:
                return await asyncio.wait_for(processor(job), timeout=job.timeout / 1000)
            except asyncio.TimeoutError:
                raise TimeoutError(f"Job timed out after {job.timeout} ms")
        return await processor(job)
    
    async def _record_outcome(self, job: BackgroundJob) -> None:
        """Bump the owning queue's counters for a finished attempt."""
        self.metrics.increment_processed(queue=job.queue_name, status=job.status.value)
        
        if job.status == JobStatus.DELAYED:
            logger.warning(
                f"Job {job.name} failed, retry at {job.next_retry_at.isoformat()}",
                extra={"job_id": job.id, "attempts": job.attempts, "error": job.error_message}
            )
            return
        
        queue = await self.queues.find_by_name(job.queue_name)
        if queue is None:
            logger.warning(f"Queue {job.queue_name} disappeared while job {job.id} was running")
            return
        
        if job.status == JobStatus.COMPLETED:
            queue.increment_completed_count()
            logger.info(f"Completed job {job.name}", extra={"job_id": job.id, "attempts": job.attempts})
        elif job.status == JobStatus.FAILED:
            queue.increment_failed_count()
            logger.warning(
                f"Job {job.name} failed permanently",
                extra={"job_id": job.id, "attempts": job.attempts, "error": job.error_message}
            )
        await self.queues.save(queue)
