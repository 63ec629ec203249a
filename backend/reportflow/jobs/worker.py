"""
Queue worker - runs pending jobs with the queue's concurrency limit.

The JobQueue entity only stores its limit; this is where the limit is
enforced, with a semaphore sized to queue.concurrency for each drain pass.
"""
import asyncio
from typing import List, Optional

from reportflow.lib.errors import InvalidStateError
from reportflow.lib.logging import get_logger
from reportflow.lib.settings import settings
from reportflow.models.background_job import BackgroundJob
from reportflow.services.job_queue_service import JobProcessor, JobQueueService


logger = get_logger(__name__)


class QueueWorker:
    """
    Pulls ready jobs from one queue and runs them through process_job.
    
    Example:
        worker = QueueWorker(job_queue_service, "reports", render_report)
        await worker.drain()
    """
    
    def __init__(
        self,
        service: JobQueueService,
        queue_name: str,
        processor: JobProcessor,
        batch_size: Optional[int] = None,
    ):
        self.service = service
        self.queue_name = queue_name
        self.processor = processor
        self.batch_size = batch_size or settings.worker_batch_size
    
    async def drain(self) -> List[BackgroundJob]:
        """
        Run one batch of ready jobs.
        
        Paused and inactive queues are skipped. Jobs that another worker
        already took (InvalidStateError from process_job) are left alone;
        any other error is raised once the whole batch has settled.
        
        Returns:
            The jobs this pass ran
        """
        queue = await self.service.get_queue(self.queue_name)
        if not queue.accepts_work:
            logger.debug(f"Queue {self.queue_name} is not accepting work, skipping")
            return []
        
        jobs = await self.service.jobs.find_pending_jobs(
            self.queue_name,
            limit=self.batch_size,
            now=self.service.clock.now(),
        )
        if not jobs:
            return []
        
        semaphore = asyncio.Semaphore(queue.concurrency)
        
        async def run(job: BackgroundJob) -> BackgroundJob:
            async with semaphore:
                return await self.service.process_job(job, self.processor)
        
        logger.info(
            f"Draining {len(jobs)} jobs from {self.queue_name}",
            extra={"queue": self.queue_name, "concurrency": queue.concurrency}
        )
        outcomes = await asyncio.gather(*(run(job) for job in jobs), return_exceptions=True)
        
        processed: List[BackgroundJob] = []
        errors: List[BaseException] = []
        for job, outcome in zip(jobs, outcomes):
            if isinstance(outcome, InvalidStateError):
                logger.warning(f"Skipped job {job.id}: {outcome.message}")
            elif isinstance(outcome, BaseException):
                errors.append(outcome)
            else:
                processed.append(outcome)
        
        if errors:
            raise errors[0]
        return processed
