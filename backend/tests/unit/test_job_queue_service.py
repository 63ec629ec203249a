"""
Unit tests for JobQueueService.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from reportflow.lib.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from reportflow.models.job_priority import JobPriority
from reportflow.models.job_status import JobStatus


NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


def flaky(failures: int):
    """Processor that raises `failures` times and then returns a result."""
    calls = {"count": 0}
    
    async def processor(job):
        calls["count"] += 1
        if calls["count"] <= failures:
            raise RuntimeError(f"boom {calls['count']}")
        return {"rows": 42}
    
    processor.calls = calls
    return processor


async def always_fails(job):
    raise RuntimeError("data source unavailable")


async def succeeds(job):
    return "ok"


# Queues

@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_queue_uses_retry_policy_default(job_queue_service):
    queue = await job_queue_service.create_queue("reports", concurrency=4)
    
    assert queue.concurrency == 4
    assert queue.max_retries == 3
    assert queue.is_active and not queue.is_paused
    assert await job_queue_service.get_queue("reports") is queue


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_queue_rejects_duplicate_name(job_queue_service):
    await job_queue_service.create_queue("reports")
    
    with pytest.raises(ConflictError):
        await job_queue_service.create_queue("reports")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_queue_rejects_zero_concurrency(job_queue_service):
    with pytest.raises(ValidationError):
        await job_queue_service.create_queue("reports", concurrency=0)
    
    assert await job_queue_service.get_queues() == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_queue_flags(job_queue_service):
    await job_queue_service.create_queue("reports")
    
    queue = await job_queue_service.pause_queue("reports")
    assert queue.is_paused and not queue.accepts_work
    
    queue = await job_queue_service.resume_queue("reports")
    assert queue.accepts_work
    
    queue = await job_queue_service.deactivate_queue("reports")
    assert not queue.is_active
    
    queue = await job_queue_service.activate_queue("reports")
    assert queue.is_active


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_queue_raises_not_found(job_queue_service):
    with pytest.raises(NotFoundError):
        await job_queue_service.get_queue("nope")
    with pytest.raises(NotFoundError):
        await job_queue_service.pause_queue("nope")
    with pytest.raises(NotFoundError):
        await job_queue_service.delete_queue("nope")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_queue(job_queue_service):
    await job_queue_service.create_queue("reports")
    
    await job_queue_service.delete_queue("reports")
    
    assert await job_queue_service.get_queues() == []


# add_job

@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_to_missing_queue_creates_nothing(job_queue_service, job_repository):
    with pytest.raises(NotFoundError):
        await job_queue_service.add_job("missing", "render")
    
    assert await job_repository.count_by_queue_name("missing") == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_to_inactive_queue_is_rejected(job_queue_service, job_repository):
    await job_queue_service.create_queue("reports")
    await job_queue_service.deactivate_queue("reports")
    
    with pytest.raises(InvalidStateError):
        await job_queue_service.add_job("reports", "render")
    
    queue = await job_queue_service.get_queue("reports")
    assert queue.job_count == 0
    assert await job_repository.count_by_queue_name("reports") == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_to_paused_queue_is_accepted(job_queue_service):
    await job_queue_service.create_queue("reports")
    await job_queue_service.pause_queue("reports")
    
    job = await job_queue_service.add_job("reports", "render")
    
    assert job.status == JobStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_inherits_queue_defaults(job_queue_service, metrics):
    await job_queue_service.create_queue(
        "reports",
        default_priority=JobPriority.HIGH,
        max_retries=4,
        default_timeout=5000,
        default_delay=1000,
    )
    
    job = await job_queue_service.add_job("reports", "render", data={"report_id": "r-1"})
    
    assert job.priority == JobPriority.HIGH
    assert job.max_attempts == 4
    assert job.timeout == 5000
    assert job.delay == 1000
    assert job.run_at == NOW + timedelta(seconds=1)
    assert job.data == {"report_id": "r-1"}
    assert (await job_queue_service.get_queue("reports")).job_count == 1
    assert metrics.get_counter_value("jobs_enqueued_total", {"queue": "reports"}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_job_overrides_queue_defaults(job_queue_service):
    await job_queue_service.create_queue("reports", default_priority=JobPriority.HIGH, default_delay=1000)
    
    job = await job_queue_service.add_job("reports", "render", priority=JobPriority.LOW, delay=0)
    
    assert job.priority == JobPriority.LOW
    assert job.run_at is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_zero_retries_still_allows_one_attempt(job_queue_service):
    await job_queue_service.create_queue("reports", max_retries=0)
    
    job = await job_queue_service.add_job("reports", "render")
    
    assert job.max_attempts == 1


# process_job

@pytest.mark.unit
@pytest.mark.asyncio
async def test_fails_twice_then_succeeds(job_queue_service, clock, metrics):
    await job_queue_service.create_queue("reports", max_retries=3)
    job = await job_queue_service.add_job("reports", "render")
    processor = flaky(failures=2)
    
    job = await job_queue_service.process_job(job, processor)
    assert (job.status, job.attempts) == (JobStatus.DELAYED, 1)
    assert job.error_message == "boom 1"
    assert job.next_retry_at == NOW + timedelta(milliseconds=5000)
    
    clock.advance(seconds=5)
    job = await job_queue_service.process_job(job, processor)
    assert (job.status, job.attempts) == (JobStatus.DELAYED, 2)
    assert job.next_retry_at == NOW + timedelta(seconds=5) + timedelta(milliseconds=10000)
    
    clock.advance(seconds=10)
    job = await job_queue_service.process_job(job, processor)
    assert (job.status, job.attempts) == (JobStatus.COMPLETED, 3)
    assert job.result.data == {"rows": 42}
    
    queue = await job_queue_service.get_queue("reports")
    assert queue.completed_count == 1
    assert queue.failed_count == 0
    assert queue.pending_count == 0
    assert metrics.get_counter_value("jobs_processed_total", {"queue": "reports", "status": "delayed"}) == 2
    assert metrics.get_counter_value("jobs_processed_total", {"queue": "reports", "status": "completed"}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_permanent_failure_counts_once(job_queue_service):
    await job_queue_service.create_queue("reports", max_retries=2)
    job = await job_queue_service.add_job("reports", "render")
    
    job = await job_queue_service.process_job(job, always_fails)
    queue = await job_queue_service.get_queue("reports")
    assert job.status == JobStatus.DELAYED
    assert queue.failed_count == 0
    assert queue.pending_count == 1
    
    job = await job_queue_service.process_job(job, always_fails)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "data source unavailable"
    assert job.next_retry_at is None
    assert queue.failed_count == 1
    assert queue.pending_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_single_attempt_queue_fails_immediately(job_queue_service):
    await job_queue_service.create_queue("reports", max_retries=0)
    job = await job_queue_service.add_job("reports", "render")
    
    job = await job_queue_service.process_job(job, always_fails)
    
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_processor_timeout_counts_as_failure(job_queue_service):
    await job_queue_service.create_queue("reports", max_retries=0)
    job = await job_queue_service.add_job("reports", "render", timeout=10)
    
    async def slow(job):
        await asyncio.sleep(1)
    
    job = await job_queue_service.process_job(job, slow)
    
    assert job.status == JobStatus.FAILED
    assert job.error_message == "Job timed out after 10 ms"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exception_without_message_uses_class_name(job_queue_service):
    await job_queue_service.create_queue("reports", max_retries=0)
    job = await job_queue_service.add_job("reports", "render")
    
    async def raises_bare(job):
        raise KeyError()
    
    job = await job_queue_service.process_job(job, raises_bare)
    
    assert job.error_message == "KeyError"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_finished_job_cannot_be_processed_again(job_queue_service):
    await job_queue_service.create_queue("reports")
    job = await job_queue_service.add_job("reports", "render")
    await job_queue_service.process_job(job, succeeds)
    
    with pytest.raises(InvalidStateError):
        await job_queue_service.process_job(job, succeeds)
    
    assert (await job_queue_service.get_queue("reports")).completed_count == 1


# Retry and maintenance

@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_job_moves_delayed_job_to_pending(job_queue_service, metrics):
    await job_queue_service.create_queue("reports")
    job = await job_queue_service.add_job("reports", "render")
    await job_queue_service.process_job(job, always_fails)
    
    job = await job_queue_service.retry_job(job.id)
    
    assert job.status == JobStatus.PENDING
    assert job.attempts == 1
    assert job.next_retry_at is None
    assert metrics.get_counter_value("jobs_retried_total", {"queue": "reports"}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_job_rejects_exhausted_job(job_queue_service):
    await job_queue_service.create_queue("reports", max_retries=1)
    job = await job_queue_service.add_job("reports", "render")
    await job_queue_service.process_job(job, always_fails)
    
    with pytest.raises(InvalidStateError):
        await job_queue_service.retry_job(job.id)
    
    assert job.status == JobStatus.FAILED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_job_rejects_pending_job(job_queue_service):
    await job_queue_service.create_queue("reports")
    job = await job_queue_service.add_job("reports", "render")
    
    with pytest.raises(InvalidStateError):
        await job_queue_service.retry_job(job.id)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_requeue_waits_for_backoff(job_queue_service):
    await job_queue_service.create_queue("reports")
    job = await job_queue_service.add_job("reports", "render")
    await job_queue_service.process_job(job, always_fails)
    
    assert await job_queue_service.requeue_delayed_jobs(NOW + timedelta(seconds=4)) == []
    
    requeued = await job_queue_service.requeue_delayed_jobs(NOW + timedelta(seconds=5))
    
    assert [j.id for j in requeued] == [job.id]
    assert job.status == JobStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cleanup_respects_retention(job_queue_service, clock):
    await job_queue_service.create_queue("reports", max_retries=0)
    done = await job_queue_service.add_job("reports", "done")
    broken = await job_queue_service.add_job("reports", "broken")
    await job_queue_service.process_job(done, succeeds)
    await job_queue_service.process_job(broken, always_fails)
    
    clock.advance(days=8)
    deleted = await job_queue_service.cleanup_old_jobs()
    
    assert deleted == {"completed": 1, "failed": 0}
    with pytest.raises(NotFoundError):
        await job_queue_service.get_job(done.id)
    assert (await job_queue_service.get_job(broken.id)).status == JobStatus.FAILED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_statistics_report_drift_after_cleanup(job_queue_service, clock):
    await job_queue_service.create_queue("reports")
    for name in ("a", "b"):
        job = await job_queue_service.add_job("reports", name)
        await job_queue_service.process_job(job, succeeds)
    await job_queue_service.add_job("reports", "c")
    
    stats = await job_queue_service.get_queue_statistics("reports")
    assert stats["job_count"] == 3
    assert stats["completed_count"] == 2
    assert stats["pending_count"] == 1
    assert stats["jobs"]["pending"] == 1
    assert stats["drift"] == {"total": 0, "completed": 0, "failed": 0}
    
    clock.advance(days=8)
    await job_queue_service.cleanup_old_jobs()
    
    stats = await job_queue_service.get_queue_statistics("reports")
    assert stats["completed_count"] == 2
    assert stats["jobs"]["completed"] == 0
    assert stats["drift"] == {"total": 2, "completed": 2, "failed": 0}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_global_statistics(job_queue_service):
    await job_queue_service.create_queue("reports")
    await job_queue_service.create_queue("exports")
    await job_queue_service.pause_queue("exports")
    job = await job_queue_service.add_job("reports", "render")
    await job_queue_service.process_job(job, succeeds)
    await job_queue_service.add_job("exports", "csv")
    
    stats = await job_queue_service.get_global_statistics()
    
    assert stats["total_queues"] == 2
    assert stats["paused_queues"] == 1
    assert stats["total_jobs"] == 2
    assert stats["completed_jobs"] == 1
    assert stats["pending_jobs"] == 1
    assert stats["jobs_by_status"]["completed"] == 1
    assert stats["jobs_by_status"]["pending"] == 1


# Job helpers

@pytest.mark.unit
@pytest.mark.asyncio
async def test_progress_pause_and_resume(job_queue_service):
    await job_queue_service.create_queue("reports")
    job = await job_queue_service.add_job("reports", "render")
    
    job = await job_queue_service.update_job_progress(job.id, 150)
    assert job.progress == 100
    
    job = await job_queue_service.pause_job(job.id)
    assert job.status == JobStatus.PENDING
    
    await job_queue_service.process_job(job, always_fails)
    job = await job_queue_service.pause_job(job.id)
    assert job.status == JobStatus.PAUSED
    
    job = await job_queue_service.resume_job(job.id)
    assert job.status == JobStatus.ACTIVE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_jobs_by_queue_and_delete(job_queue_service):
    await job_queue_service.create_queue("reports")
    job = await job_queue_service.add_job("reports", "render")
    
    assert [j.id for j in await job_queue_service.get_jobs_by_queue("reports")] == [job.id]
    
    await job_queue_service.delete_job(job.id)
    
    assert await job_queue_service.get_jobs_by_queue("reports") == []
    with pytest.raises(NotFoundError):
        await job_queue_service.delete_job(job.id)
    with pytest.raises(NotFoundError):
        await job_queue_service.get_jobs_by_queue("missing")
