"""
Tests for ReportEngine wiring and its scheduler registration.
"""
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from reportflow.jobs.engine import ReportEngine, register_engine_jobs
from reportflow.lib.clock import FrozenClock
from reportflow.lib.logging import get_correlation_id
from reportflow.models.job_status import JobStatus
from reportflow.models.report import Report, ReportStatus
from reportflow.models.schedule_config import (
    DeliveryConfig,
    DeliveryMethod,
    ScheduleConfig,
    ScheduleFrequency,
)
from reportflow.services.report_scheduling_service import ScheduleReportRequest


NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine_clock():
    return FrozenClock(NOW)


async def _ok():
    return "ok"


@pytest_asyncio.fixture
async def engine(engine_clock):
    engine = ReportEngine(clock=engine_clock)
    rendered = []
    
    async def render(payload):
        rendered.append(payload["scheduled_report_id"])
        return {"pages": 1}
    
    await engine.setup(render, concurrency=2)
    engine.rendered = rendered
    return engine


async def schedule_hourly(engine: ReportEngine):
    report = Report(name="Ops", created_by="user-1", status=ReportStatus.PUBLISHED)
    await engine.scheduled_reports.reports.save(report)
    return await engine.scheduled_reports.create_scheduled_report(ScheduleReportRequest(
        name="Hourly ops",
        report_id=report.id,
        schedule_config=ScheduleConfig(frequency=ScheduleFrequency.HOURLY, minute=0),
        delivery_config=DeliveryConfig(method=DeliveryMethod.DOWNLOAD),
        created_by="user-1",
    ))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_setup_creates_report_queue_and_worker(engine):
    """Test setup creates the report queue once and attaches its worker."""
    queue = await engine.job_queue.get_queue("reports")
    
    assert queue.concurrency == 2
    assert queue.max_retries == 3
    assert list(engine.workers) == ["reports"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_setup_keeps_existing_queue(engine):
    """Test a second setup does not recreate the queue."""
    async def render(payload):
        return None
    
    await engine.setup(render, concurrency=9)
    
    assert (await engine.job_queue.get_queue("reports")).concurrency == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ticks_run_a_due_report_end_to_end(engine, engine_clock):
    """Test dispatch then drain renders a due report and records it."""
    scheduled = await schedule_hourly(engine)
    engine_clock.set(scheduled.next_execution_at)
    
    assert await engine.dispatch_tick() == 1
    assert get_correlation_id() is not None
    assert await engine.drain_tick() == 1
    
    assert engine.rendered == [scheduled.id]
    assert scheduled.execution_count == 1
    assert scheduled.next_execution_at == NOW + timedelta(hours=2)
    stats = await engine.job_queue.get_queue_statistics("reports")
    assert stats["completed_count"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_wake_delayed_tick_requeues_after_backoff(engine, engine_clock):
    """Test delayed jobs go back to pending once their backoff elapsed."""
    await engine.job_queue.create_queue("exports")
    job = await engine.job_queue.add_job("exports", "csv")
    
    async def broken(job):
        raise RuntimeError("disk full")
    
    await engine.job_queue.process_job(job, broken)
    assert await engine.wake_delayed_tick() == 0
    
    engine_clock.advance(seconds=5)
    assert await engine.wake_delayed_tick() == 1
    assert job.status == JobStatus.PENDING


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cleanup_tick(engine, engine_clock):
    """Test cleanup tick removes completed jobs past retention."""
    await engine.job_queue.create_queue("exports")
    engine.add_worker("exports", lambda job: _ok())
    await engine.job_queue.add_job("exports", "csv")
    await engine.drain_tick()
    
    engine_clock.advance(days=8)
    
    assert await engine.cleanup_tick() == {"completed": 1, "failed": 0}


@pytest.mark.unit
def test_register_engine_jobs():
    """Test the engine ticks are registered with the scheduler."""
    manager = MagicMock()
    
    register_engine_jobs(manager, ReportEngine())
    
    interval_ids = [call.kwargs["job_id"] for call in manager.add_interval_job.call_args_list]
    assert interval_ids == [
        "reportflow_dispatch_due_reports",
        "reportflow_wake_delayed_jobs",
        "reportflow_drain_queues",
    ]
    assert all(call.kwargs["seconds"] == 60 for call in manager.add_interval_job.call_args_list)
    
    manager.add_cron_job.assert_called_once()
    cron = manager.add_cron_job.call_args.kwargs
    assert cron["job_id"] == "reportflow_cleanup_old_jobs"
    assert (cron["hour"], cron["minute"]) == (3, 0)
