"""
Tests for the APScheduler wrapper.
"""
import pytest
from unittest.mock import MagicMock

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from reportflow.jobs.scheduler import SchedulerManager, get_scheduler


def noop():
    pass


@pytest.mark.unit
def test_scheduler_manager_initialization():
    """Test SchedulerManager starts stopped and with job defaults."""
    manager = SchedulerManager()
    
    assert manager.scheduler is not None
    assert manager.running is False
    assert manager.scheduler._job_defaults["coalesce"] is True
    assert manager.scheduler._job_defaults["max_instances"] == 1


@pytest.mark.unit
def test_scheduler_manager_start_stop():
    """Test starting and stopping scheduler."""
    manager = SchedulerManager()
    
    manager.start()
    assert manager.running
    
    manager.shutdown(wait=False)
    assert not manager.running


@pytest.mark.unit
def test_add_cron_job():
    """Test adding cron job to scheduler."""
    manager = SchedulerManager()
    
    manager.add_cron_job(noop, job_id="cleanup", hour=3, minute=0)
    
    jobs = manager.get_jobs()
    assert [job.id for job in jobs] == ["cleanup"]
    assert isinstance(jobs[0].trigger, CronTrigger)


@pytest.mark.unit
def test_add_interval_job():
    """Test adding interval job to scheduler."""
    manager = SchedulerManager()
    
    manager.add_interval_job(noop, job_id="dispatch", seconds=30)
    
    jobs = manager.get_jobs()
    assert [job.id for job in jobs] == ["dispatch"]
    assert isinstance(jobs[0].trigger, IntervalTrigger)
    assert jobs[0].trigger.interval.total_seconds() == 30


@pytest.mark.unit
def test_add_interval_job_requires_interval():
    """Test interval job without any interval is rejected."""
    manager = SchedulerManager()
    
    with pytest.raises(ValueError):
        manager.add_interval_job(noop, job_id="dispatch")
    
    assert manager.get_jobs() == []


@pytest.mark.unit
def test_re_adding_job_replaces_it():
    """Test that registering the same id twice keeps one job."""
    manager = SchedulerManager()
    
    manager.add_interval_job(noop, job_id="dispatch", seconds=30)
    manager.add_interval_job(noop, job_id="dispatch", minutes=2)
    
    jobs = manager.get_jobs()
    assert len(jobs) == 1
    assert jobs[0].trigger.interval.total_seconds() == 120


@pytest.mark.unit
def test_remove_job():
    """Test removing job from scheduler."""
    manager = SchedulerManager()
    manager.add_interval_job(noop, job_id="dispatch", minutes=5)
    
    manager.remove_job("dispatch")
    
    assert manager.get_jobs() == []


@pytest.mark.unit
def test_run_now_moves_next_run_time():
    """Test manual trigger brings the next run forward."""
    manager = SchedulerManager()
    manager.scheduler = MagicMock()
    
    manager.run_now("dispatch")
    
    manager.scheduler.modify_job.assert_called_once()
    args, kwargs = manager.scheduler.modify_job.call_args
    assert args == ("dispatch",)
    assert kwargs["next_run_time"].tzinfo is not None


@pytest.mark.unit
def test_get_scheduler_singleton():
    """Test that get_scheduler returns singleton."""
    assert get_scheduler() is get_scheduler()


@pytest.mark.unit
def test_scheduler_manager_event_listeners():
    """Test scheduler event listeners are registered."""
    manager = SchedulerManager()
    
    assert len(manager.scheduler._listeners) == 2
