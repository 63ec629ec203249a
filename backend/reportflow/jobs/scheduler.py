"""
Scheduler runner using APScheduler.

A singleton BackgroundScheduler drives the engine's periodic work
(dispatching due reports, draining queues, waking delayed jobs, retention
cleanup). Runs of the same job never overlap and missed runs coalesce, so a
slow tick cannot pile up behind itself.

Usage:
    scheduler = get_scheduler()
    register_engine_jobs(scheduler, engine)  # reportflow.jobs.engine
    scheduler.start()
"""
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from reportflow.lib.logging import get_logger


logger = get_logger(__name__)


# Singleton scheduler instance
_scheduler: Optional["SchedulerManager"] = None


class SchedulerManager:
    """
    Manager for APScheduler with lifecycle management.
    """
    
    def __init__(self):
        """Initialize scheduler manager."""
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 300,  # 5 minutes grace period
            }
        )
        
        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        
        logger.info("SchedulerManager initialized")
    
    def _on_job_executed(self, event):
        logger.debug(f"Engine job {event.job_id} finished (result: {event.retval})")
    
    def _on_job_error(self, event):
        logger.error(
            f"Engine job {event.job_id} raised {event.exception.__class__.__name__}: "
            f"{event.exception}",
            exc_info=event.exception
        )
    
    @property
    def running(self) -> bool:
        return self.scheduler.running
    
    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.warning("Scheduler already running")
    
    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler.
        
        Args:
            wait: Whether to wait for running jobs to finish
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown")
        else:
            logger.warning("Scheduler not running")
    
    def add_cron_job(
        self,
        func: Callable,
        job_id: str,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
        day_of_week: Optional[str] = None,
        **kwargs
    ) -> None:
        """
        Run func on a UTC wall-clock schedule.
        
        Args:
            func: Synchronous callable
            job_id: Unique job identifier (re-adding replaces the job)
            hour: Hour to run (0-23)
            minute: Minute to run (0-59)
            day_of_week: Day of week (mon,tue,wed,thu,fri,sat,sun)
            **kwargs: Additional APScheduler job options
        """
        trigger = CronTrigger(hour=hour, minute=minute, day_of_week=day_of_week, timezone="UTC")
        self._schedule(func, job_id, trigger, **kwargs)
    
    def add_interval_job(
        self,
        func: Callable,
        job_id: str,
        seconds: Optional[int] = None,
        minutes: Optional[int] = None,
        hours: Optional[int] = None,
        **kwargs
    ) -> None:
        """
        Run func every fixed interval.
        
        Raises:
            ValueError: no interval given
        """
        if not any([seconds, minutes, hours]):
            raise ValueError("At least one of seconds, minutes, or hours must be specified")
        
        trigger = IntervalTrigger(
            seconds=seconds or 0,
            minutes=minutes or 0,
            hours=hours or 0,
            timezone="UTC"
        )
        self._schedule(func, job_id, trigger, **kwargs)
    
    def run_now(self, job_id: str) -> None:
        """Bring a registered job's next run forward to now."""
        self.scheduler.modify_job(job_id, next_run_time=datetime.now(timezone.utc))
        logger.info(f"Triggered job {job_id} manually")
    
    def _schedule(self, func: Callable, job_id: str, trigger, **kwargs) -> None:
        self.scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, **kwargs)
        logger.info(f"Scheduled engine job {job_id} ({trigger})")
    
    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")
    
    def get_jobs(self) -> list:
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()


def get_scheduler() -> SchedulerManager:
    """
    Get singleton scheduler instance.
    
    Returns:
        SchedulerManager instance
    """
    global _scheduler
    
    if _scheduler is None:
        _scheduler = SchedulerManager()
    
    return _scheduler
