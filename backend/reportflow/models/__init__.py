"""
Domain models package.
"""
from reportflow.models.job_priority import JobPriority
from reportflow.models.job_status import JobStatus
from reportflow.models.background_job import BackgroundJob, JobResult
from reportflow.models.job_queue import JobQueue
from reportflow.models.report import Report, ReportStatus
from reportflow.models.schedule_config import (
    DeliveryConfig,
    DeliveryMethod,
    ReportFormat,
    ScheduleConfig,
    ScheduleFrequency,
)
from reportflow.models.scheduled_report import (
    ExecutionStatus,
    ScheduledReport,
    ScheduledReportStatus,
)

__all__ = [
    "JobPriority",
    "JobStatus",
    "BackgroundJob",
    "JobResult",
    "JobQueue",
    "Report",
    "ReportStatus",
    "DeliveryConfig",
    "DeliveryMethod",
    "ReportFormat",
    "ScheduleConfig",
    "ScheduleFrequency",
    "ExecutionStatus",
    "ScheduledReport",
    "ScheduledReportStatus",
]
