"""
Repository contracts and in-memory implementations.
"""
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

__all__ = [
    "JobRepository",
    "QueueRepository",
    "ReportRepository",
    "ScheduledReportRepository",
    "InMemoryJobRepository",
    "InMemoryQueueRepository",
    "InMemoryReportRepository",
    "InMemoryScheduledReportRepository",
]
