"""
Shared fixtures: a frozen clock, fresh in-memory repositories and services.
"""
from datetime import datetime, timezone

import pytest

from reportflow.lib.clock import FrozenClock, SystemClock, set_clock
from reportflow.lib.metrics import MetricsCollector
from reportflow.lib.policy import reset_all_policies
from reportflow.models.report import Report, ReportStatus
from reportflow.models.schedule_config import (
    DeliveryConfig,
    DeliveryMethod,
    ScheduleConfig,
    ScheduleFrequency,
)
from reportflow.repositories.memory import (
    InMemoryJobRepository,
    InMemoryQueueRepository,
    InMemoryReportRepository,
    InMemoryScheduledReportRepository,
)
from reportflow.services.job_queue_service import JobQueueService
from reportflow.services.report_scheduling_service import (
    ReportSchedulingService,
    ScheduleReportRequest,
)
from reportflow.services.scheduled_report_service import ScheduledReportService


# Monday
NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture(autouse=True)
def _pin_default_clock(clock):
    """Entities fall back to the process clock; keep it on the frozen one."""
    set_clock(clock)
    yield
    set_clock(SystemClock())


@pytest.fixture(autouse=True)
def _reset_policies():
    reset_all_policies()
    yield
    reset_all_policies()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def job_repository():
    return InMemoryJobRepository()


@pytest.fixture
def queue_repository():
    return InMemoryQueueRepository()


@pytest.fixture
def report_repository():
    return InMemoryReportRepository()


@pytest.fixture
def scheduled_report_repository():
    return InMemoryScheduledReportRepository()


@pytest.fixture
def job_queue_service(job_repository, queue_repository, clock, metrics):
    return JobQueueService(job_repository, queue_repository, clock=clock, metrics=metrics)


@pytest.fixture
def scheduling_service(clock):
    return ReportSchedulingService(clock=clock)


@pytest.fixture
def scheduled_report_service(report_repository, scheduled_report_repository, scheduling_service, clock):
    return ScheduledReportService(
        report_repository,
        scheduled_report_repository,
        scheduling=scheduling_service,
        clock=clock,
    )


@pytest.fixture
def published_report():
    return Report(
        name="Monthly revenue",
        created_by="user-1",
        status=ReportStatus.PUBLISHED,
        organization_id="org-1",
    )


@pytest.fixture
def daily_config():
    return ScheduleConfig(frequency=ScheduleFrequency.DAILY, hour=9, minute=0)


@pytest.fixture
def email_delivery():
    return DeliveryConfig(method=DeliveryMethod.EMAIL, recipients=["finance@example.com"])


@pytest.fixture
def schedule_request(published_report, daily_config, email_delivery):
    """Factory for schedule requests against the published report."""
    def make(**overrides) -> ScheduleReportRequest:
        fields = {
            "name": "Daily revenue",
            "report_id": published_report.id,
            "schedule_config": daily_config,
            "delivery_config": email_delivery,
            "created_by": "user-1",
            "organization_id": "org-1",
        }
        fields.update(overrides)
        return ScheduleReportRequest(**fields)
    return make
