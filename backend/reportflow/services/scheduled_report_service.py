"""
Scheduled report service.

Application-level operations on scheduled reports: creation against the
report store, status changes, and recording run outcomes with automatic
pausing when a report keeps failing.
"""
from datetime import datetime
from typing import List, Optional

from reportflow.lib.clock import Clock, ensure_utc, get_clock
from reportflow.lib.errors import ConflictError, NotFoundError
from reportflow.lib.logging import get_logger
from reportflow.models.scheduled_report import ExecutionStatus, ScheduledReport
from reportflow.repositories.base import ReportRepository, ScheduledReportRepository
from reportflow.services.report_scheduling_service import (
    ReportSchedulingService,
    ScheduleReportRequest,
)


logger = get_logger(__name__)


class ScheduledReportService:
    
    def __init__(
        self,
        report_repository: ReportRepository,
        scheduled_report_repository: ScheduledReportRepository,
        scheduling: Optional[ReportSchedulingService] = None,
        clock: Optional[Clock] = None,
    ):
        self.reports = report_repository
        self.scheduled_reports = scheduled_report_repository
        self._clock = clock
        self.scheduling = scheduling or ReportSchedulingService(clock=clock)
    
    @property
    def clock(self) -> Clock:
        return self._clock or get_clock()
    
    async def create_scheduled_report(self, request: ScheduleReportRequest) -> ScheduledReport:
        """
        Schedule an existing report.
        
        Raises:
            NotFoundError: report does not exist
            ConflictError: name already used by this creator in this organization
            ValidationError, BusinessRuleViolationError: see schedule_report
        """
        report = await self.reports.find_by_id(request.report_id)
        if report is None:
            raise NotFoundError("Report", request.report_id)
        
        if await self.scheduled_reports.exists_by_name(
            request.name.strip(), request.created_by, request.organization_id
        ):
            raise ConflictError(
                f"Scheduled report '{request.name}' already exists",
                details={"name": request.name, "created_by": request.created_by},
            )
        
        scheduled = self.scheduling.schedule_report(report, request)
        return await self.scheduled_reports.save(scheduled)
    
    async def get_scheduled_report(self, scheduled_report_id: str) -> ScheduledReport:
        scheduled = await self.scheduled_reports.find_by_id(scheduled_report_id)
        if scheduled is None:
            raise NotFoundError("ScheduledReport", scheduled_report_id)
        return scheduled
    
    async def pause_scheduled_report(self, scheduled_report_id: str) -> ScheduledReport:
        scheduled = await self.get_scheduled_report(scheduled_report_id)
        scheduled.pause()
        logger.info(f"Paused scheduled report {scheduled.name}", extra={"scheduled_report_id": scheduled.id})
        return await self.scheduled_reports.save(scheduled)
    
    async def resume_scheduled_report(self, scheduled_report_id: str) -> ScheduledReport:
        scheduled = await self.get_scheduled_report(scheduled_report_id)
        scheduled.resume(self.clock.now())
        logger.info(f"Resumed scheduled report {scheduled.name}", extra={"scheduled_report_id": scheduled.id})
        return await self.scheduled_reports.save(scheduled)
    
    async def delete_scheduled_report(self, scheduled_report_id: str) -> None:
        if not await self.scheduled_reports.delete_by_id(scheduled_report_id):
            raise NotFoundError("ScheduledReport", scheduled_report_id)
        logger.info(f"Deleted scheduled report {scheduled_report_id}")
    
    async def record_execution(
        self,
        scheduled_report_id: str,
        success: bool,
        now: Optional[datetime] = None,
        execution_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
        duration_ms: int = 0,
        error_message: Optional[str] = None,
    ) -> ScheduledReport:
        """
        Count a finished run and pause the report if it keeps failing.
        
        When execution_id is the run opened by the dispatcher, its details
        are recorded against it; otherwise only the outcome is counted.
        next_execution_at is left where the dispatcher put it.
        """
        scheduled = await self.get_scheduled_report(scheduled_report_id)
        now = ensure_utc(now) if now else self.clock.now()
        
        if execution_id is not None and execution_id == scheduled.current_execution_id:
            scheduled.record_execution_completion(
                execution_id,
                status or (ExecutionStatus.COMPLETED if success else ExecutionStatus.FAILED),
                duration_ms,
                error_message=error_message,
                now=now,
            )
        else:
            next_execution_at = scheduled.next_execution_at
            scheduled.mark_executed(success, now)
            if next_execution_at > now:
                scheduled.update_next_execution(next_execution_at)
        
        if not success and scheduled.is_active():
            recommendation = self.scheduling.should_pause_for_failures(scheduled)
            if recommendation.should_pause:
                scheduled.pause()
                logger.warning(
                    f"Auto-paused scheduled report {scheduled.name}: {recommendation.reason}",
                    extra={
                        "scheduled_report_id": scheduled.id,
                        "suggested_action": recommendation.suggested_action,
                    }
                )
        
        return await self.scheduled_reports.save(scheduled)
    
    async def find_due(self, now: Optional[datetime] = None) -> List[ScheduledReport]:
        now = ensure_utc(now) if now else self.clock.now()
        return await self.scheduled_reports.find_due_for_execution(now)
    
    async def list_scheduled_reports(self) -> List[ScheduledReport]:
        return await self.scheduled_reports.find_all()
