"""
Report scheduling service.

Scheduling rules, execution planning, conflict detection and the
heuristics that recommend frequencies or pausing. Every method is a pure
function of its arguments plus the injected clock; nothing here touches
storage.
"""
import enum
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from reportflow.lib.clock import Clock, ensure_utc, get_clock
from reportflow.lib.errors import BusinessRuleViolationError, ValidationError
from reportflow.lib.logging import get_logger
from reportflow.lib.policy import SchedulingPolicy, get_scheduling_policy
from reportflow.models.report import Report
from reportflow.models.schedule_config import (
    DeliveryConfig,
    ScheduleConfig,
    ScheduleFrequency,
    delivery_config_errors,
    schedule_config_errors,
)
from reportflow.models.scheduled_report import ScheduledReport, ScheduledReportStatus
from reportflow.services.schedule_calculator import executions_until, next_executions


logger = get_logger(__name__)


ESTIMATED_DURATION_MS: Dict[ScheduleFrequency, int] = {
    ScheduleFrequency.HOURLY: 2 * 60 * 1000,
    ScheduleFrequency.DAILY: 5 * 60 * 1000,
    ScheduleFrequency.WEEKLY: 15 * 60 * 1000,
    ScheduleFrequency.MONTHLY: 30 * 60 * 1000,
    ScheduleFrequency.QUARTERLY: 45 * 60 * 1000,
    ScheduleFrequency.YEARLY: 45 * 60 * 1000,
}

WEEKEND_DAYS = (0, 6)


class PlanPriority(str, enum.Enum):
    """Tie-break ordering inside an execution plan."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_PRIORITY_ORDER = {PlanPriority.HIGH: 0, PlanPriority.MEDIUM: 1, PlanPriority.LOW: 2}


class ScheduleReportRequest(BaseModel):
    """Input for scheduling a report."""
    
    name: str
    description: Optional[str] = None
    report_id: str
    schedule_config: ScheduleConfig
    delivery_config: DeliveryConfig
    created_by: str
    organization_id: Optional[str] = None


class ScheduleValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    next_executions: List[datetime] = Field(default_factory=list)


class TimeWindow(BaseModel):
    """Closed interval [start, end]."""
    
    start: datetime
    end: datetime
    
    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if ensure_utc(self.end) < ensure_utc(self.start):
            raise ValueError("end must not be before start")
        return self


class ExecutionPlan(BaseModel):
    """One planned firing of a scheduled report."""
    
    scheduled_report_id: str
    name: str
    next_execution_at: datetime
    estimated_duration_ms: int
    priority: PlanPriority
    dependencies: List[str] = Field(default_factory=list)


class ScheduleConflict(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)
    
    time: datetime
    reports: List[ScheduledReport]


class ScheduleSuggestion(BaseModel):
    scheduled_report_id: str
    current_time: datetime
    suggested_time: datetime
    reason: str


class ScheduleOptimization(BaseModel):
    conflicts: List[ScheduleConflict] = Field(default_factory=list)
    suggestions: List[ScheduleSuggestion] = Field(default_factory=list)


class ExecutionHistoryEntry(BaseModel):
    """One past run of a scheduled report and how its output was used."""
    
    executed_at: datetime
    success: bool
    access_count: float = Field(ge=0)
    avg_access_delay_ms: float = Field(ge=0, description="Average time from execution to first access")


class FrequencySuggestion(BaseModel):
    suggested_frequency: ScheduleFrequency
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: List[str] = Field(default_factory=list)


class PauseRecommendation(BaseModel):
    should_pause: bool
    reason: Optional[str] = None
    suggested_action: Optional[str] = None


class ReportSchedulingService:
    """
    Scheduling algorithms for recurring reports.
    
    Holds no state besides its clock and policy, so one instance can be
    shared freely.
    """
    
    def __init__(self, clock: Optional[Clock] = None, policy: Optional[SchedulingPolicy] = None):
        self._clock = clock
        self._policy = policy
    
    @property
    def clock(self) -> Clock:
        return self._clock or get_clock()
    
    @property
    def policy(self) -> SchedulingPolicy:
        return self._policy or get_scheduling_policy()
    
    def schedule_report(self, report: Report, request: ScheduleReportRequest) -> ScheduledReport:
        """
        Build an ACTIVE scheduled report for a published report.
        
        Args:
            report: The report being scheduled
            request: Name, configs and ownership of the new schedule
        
        Returns:
            New ScheduledReport with next_execution_at computed from now
        
        Raises:
            ValidationError: missing fields or invalid schedule/delivery config
            BusinessRuleViolationError: report unpublished or archived
        """
        if not request.name or not request.name.strip():
            raise ValidationError("name", "Scheduled report name is required")
        if not request.report_id:
            raise ValidationError("report_id", "Report ID is required")
        if not request.created_by:
            raise ValidationError("created_by", "Creator is required")
        
        for errors in (
            schedule_config_errors(request.schedule_config),
            delivery_config_errors(request.delivery_config),
        ):
            if errors:
                raise errors[0]
        
        if report.is_archived():
            raise BusinessRuleViolationError("REPORT_ARCHIVED", "Archived reports cannot be scheduled")
        if not report.is_published():
            raise BusinessRuleViolationError("REPORT_NOT_PUBLISHED", "Only published reports can be scheduled")
        
        scheduled = ScheduledReport.create(
            name=request.name,
            description=request.description,
            report_id=request.report_id,
            schedule_config=request.schedule_config,
            delivery_config=request.delivery_config,
            created_by=request.created_by,
            organization_id=request.organization_id,
            status=ScheduledReportStatus.ACTIVE,
            now=self.clock.now(),
        )
        logger.info(
            f"Scheduled report {scheduled.name}",
            extra={
                "scheduled_report_id": scheduled.id,
                "report_id": scheduled.report_id,
                "frequency": scheduled.schedule_config.frequency.value,
                "next_execution_at": scheduled.next_execution_at.isoformat(),
            }
        )
        return scheduled
    
    def validate_schedule(self, config: ScheduleConfig) -> ScheduleValidationResult:
        """
        Check a schedule and preview its next firings.
        
        Errors are hard rule violations; warnings are soft heuristics
        (weekend, off-hours, day of month past 28). Warnings and the
        preview are only produced for a valid schedule.
        """
        errors = [error.reason for error in schedule_config_errors(config)]
        if errors:
            return ScheduleValidationResult(is_valid=False, errors=errors)
        
        policy = self.policy
        preview = next_executions(config, self.clock.now(), policy.next_execution_preview_count)
        
        warnings: List[str] = []
        if config.frequency == ScheduleFrequency.WEEKLY and config.day_of_week in WEEKEND_DAYS:
            warnings.append("Scheduled for weekend - consider business day execution")
        
        if config.frequency != ScheduleFrequency.HOURLY and (
            config.hour < policy.business_hours_start or config.hour > policy.business_hours_end
        ):
            warnings.append("Scheduled for off-hours - consider business hours for better delivery")
        
        if config.frequency == ScheduleFrequency.MONTHLY and config.day_of_month and config.day_of_month > 28:
            warnings.append(
                "Day of month > 28 may cause issues in February - runs on the last day of shorter months"
            )
        
        return ScheduleValidationResult(
            is_valid=True,
            warnings=warnings,
            next_executions=preview,
        )
    
    def create_execution_plan(
        self,
        scheduled_reports: List[ScheduledReport],
        time_window: TimeWindow,
    ) -> List[ExecutionPlan]:
        """
        Every firing of the active reports that falls inside the window.
        
        Reports whose next_execution_at lies outside the window are left
        out entirely. Entries are ordered by time, then HIGH > MEDIUM > LOW.
        """
        start, end = ensure_utc(time_window.start), ensure_utc(time_window.end)
        plans: List[ExecutionPlan] = []
        
        for scheduled in scheduled_reports:
            if not scheduled.is_active():
                continue
            if not start <= scheduled.next_execution_at <= end:
                continue
            
            priority = self._plan_priority(scheduled)
            duration = ESTIMATED_DURATION_MS[scheduled.schedule_config.frequency]
            for execution_at in executions_until(scheduled.schedule_config, scheduled.next_execution_at, end):
                plans.append(ExecutionPlan(
                    scheduled_report_id=scheduled.id,
                    name=scheduled.name,
                    next_execution_at=execution_at,
                    estimated_duration_ms=duration,
                    priority=priority,
                ))
        
        plans.sort(key=lambda plan: (plan.next_execution_at, _PRIORITY_ORDER[plan.priority]))
        return plans
    
    def optimize_schedule(
        self,
        scheduled_reports: List[ScheduledReport],
        max_concurrent: Optional[int] = None,
    ) -> ScheduleOptimization:
        """
        Find instants with more active reports than allowed and suggest moves.
        
        Reports beyond the limit at an instant are staggered forward by the
        policy interval (first excess +1 step, second +2, ...), skipping any
        slot that is already full.
        
        Raises:
            ValidationError: max_concurrent < 1
        """
        policy = self.policy
        limit = policy.max_concurrent_executions if max_concurrent is None else max_concurrent
        if limit < 1:
            raise ValidationError("max_concurrent", "Max concurrent executions must be at least 1")
        stagger = timedelta(minutes=policy.conflict_stagger_minutes)
        
        groups: Dict[datetime, List[ScheduledReport]] = defaultdict(list)
        for scheduled in scheduled_reports:
            if scheduled.is_active():
                groups[scheduled.next_execution_at].append(scheduled)
        
        occupancy: Counter = Counter({time: min(len(reports), limit) for time, reports in groups.items()})
        result = ScheduleOptimization()
        
        for time in sorted(groups):
            reports = groups[time]
            if len(reports) <= limit:
                continue
            
            result.conflicts.append(ScheduleConflict(time=time, reports=reports))
            reason = (
                f"Avoid concurrent execution conflict "
                f"({len(reports)} reports scheduled at {time.isoformat()}, limit {limit})"
            )
            for index, scheduled in enumerate(reports[limit:], start=1):
                slot = time + stagger * index
                while occupancy[slot] >= limit:
                    slot += stagger
                occupancy[slot] += 1
                result.suggestions.append(ScheduleSuggestion(
                    scheduled_report_id=scheduled.id,
                    current_time=time,
                    suggested_time=slot,
                    reason=reason,
                ))
        
        if result.conflicts:
            logger.warning(
                "Schedule conflicts detected",
                extra={"conflicts": len(result.conflicts), "suggestions": len(result.suggestions)}
            )
        return result
    
    def suggest_optimal_frequency(self, execution_history: List[ExecutionHistoryEntry]) -> FrequencySuggestion:
        """
        Recommend a frequency from how past runs were consumed.
        
        A long delay between execution and first access points to WEEKLY
        whatever the access count; otherwise high access points to DAILY and
        low access to WEEKLY. A poor success ratio lowers the confidence.
        """
        policy = self.policy
        if len(execution_history) < policy.min_history_samples:
            return FrequencySuggestion(
                suggested_frequency=ScheduleFrequency.DAILY,
                confidence=policy.insufficient_history_confidence,
                reasoning=["Insufficient execution history for accurate recommendation"],
            )
        
        samples = len(execution_history)
        avg_access_count = sum(entry.access_count for entry in execution_history) / samples
        avg_access_delay = sum(entry.avg_access_delay_ms for entry in execution_history) / samples
        reasoning: List[str] = []
        
        if avg_access_delay > policy.long_access_delay_ms:
            frequency = ScheduleFrequency.WEEKLY
            reasoning.append("Long delay between execution and access suggests lower frequency")
        elif avg_access_count > policy.high_access_count:
            frequency = ScheduleFrequency.DAILY
            reasoning.append("High access count suggests daily frequency")
        elif avg_access_count < policy.low_access_count:
            frequency = ScheduleFrequency.WEEKLY
            reasoning.append("Low access count suggests weekly frequency is sufficient")
        else:
            frequency = ScheduleFrequency.DAILY
            reasoning.append("Moderate usage patterns suggest daily frequency")
        
        confidence = policy.base_confidence
        success_ratio = sum(1 for entry in execution_history if entry.success) / samples
        if success_ratio < policy.min_success_ratio:
            confidence = max(confidence * policy.failure_confidence_factor, policy.confidence_floor)
            reasoning.append("Low success rate reduces confidence in recommendation")
        
        return FrequencySuggestion(
            suggested_frequency=frequency,
            confidence=confidence,
            reasoning=reasoning,
        )
    
    def should_pause_for_failures(self, scheduled_report: ScheduledReport) -> PauseRecommendation:
        """
        Decide whether a scheduled report keeps failing badly enough to pause.
        
        Checks the overall failure ratio first, then failures among the most
        recent runs. Without recorded recent outcomes the lifetime counters
        of a young report stand in for them.
        """
        policy = self.policy
        if scheduled_report.has_high_failure_rate(policy.high_failure_rate):
            failed_pct = 100 - scheduled_report.get_success_rate()
            return PauseRecommendation(
                should_pause=True,
                reason=f"High failure rate: {failed_pct:.0f}% of executions failed",
                suggested_action="Review report configuration and data sources",
            )
        
        if self._recent_failure_count(scheduled_report) > policy.recent_failure_threshold:
            return PauseRecommendation(
                should_pause=True,
                reason="Multiple recent failures detected",
                suggested_action="Check report dependencies and data availability",
            )
        
        return PauseRecommendation(should_pause=False)
    
    def _recent_failure_count(self, scheduled_report: ScheduledReport) -> int:
        window = self.policy.recent_failure_window
        outcomes = scheduled_report.recent_outcomes
        if outcomes:
            return sum(1 for success in outcomes[-window:] if not success)
        if scheduled_report.execution_count < window:
            return scheduled_report.failure_count
        return 0
    
    def _plan_priority(self, scheduled_report: ScheduledReport) -> PlanPriority:
        policy = self.policy
        success_rate = scheduled_report.get_success_rate()
        if (
            success_rate > policy.high_priority_success_rate
            and scheduled_report.execution_count > policy.high_priority_min_executions
        ):
            return PlanPriority.HIGH
        if success_rate > policy.medium_priority_success_rate:
            return PlanPriority.MEDIUM
        return PlanPriority.LOW
