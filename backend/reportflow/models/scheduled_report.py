"""
ScheduledReport entity - a recurring execution definition bound to a report.

Status transitions raise BusinessRuleViolationError when illegal; execution
bookkeeping (mark_executed, record_execution_*) is driven by the dispatcher
after each run.
"""
import enum
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional
from uuid import uuid4

from reportflow.lib.clock import ensure_utc, utc_now
from reportflow.lib.errors import BusinessRuleViolationError, InvalidStateError, ValidationError
from reportflow.models.schedule_config import (
    DeliveryConfig,
    ScheduleConfig,
    delivery_config_errors,
    schedule_config_errors,
)
from reportflow.services.schedule_calculator import calculate_next_execution


MAX_NAME_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
RECENT_OUTCOMES_KEPT = 50


class ScheduledReportStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PAUSED = "PAUSED"


class ExecutionStatus(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise ValidationError("name", "Scheduled report name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError("name", f"Scheduled report name cannot exceed {MAX_NAME_LENGTH} characters")
    return name.strip()


def _validate_description(description: Optional[str]) -> Optional[str]:
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            "description",
            f"Scheduled report description cannot exceed {MAX_DESCRIPTION_LENGTH} characters",
        )
    return description


def _raise_first(errors: List[ValidationError]) -> None:
    if errors:
        raise errors[0]


class ScheduledReport:
    """A report that runs on a schedule and is delivered somewhere."""
    
    def __init__(
        self,
        id: str,
        name: str,
        report_id: str,
        schedule_config: ScheduleConfig,
        delivery_config: DeliveryConfig,
        created_by: str,
        next_execution_at: datetime,
        status: ScheduledReportStatus = ScheduledReportStatus.ACTIVE,
        description: Optional[str] = None,
        organization_id: Optional[str] = None,
        execution_count: int = 0,
        failure_count: int = 0,
        last_executed_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ):
        if failure_count > execution_count:
            raise ValidationError("failure_count", "Failure count cannot exceed execution count")
        
        self._id = id
        self._name = name
        self._description = description
        self._report_id = report_id
        self._schedule_config = schedule_config
        self._delivery_config = delivery_config
        self._status = ScheduledReportStatus(status)
        self._created_by = created_by
        self._organization_id = organization_id
        self._next_execution_at = ensure_utc(next_execution_at)
        self._last_executed_at = ensure_utc(last_executed_at) if last_executed_at else None
        self._execution_count = execution_count
        self._failure_count = failure_count
        self._recent_outcomes: Deque[bool] = deque(maxlen=RECENT_OUTCOMES_KEPT)
        
        self._current_execution_id: Optional[str] = None
        self._execution_started_at: Optional[datetime] = None
        self._last_execution_status: Optional[ExecutionStatus] = None
        self._last_execution_duration_ms: Optional[int] = None
        self._last_execution_record_count: Optional[int] = None
        self._last_execution_file_size: Optional[int] = None
        self._last_execution_error: Optional[str] = None
        
        now = ensure_utc(created_at) if created_at else utc_now()
        self._created_at = now
        self._updated_at = now
    
    @classmethod
    def create(
        cls,
        name: str,
        report_id: str,
        schedule_config: ScheduleConfig,
        delivery_config: DeliveryConfig,
        created_by: str,
        description: Optional[str] = None,
        organization_id: Optional[str] = None,
        status: ScheduledReportStatus = ScheduledReportStatus.ACTIVE,
        now: Optional[datetime] = None,
    ) -> "ScheduledReport":
        """
        Validate and build a new scheduled report.
        
        next_execution_at is the first firing strictly after `now`.
        
        Raises:
            ValidationError: first rule violation found
        """
        name = _validate_name(name)
        description = _validate_description(description)
        if not report_id:
            raise ValidationError("report_id", "Report ID is required")
        if not created_by:
            raise ValidationError("created_by", "Creator is required")
        _raise_first(schedule_config_errors(schedule_config))
        _raise_first(delivery_config_errors(delivery_config))
        
        now = ensure_utc(now) if now else utc_now()
        return cls(
            id=str(uuid4()),
            name=name,
            description=description,
            report_id=report_id,
            schedule_config=schedule_config,
            delivery_config=delivery_config,
            status=status,
            created_by=created_by,
            organization_id=organization_id,
            next_execution_at=calculate_next_execution(schedule_config, now),
            created_at=now,
        )
    
    # Getters
    @property
    def id(self) -> str:
        return self._id
    
    @property
    def name(self) -> str:
        return self._name
    
    @property
    def description(self) -> Optional[str]:
        return self._description
    
    @property
    def report_id(self) -> str:
        return self._report_id
    
    @property
    def schedule_config(self) -> ScheduleConfig:
        return self._schedule_config
    
    @property
    def delivery_config(self) -> DeliveryConfig:
        return self._delivery_config
    
    @property
    def status(self) -> ScheduledReportStatus:
        return self._status
    
    @property
    def created_by(self) -> str:
        return self._created_by
    
    @property
    def organization_id(self) -> Optional[str]:
        return self._organization_id
    
    @property
    def created_at(self) -> datetime:
        return self._created_at
    
    @property
    def updated_at(self) -> datetime:
        return self._updated_at
    
    @property
    def last_executed_at(self) -> Optional[datetime]:
        return self._last_executed_at
    
    @property
    def next_execution_at(self) -> datetime:
        return self._next_execution_at
    
    @property
    def execution_count(self) -> int:
        return self._execution_count
    
    @property
    def failure_count(self) -> int:
        return self._failure_count
    
    @property
    def recent_outcomes(self) -> List[bool]:
        """Success flags of the most recent executions, oldest first."""
        return list(self._recent_outcomes)
    
    @property
    def current_execution_id(self) -> Optional[str]:
        return self._current_execution_id
    
    @property
    def last_execution_status(self) -> Optional[ExecutionStatus]:
        return self._last_execution_status
    
    @property
    def last_execution_duration_ms(self) -> Optional[int]:
        return self._last_execution_duration_ms
    
    @property
    def last_execution_error(self) -> Optional[str]:
        return self._last_execution_error
    
    # Updates
    def update_name(self, name: str) -> None:
        self._name = _validate_name(name)
        self._touch()
    
    def update_description(self, description: Optional[str]) -> None:
        self._description = _validate_description(description)
        self._touch()
    
    def update_schedule_config(self, config: ScheduleConfig, now: Optional[datetime] = None) -> None:
        """Replace the schedule and recompute the next firing."""
        _raise_first(schedule_config_errors(config))
        now = self._now(now)
        self._schedule_config = config
        self._next_execution_at = calculate_next_execution(config, now)
        self._touch(now)
    
    def update_delivery_config(self, config: DeliveryConfig) -> None:
        _raise_first(delivery_config_errors(config))
        self._delivery_config = config
        self._touch()
    
    def update_next_execution(self, next_execution_at: datetime) -> None:
        self._next_execution_at = ensure_utc(next_execution_at)
        self._touch()
    
    # Status
    def activate(self, now: Optional[datetime] = None) -> None:
        if self._status == ScheduledReportStatus.ACTIVE:
            raise BusinessRuleViolationError("ALREADY_ACTIVE", "Scheduled report is already active")
        now = self._now(now)
        self._status = ScheduledReportStatus.ACTIVE
        self._next_execution_at = calculate_next_execution(self._schedule_config, now)
        self._touch(now)
    
    def deactivate(self) -> None:
        if self._status == ScheduledReportStatus.INACTIVE:
            raise BusinessRuleViolationError("ALREADY_INACTIVE", "Scheduled report is already inactive")
        self._status = ScheduledReportStatus.INACTIVE
        self._touch()
    
    def pause(self) -> None:
        if self._status != ScheduledReportStatus.ACTIVE:
            raise BusinessRuleViolationError(
                "INVALID_STATUS_FOR_PAUSE", "Only active scheduled reports can be paused"
            )
        self._status = ScheduledReportStatus.PAUSED
        self._touch()
    
    def resume(self, now: Optional[datetime] = None) -> None:
        if self._status != ScheduledReportStatus.PAUSED:
            raise BusinessRuleViolationError(
                "INVALID_STATUS_FOR_RESUME", "Only paused scheduled reports can be resumed"
            )
        now = self._now(now)
        self._status = ScheduledReportStatus.ACTIVE
        self._next_execution_at = calculate_next_execution(self._schedule_config, now)
        self._touch(now)
    
    # Execution bookkeeping
    def mark_executed(self, success: bool, now: Optional[datetime] = None) -> None:
        """Count one run and move next_execution_at past it."""
        now = self._now(now)
        self._last_executed_at = now
        self._record_outcome(success)
        self._next_execution_at = calculate_next_execution(self._schedule_config, now)
        self._touch(now)
    
    def record_execution_start(self, execution_id: str, started_at: Optional[datetime] = None) -> None:
        started_at = self._now(started_at)
        self._current_execution_id = execution_id
        self._execution_started_at = started_at
        self._last_execution_status = ExecutionStatus.RUNNING
        self._touch(started_at)
    
    def record_execution_completion(
        self,
        execution_id: str,
        status: ExecutionStatus,
        duration_ms: int,
        record_count: Optional[int] = None,
        file_size: Optional[int] = None,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Close the execution opened by record_execution_start.
        
        Raises:
            InvalidStateError: execution_id is not the one currently running
        """
        if self._current_execution_id != execution_id:
            raise InvalidStateError(
                f"Execution ID mismatch. Expected {self._current_execution_id}, got {execution_id}",
                details={"expected": self._current_execution_id, "actual": execution_id},
            )
        
        now = self._now(now)
        self._last_executed_at = now
        self._last_execution_status = status
        self._last_execution_duration_ms = duration_ms
        self._last_execution_record_count = record_count
        self._last_execution_file_size = file_size
        self._last_execution_error = error_message
        self._record_outcome(status != ExecutionStatus.FAILED)
        self._current_execution_id = None
        self._execution_started_at = None
        self._touch(now)
    
    # Queries
    def is_active(self) -> bool:
        return self._status == ScheduledReportStatus.ACTIVE
    
    def is_paused(self) -> bool:
        return self._status == ScheduledReportStatus.PAUSED
    
    def is_inactive(self) -> bool:
        return self._status == ScheduledReportStatus.INACTIVE
    
    def is_due(self, now: Optional[datetime] = None) -> bool:
        return self.is_active() and self._now(now) >= self._next_execution_at
    
    def belongs_to_organization(self, organization_id: Optional[str]) -> bool:
        return organization_id is not None and self._organization_id == organization_id
    
    def is_created_by(self, user_id: str) -> bool:
        return self._created_by == user_id
    
    def has_high_failure_rate(self, threshold: float = 0.5) -> bool:
        """More than `threshold` of all executions failed."""
        if self._execution_count == 0:
            return False
        return self._failure_count / self._execution_count > threshold
    
    def get_success_rate(self) -> float:
        """Successful share of executions in percent; 100 before the first run."""
        if self._execution_count == 0:
            return 100.0
        return (self._execution_count - self._failure_count) / self._execution_count * 100
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "name": self._name,
            "description": self._description,
            "report_id": self._report_id,
            "status": self._status.value,
            "schedule_config": self._schedule_config.model_dump(mode="json"),
            "delivery_config": self._delivery_config.model_dump(mode="json"),
            "created_by": self._created_by,
            "organization_id": self._organization_id,
            "next_execution_at": self._next_execution_at,
            "last_executed_at": self._last_executed_at,
            "execution_count": self._execution_count,
            "failure_count": self._failure_count,
        }
    
    def _record_outcome(self, success: bool) -> None:
        self._execution_count += 1
        if not success:
            self._failure_count += 1
        self._recent_outcomes.append(success)
    
    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now else utc_now()
    
    def _touch(self, now: Optional[datetime] = None) -> None:
        self._updated_at = self._now(now)
    
    def __repr__(self) -> str:
        return (
            f"<ScheduledReport(id={self._id}, name={self._name}, status={self._status.value}, "
            f"next={self._next_execution_at.isoformat()})>"
        )
