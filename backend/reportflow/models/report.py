"""
Report entity - the minimal view of a report the scheduler needs.
"""
import enum
from datetime import datetime
from typing import Optional
from uuid import uuid4

from reportflow.lib.clock import ensure_utc, utc_now
from reportflow.lib.errors import BusinessRuleViolationError, ValidationError


class ReportStatus(str, enum.Enum):
    """Publication status of a report."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class Report:
    """A report definition that scheduled reports point at."""
    
    def __init__(
        self,
        name: str,
        created_by: str,
        id: Optional[str] = None,
        status: ReportStatus = ReportStatus.DRAFT,
        organization_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        if not name or not name.strip():
            raise ValidationError("name", "Report name is required")
        
        self.id = id or str(uuid4())
        self.name = name.strip()
        self.created_by = created_by
        self.status = ReportStatus(status)
        self.organization_id = organization_id
        self.created_at = ensure_utc(created_at) if created_at else utc_now()
        self.updated_at = self.created_at
    
    def is_published(self) -> bool:
        return self.status == ReportStatus.PUBLISHED
    
    def is_archived(self) -> bool:
        return self.status == ReportStatus.ARCHIVED
    
    def publish(self) -> None:
        if self.is_archived():
            raise BusinessRuleViolationError("REPORT_ARCHIVED", "Archived reports cannot be published")
        self.status = ReportStatus.PUBLISHED
        self.updated_at = utc_now()
    
    def archive(self) -> None:
        if self.is_archived():
            raise BusinessRuleViolationError("REPORT_ALREADY_ARCHIVED", "Report is already archived")
        self.status = ReportStatus.ARCHIVED
        self.updated_at = utc_now()
    
    def __repr__(self) -> str:
        return f"<Report(id={self.id}, name={self.name}, status={self.status.value})>"
