"""
Schedule and delivery value objects for scheduled reports.

Both are immutable pydantic models. Field ranges are deliberately not
enforced at construction time: an out-of-range hour must still reach
ReportSchedulingService.validate_schedule so it can be reported as an
error instead of blowing up while parsing.
"""
import enum
import re
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from reportflow.lib.errors import ValidationError


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_http_url = TypeAdapter(AnyHttpUrl)


class ScheduleFrequency(str, enum.Enum):
    """How often a scheduled report fires."""
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class DeliveryMethod(str, enum.Enum):
    """Channel used to deliver the rendered report."""
    EMAIL = "EMAIL"
    SMS = "SMS"
    WEBHOOK = "WEBHOOK"
    DOWNLOAD = "DOWNLOAD"


class ReportFormat(str, enum.Enum):
    """Export format of the delivered report."""
    PDF = "PDF"
    EXCEL = "EXCEL"
    CSV = "CSV"


class ScheduleConfig(BaseModel):
    """
    When a scheduled report fires.
    
    day_of_week uses 0 = Sunday. month_of_year anchors QUARTERLY (every
    third month starting from it) and YEARLY schedules; it defaults to
    January. QUARTERLY and YEARLY fall back to day 1 without day_of_month.
    """
    
    model_config = ConfigDict(frozen=True)
    
    frequency: ScheduleFrequency
    timezone: str = "UTC"
    hour: int = 0
    minute: int = 0
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    month_of_year: Optional[int] = None


class DeliveryConfig(BaseModel):
    """Where and how a scheduled report is delivered."""
    
    model_config = ConfigDict(frozen=True)
    
    method: DeliveryMethod
    recipients: List[str] = Field(default_factory=list)
    webhook_url: Optional[str] = None
    format: ReportFormat = ReportFormat.PDF
    include_charts: bool = False
    subject: Optional[str] = None
    message: Optional[str] = None


def is_valid_timezone(name: Optional[str]) -> bool:
    """True when name is a recognized IANA timezone identifier."""
    if not name or not name.strip():
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def is_valid_email(address: str) -> bool:
    return bool(address) and bool(EMAIL_PATTERN.match(address))


def is_valid_webhook_url(url: Optional[str]) -> bool:
    """Only absolute http(s) URLs are accepted."""
    if not url or not url.strip():
        return False
    try:
        _http_url.validate_python(url)
    except PydanticValidationError:
        return False
    return True


def schedule_config_errors(config: ScheduleConfig) -> List[ValidationError]:
    """
    Collect every hard rule violation in a schedule configuration.
    
    Returns:
        List of field-named ValidationErrors (empty when valid)
    """
    errors: List[ValidationError] = []
    
    frequency = config.frequency
    if not isinstance(frequency, ScheduleFrequency):
        try:
            frequency = ScheduleFrequency(frequency)
        except ValueError:
            errors.append(ValidationError("frequency", f"Invalid schedule frequency: {config.frequency}"))
            frequency = None
    
    if not isinstance(config.hour, int) or not 0 <= config.hour <= 23:
        errors.append(ValidationError("hour", "Hour must be between 0 and 23"))
    
    if not isinstance(config.minute, int) or not 0 <= config.minute <= 59:
        errors.append(ValidationError("minute", "Minute must be between 0 and 59"))
    
    if frequency == ScheduleFrequency.WEEKLY and config.day_of_week is None:
        errors.append(ValidationError("day_of_week", "Day of week is required for weekly frequency"))
    elif config.day_of_week is not None and not 0 <= config.day_of_week <= 6:
        errors.append(ValidationError("day_of_week", "Day of week must be between 0 and 6"))
    
    if frequency == ScheduleFrequency.MONTHLY and config.day_of_month is None:
        errors.append(ValidationError("day_of_month", "Day of month is required for monthly frequency"))
    elif config.day_of_month is not None and not 1 <= config.day_of_month <= 31:
        errors.append(ValidationError("day_of_month", "Day of month must be between 1 and 31"))
    
    if config.month_of_year is not None and not 1 <= config.month_of_year <= 12:
        errors.append(ValidationError("month_of_year", "Month of year must be between 1 and 12"))
    
    if not is_valid_timezone(config.timezone):
        errors.append(ValidationError("timezone", f"Invalid timezone: {config.timezone}"))
    
    return errors


def delivery_config_errors(config: DeliveryConfig) -> List[ValidationError]:
    """
    Collect every hard rule violation in a delivery configuration.
    
    Returns:
        List of field-named ValidationErrors (empty when valid)
    """
    errors: List[ValidationError] = []
    
    method = config.method
    if not isinstance(method, DeliveryMethod):
        try:
            method = DeliveryMethod(method)
        except ValueError:
            errors.append(ValidationError("method", f"Invalid delivery method: {config.method}"))
            method = None
    
    if method == DeliveryMethod.EMAIL:
        if not config.recipients:
            errors.append(ValidationError("recipients", "Email recipients are required for email delivery"))
        for index, address in enumerate(config.recipients):
            if not is_valid_email(address):
                errors.append(ValidationError("recipients", f"Invalid email at index {index}: {address}"))
    
    if method == DeliveryMethod.SMS and not config.recipients:
        errors.append(ValidationError("recipients", "Phone recipients are required for SMS delivery"))
    
    if method == DeliveryMethod.WEBHOOK and not is_valid_webhook_url(config.webhook_url):
        errors.append(ValidationError("webhook_url", "A valid http(s) webhook URL is required for webhook delivery"))
    
    try:
        ReportFormat(config.format)
    except ValueError:
        errors.append(ValidationError("format", f"Invalid format: {config.format}"))
    
    return errors
