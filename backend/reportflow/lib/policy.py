"""
Tunable policy constants for retries and scheduling heuristics.

Provides centralized configuration for:
- Retry backoff (base delay, default attempt budget)
- Schedule warnings (business-hours band)
- Conflict resolution (concurrency limit, stagger interval)
- Frequency suggestions and auto-pause thresholds
- Execution-plan priority tagging

None of these numbers are contracts; they only shape the heuristics.
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from reportflow.lib.logging import get_logger


logger = get_logger(__name__)


class RetryPolicy(BaseModel):
    """Defaults applied to jobs whose queue does not override them."""
    
    default_backoff_ms: int = Field(
        default=5000,
        ge=1,
        description="Base delay for exponential backoff: base * 2^(attempts-1)"
    )
    default_max_attempts: int = Field(
        default=3,
        ge=1,
        le=100,
        description="Attempt budget for queues created without max_retries"
    )
    
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "default_backoff_ms": 5000,
                "default_max_attempts": 3,
            }
        }
    )


class SchedulingPolicy(BaseModel):
    """Thresholds used by ReportSchedulingService."""
    
    # Schedule warnings
    business_hours_start: int = Field(
        default=7,
        ge=0,
        le=23,
        description="Hours before this trigger an off-hours warning"
    )
    business_hours_end: int = Field(
        default=19,
        ge=0,
        le=23,
        description="Hours after this trigger an off-hours warning"
    )
    next_execution_preview_count: int = Field(default=5, ge=1, le=50)
    
    # Conflict detection
    max_concurrent_executions: int = Field(default=5, ge=1, le=1000)
    conflict_stagger_minutes: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Spacing between suggested slots for excess reports"
    )
    
    # Frequency suggestions
    min_history_samples: int = Field(default=5, ge=1)
    insufficient_history_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    base_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    high_access_count: float = Field(default=10.0, ge=0.0)
    low_access_count: float = Field(default=1.0, ge=0.0)
    long_access_delay_ms: int = Field(default=24 * 60 * 60 * 1000, ge=0)
    min_success_ratio: float = Field(default=0.8, ge=0.0, le=1.0)
    failure_confidence_factor: float = Field(default=0.7, gt=0.0, le=1.0)
    confidence_floor: float = Field(default=0.1, ge=0.0, le=1.0)
    
    # Auto-pause
    high_failure_rate: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Failure ratio above which a report is paused"
    )
    recent_failure_window: int = Field(default=10, ge=1)
    recent_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Failures within the recent window that trigger a pause"
    )
    
    # Execution plan priority
    high_priority_success_rate: float = Field(default=95.0, ge=0.0, le=100.0)
    high_priority_min_executions: int = Field(default=50, ge=0)
    medium_priority_success_rate: float = Field(default=80.0, ge=0.0, le=100.0)
    
    @model_validator(mode="after")
    def check_bands(self) -> "SchedulingPolicy":
        if self.business_hours_start > self.business_hours_end:
            raise ValueError("business_hours_start must not be after business_hours_end")
        if self.low_access_count > self.high_access_count:
            raise ValueError("low_access_count must not exceed high_access_count")
        if self.recent_failure_threshold > self.recent_failure_window:
            raise ValueError("recent_failure_threshold must fit inside recent_failure_window")
        return self


# Global policy instances (can be overridden)
_retry_policy: Optional[RetryPolicy] = None
_scheduling_policy: Optional[SchedulingPolicy] = None


def get_retry_policy() -> RetryPolicy:
    """Get retry policy, creating the default on first use."""
    global _retry_policy
    if _retry_policy is None:
        _retry_policy = RetryPolicy()
        logger.info("Initialized default retry policy")
    return _retry_policy


def set_retry_policy(policy: RetryPolicy) -> None:
    """Override retry policy."""
    global _retry_policy
    _retry_policy = policy
    logger.info("Updated retry policy", extra={
        "default_backoff_ms": policy.default_backoff_ms,
        "default_max_attempts": policy.default_max_attempts,
    })


def get_scheduling_policy() -> SchedulingPolicy:
    """Get scheduling policy, creating the default on first use."""
    global _scheduling_policy
    if _scheduling_policy is None:
        _scheduling_policy = SchedulingPolicy()
        logger.info("Initialized default scheduling policy")
    return _scheduling_policy


def set_scheduling_policy(policy: SchedulingPolicy) -> None:
    """Override scheduling policy."""
    global _scheduling_policy
    _scheduling_policy = policy
    logger.info("Updated scheduling policy")


def reset_all_policies() -> None:
    """Reset all policies to defaults (useful for testing)."""
    global _retry_policy, _scheduling_policy
    _retry_policy = None
    _scheduling_policy = None
    logger.info("Reset all policies to defaults")
