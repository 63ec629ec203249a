"""
Unit tests for policy module.
"""
import pytest

from reportflow.lib.policy import (
    RetryPolicy,
    SchedulingPolicy,
    get_retry_policy,
    get_scheduling_policy,
    reset_all_policies,
    set_retry_policy,
    set_scheduling_policy,
)


@pytest.mark.unit
def test_retry_policy_defaults():
    """RetryPolicy should back off from 5 s with three attempts."""
    policy = RetryPolicy()
    
    assert policy.default_backoff_ms == 5000
    assert policy.default_max_attempts == 3


@pytest.mark.unit
def test_retry_policy_schema_carries_example():
    schema = RetryPolicy.model_json_schema()
    
    assert schema["example"] == {"default_backoff_ms": 5000, "default_max_attempts": 3}


@pytest.mark.unit
def test_retry_policy_validation():
    """RetryPolicy should reject a zero backoff or attempt budget."""
    with pytest.raises(ValueError):
        RetryPolicy(default_backoff_ms=0)
    with pytest.raises(ValueError):
        RetryPolicy(default_max_attempts=0)


@pytest.mark.unit
def test_scheduling_policy_defaults():
    """SchedulingPolicy should carry the documented heuristics."""
    policy = SchedulingPolicy()
    
    assert (policy.business_hours_start, policy.business_hours_end) == (7, 19)
    assert policy.max_concurrent_executions == 5
    assert policy.conflict_stagger_minutes == 5
    assert policy.high_failure_rate == 0.5
    assert policy.recent_failure_window == 10
    assert policy.recent_failure_threshold == 5


@pytest.mark.unit
@pytest.mark.parametrize("overrides", [
    {"business_hours_start": 20, "business_hours_end": 8},
    {"low_access_count": 20.0, "high_access_count": 10.0},
    {"recent_failure_window": 3, "recent_failure_threshold": 5},
])
def test_scheduling_policy_rejects_inverted_bands(overrides):
    """SchedulingPolicy should reject bands whose bounds are swapped."""
    with pytest.raises(ValueError):
        SchedulingPolicy(**overrides)


@pytest.mark.unit
def test_set_and_reset_policies():
    """Overrides should stick until reset."""
    set_retry_policy(RetryPolicy(default_backoff_ms=100))
    set_scheduling_policy(SchedulingPolicy(max_concurrent_executions=2))
    
    assert get_retry_policy().default_backoff_ms == 100
    assert get_scheduling_policy().max_concurrent_executions == 2
    
    reset_all_policies()
    
    assert get_retry_policy().default_backoff_ms == 5000
    assert get_scheduling_policy().max_concurrent_executions == 5


@pytest.mark.unit
def test_get_policy_is_cached():
    """The same default instance should be returned until reset."""
    assert get_retry_policy() is get_retry_policy()
    assert get_scheduling_policy() is get_scheduling_policy()
