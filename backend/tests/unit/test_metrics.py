"""
Unit tests for metrics collection and Prometheus export.
"""

import pytest
from reportflow.lib.metrics import MetricsCollector, get_metrics_collector, reset_metrics


@pytest.mark.unit
def test_metrics_collector_initialization(metrics):
    """Test metrics collector initializes with empty counters."""
    assert metrics.export_prometheus() == ""


@pytest.mark.unit
def test_increment_enqueued(metrics):
    """Test incrementing enqueued counter."""
    metrics.increment_enqueued("reports")
    metrics.increment_enqueued("reports", amount=2)
    
    assert metrics.get_counter_value("jobs_enqueued_total", {"queue": "reports"}) == 3


@pytest.mark.unit
def test_increment_processed_lowercases_status(metrics):
    """Test processed counter is labelled by lowercase status."""
    metrics.increment_processed("reports", "COMPLETED")
    metrics.increment_processed("reports", "delayed")
    
    assert metrics.get_counter_value(
        "jobs_processed_total", {"queue": "reports", "status": "completed"}
    ) == 1
    assert metrics.get_counter_value(
        "jobs_processed_total", {"queue": "reports", "status": "delayed"}
    ) == 1


@pytest.mark.unit
def test_counters_are_separate_per_queue(metrics):
    """Test counters are separate for different queues."""
    metrics.increment_retried("reports")
    metrics.increment_retried("exports")
    metrics.increment_retried("exports")
    
    assert metrics.get_counter_value("jobs_retried_total", {"queue": "reports"}) == 1
    assert metrics.get_counter_value("jobs_retried_total", {"queue": "exports"}) == 2


@pytest.mark.unit
def test_export_prometheus_format(metrics):
    """Test Prometheus text output."""
    metrics.increment_dispatched("reports")
    metrics.increment_enqueued("reports")
    
    output = metrics.export_prometheus()
    
    assert "# HELP jobs_enqueued_total Total number of jobs added to a queue" in output
    assert "# TYPE scheduled_reports_dispatched_total counter" in output
    assert 'scheduled_reports_dispatched_total{queue="reports"} 1' in output
    assert output.index("jobs_enqueued_total") < output.index("scheduled_reports_dispatched_total")


@pytest.mark.unit
def test_reset_all(metrics):
    """Test clearing counters."""
    metrics.increment_enqueued("reports")
    
    metrics.reset_all()
    
    assert metrics.get_counter_value("jobs_enqueued_total", {"queue": "reports"}) == 0


@pytest.mark.unit
def test_global_collector_singleton():
    """Test global collector is shared and resettable."""
    collector = get_metrics_collector()
    assert collector is get_metrics_collector()
    assert isinstance(collector, MetricsCollector)
    
    collector.increment_enqueued("reports")
    reset_metrics()
    
    assert collector.get_counter_value("jobs_enqueued_total", {"queue": "reports"}) == 0
