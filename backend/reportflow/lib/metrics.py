"""
Prometheus-compatible counters for the job engine.

Tracks:
- Jobs enqueued per queue
- Job attempts processed per queue and outcome (completed, delayed, failed)
- Manual retries per queue
- Scheduled reports dispatched by the driver

Usage:
    from reportflow.lib.metrics import get_metrics_collector
    
    metrics = get_metrics_collector()
    metrics.increment_enqueued(queue="reports")
    metrics.increment_processed(queue="reports", status="completed")
    
    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector for the job engine.
    
    Counters:
    - jobs_enqueued_total: Jobs created (labels: queue)
    - jobs_processed_total: Processing attempts finished (labels: queue, status)
    - jobs_retried_total: Manual retries (labels: queue)
    - scheduled_reports_dispatched_total: Due reports turned into jobs (labels: queue)
    
    Thread-safe for concurrent increments.
    """
    
    HELP_TEXTS = {
        "jobs_enqueued_total": "Total number of jobs added to a queue",
        "jobs_processed_total": "Total number of job attempts that finished, by outcome",
        "jobs_retried_total": "Total number of jobs manually moved back to pending",
        "scheduled_reports_dispatched_total": "Total number of scheduled report executions enqueued",
    }
    
    def __init__(self):
        self._lock = Lock()
        
        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}
    
    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        sorted_labels = tuple(sorted(labels.items()))
        return (metric_name, sorted_labels)
    
    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount
    
    def increment_enqueued(self, queue: str, amount: int = 1):
        """Increment jobs enqueued on a queue."""
        self._increment("jobs_enqueued_total", {"queue": queue}, amount)
    
    def increment_processed(self, queue: str, status: str, amount: int = 1):
        """
        Increment finished processing attempts.
        
        Args:
            queue: Queue name
            status: Job status after the attempt (completed, delayed, failed)
            amount: Increment amount (default 1)
        """
        labels = {"queue": queue, "status": status.lower()}
        self._increment("jobs_processed_total", labels, amount)
    
    def increment_retried(self, queue: str, amount: int = 1):
        """Increment manual retries on a queue."""
        self._increment("jobs_retried_total", {"queue": queue}, amount)
    
    def increment_dispatched(self, queue: str, amount: int = 1):
        """Increment scheduled report executions enqueued by the driver."""
        self._increment("scheduled_reports_dispatched_total", {"queue": queue}, amount)
    
    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.
        
        Returns:
            Prometheus-compatible text output
        """
        output_lines = []
        
        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))
        
        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")
            
            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")
            
            output_lines.append("")
        
        return "\n".join(output_lines)
    
    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """
        Get current value of a specific counter.
        
        Args:
            metric_name: Name of the metric
            labels: Exact label set
        
        Returns:
            Current counter value (0 if never incremented)
        """
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)
    
    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.
    
    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    global _metrics_collector
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
