"""
Structured logging with JSON formatter and correlation ID support.

Every driver tick gets its own correlation ID so the jobs it enqueues and
the attempts it runs can be traced back to the tick that produced them.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

from reportflow.lib.settings import settings


# Context variables carried into every log line emitted in the current task
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)
job_id_var: ContextVar[Optional[str]] = ContextVar('job_id', default=None)
queue_name_var: ContextVar[Optional[str]] = ContextVar('queue_name', default=None)

# Attributes every LogRecord has; anything else came in through extra=
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs log records as JSON objects with timestamp, level, message, and context.
    """
    
    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        
        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id
        
        job_id = job_id_var.get()
        if job_id:
            log_data["job_id"] = job_id
        
        queue_name = queue_name_var.get()
        if queue_name:
            log_data["queue"] = queue_name
        
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        
        # Fields passed with extra={...}
        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS:
                log_data[key] = value
        
        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure engine logging.
    
    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON formatter; otherwise use simple text format
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    handler.setFormatter(formatter)
    
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    
    # APScheduler logs every interval run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.
    
    Args:
        name: Logger name (typically __name__ of the module)
    
    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """
    Set the correlation ID for the current context.
    Called at the start of each driver tick.
    """
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID, or None."""
    return correlation_id_var.get()


def bind_job_context(job_id: Optional[str], queue_name: Optional[str]) -> None:
    """
    Attach job and queue identifiers to log lines emitted from this context.
    
    Args:
        job_id: Job being processed (None to clear)
        queue_name: Owning queue (None to clear)
    """
    job_id_var.set(job_id)
    queue_name_var.set(queue_name)


# Initialize logging on module import
setup_logging(
    level="DEBUG" if settings.debug else settings.log_level,
    json_format=settings.log_json
)
