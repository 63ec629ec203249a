"""
Domain exceptions raised by the engine.

Every exception carries a stable ``code`` and a ``details`` dict so the
presentation layer can render it without inspecting the message text.
"""
from typing import Optional, Dict, Any

from reportflow.lib.logging import get_correlation_id


class AppException(Exception):
    """Base engine exception."""
    
    code = "APP_ERROR"
    
    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    """Malformed or out-of-range input, tied to a named field."""
    
    code = "VALIDATION_ERROR"
    
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(
            message=f"Validation failed for {field}: {message}",
            details={"field": field, "reason": message},
        )
        self.reason = message


class NotFoundError(AppException):
    """Referenced queue, job or report does not exist."""
    
    code = "NOT_FOUND"
    
    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            details={"resource": resource, "resource_id": resource_id},
        )


class ConflictError(AppException):
    """Duplicate queue name or duplicate scheduled-report name within scope."""
    
    code = "CONFLICT"
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


class BusinessRuleViolationError(AppException):
    """Valid input that breaks a domain rule (e.g. scheduling a draft report)."""
    
    code = "BUSINESS_RULE_VIOLATION"
    
    def __init__(self, rule: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.rule = rule
        super().__init__(
            message=message,
            details={"rule": rule, **(details or {})},
        )


class InvalidStateError(AppException):
    """Operation attempted against an entity in an incompatible status."""
    
    code = "INVALID_STATE"
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


def to_error_payload(exc: AppException) -> Dict[str, Any]:
    """
    Render an engine exception as a response-ready dict.
    
    Returns:
        {"error", "code", "details", "correlation_id"}
    """
    return {
        "error": exc.message,
        "code": exc.code,
        "details": exc.details,
        "correlation_id": get_correlation_id() or "unknown",
    }
