"""
Error hierarchy for the Trust & Safety backend.

Every business-rule failure is raised as a ``SafetyAdminError`` subclass and
translated 1:1 into an HTTP response by ``BaseController.handle_exception``.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    EXTERNAL_SYSTEM = "external_system"
    RATE_LIMIT = "rate_limit"
    INTERNAL = "internal"


class SafetyAdminError(Exception):
    """Base exception for all typed failures."""

    code = "INTERNAL_ERROR"
    category = ErrorCategory.INTERNAL
    http_status = 500

    def __init__(self, message: str, *, code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_response(self) -> Dict[str, Any]:
        """Convert to the standard ``{success: false, error: ...}`` envelope."""
        payload: Dict[str, Any] = {
            'success': False,
            'error': self.message,
            'code': self.code,
            'category': self.category.value,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(SafetyAdminError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        if field:
            self.details.setdefault('field', field)


class NotFoundError(SafetyAdminError):
    code = "NOT_FOUND"
    category = ErrorCategory.NOT_FOUND
    http_status = 404

    def __init__(self, resource_type: str, resource_id: str, message: Optional[str] = None, **kwargs):
        super().__init__(message or f"{resource_type} '{resource_id}' not found", **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(SafetyAdminError):
    """Target is not in the state the operation requires."""

    code = "CONFLICT"
    category = ErrorCategory.CONFLICT
    http_status = 409


class UnauthorizedError(SafetyAdminError):
    code = "UNAUTHORIZED"
    category = ErrorCategory.UNAUTHORIZED
    http_status = 403


class ExternalSystemError(SafetyAdminError):
    """A call to the profile store, identity provider or archive failed."""

    code = "EXTERNAL_SYSTEM_ERROR"
    category = ErrorCategory.EXTERNAL_SYSTEM
    http_status = 502

    def __init__(self, system: str, message: str, **kwargs):
        super().__init__(f"{system} call failed: {message}", **kwargs)
        self.system = system


class RateLimitError(SafetyAdminError):
    code = "RATE_LIMIT_EXCEEDED"
    category = ErrorCategory.RATE_LIMIT
    http_status = 429

    def __init__(self, message: str, retry_after: int, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = max(1, int(retry_after))
        self.details.setdefault('retryAfter', self.retry_after)
