"""
Custom exceptions for the booking platform with structured error context.

Every exception carries an HTTP status code and a machine-readable error
code so the API layer can render a consistent JSON body without knowing
about individual services.

Exception Hierarchy:
    AppException (base)
    ├── AuthenticationError            401
    ├── PermissionDeniedError          403
    ├── NotFoundError                  404
    ├── ValidationError                400
    │   ├── InsufficientBalanceError   400
    │   └── GeofenceViolationError     400
    ├── ConflictError                  409
    ├── RateLimitExceededError         429
    ├── DatabaseError                  500
    └── ExternalServiceError           502
"""

from typing import Optional, Dict, Any
from datetime import datetime


class AppException(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (ids, amounts, etc.)
        original_exception: The original exception that was caught (if any)
    """

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Access Errors
# ============================================================================

class AuthenticationError(AppException):
    """Missing, expired or invalid credentials."""
    status_code = 401
    error_code = "UNAUTHORIZED"


class PermissionDeniedError(AppException):
    """
    Authenticated user is not allowed to perform the operation.

    Context should include:
        - user_id: The requesting user
        - role: The user's role
        - branch_id: Branch involved (for branch-scoped checks)
    """
    status_code = 403
    error_code = "FORBIDDEN"


# ============================================================================
# Request Errors
# ============================================================================

class NotFoundError(AppException):
    """Requested resource does not exist (or is not visible to the caller)."""
    status_code = 404
    error_code = "NOT_FOUND"


class ValidationError(AppException):
    """
    Request data failed a business rule.

    Context should include:
        - field_name: Name of the offending field
        - field_value: Value that failed validation
    """
    status_code = 400
    error_code = "VALIDATION_ERROR"


class InsufficientBalanceError(ValidationError):
    """
    Points or wallet balance is lower than the requested amount.

    Context should include:
        - available: Current balance
        - requested: Requested amount
    """
    error_code = "INSUFFICIENT_BALANCE"


class GeofenceViolationError(ValidationError):
    """
    Check-in location is outside the meeting point radius.

    Context should include:
        - distance_meters: Distance from the meeting point
        - radius_meters: Allowed radius
        - meeting_point: Meeting point name
    """
    error_code = "OUTSIDE_GEOFENCE"


class ConflictError(AppException):
    """
    Write rejected by a database uniqueness constraint.

    Used where idempotency is delegated to the database: a repeated award for
    the same booking, a second check-in for the same trip, a second referral.
    """
    status_code = 409
    error_code = "CONFLICT"


class RateLimitExceededError(AppException):
    """Too many requests in the current window."""
    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


# ============================================================================
# Infrastructure Errors
# ============================================================================

class DatabaseError(AppException):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation
        - table_name: Name of the table
    """
    status_code = 500
    error_code = "DATABASE_ERROR"


class ExternalServiceError(AppException):
    """
    Call to a third-party API (messaging) failed.

    Context should include:
        - service: External service name
        - status_code: HTTP status code (if applicable)
        - retry_count: Number of attempts made
    """
    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"
