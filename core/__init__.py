"""
Core utilities and configuration for the Aero Travel backend.

This package provides foundational components used by every service:

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    exceptions: Custom exception hierarchy mapped to HTTP status codes
    logging: Logging configuration and utilities
    security: JWT token issue/verification and role groups

Usage:
    from core.config import settings
    from core.database import get_session
    from core.exceptions import NotFoundError, PermissionDeniedError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "get_session",
    "setup_logging",
    # Exceptions
    "AppException",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ValidationError",
    "InsufficientBalanceError",
    "GeofenceViolationError",
    "ConflictError",
    "RateLimitExceededError",
    "DatabaseError",
    "ExternalServiceError",
]
