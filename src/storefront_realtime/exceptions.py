"""Custom exceptions for the realtime storefront service."""

from typing import Any, Dict, Optional


class StorefrontRealtimeError(Exception):
    """Base exception for the realtime storefront service."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "INTERNAL_ERROR"
        self.status_code = status_code
        self.details = details or {}


class AuthenticationError(StorefrontRealtimeError):
    """Missing or invalid bearer credential."""

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, error_code="AUTHENTICATION_REQUIRED", status_code=401, **kwargs)


class AuthorizationError(StorefrontRealtimeError):
    """Authenticated identity lacks the role for the operation."""

    def __init__(self, message: str = "You do not have permission to perform this action", **kwargs):
        super().__init__(message, error_code="FORBIDDEN", status_code=403, **kwargs)


class ValidationError(StorefrontRealtimeError):
    """Payload failed validation."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, error_code="VALIDATION_ERROR", status_code=422, **kwargs)
        if field:
            self.details["field"] = field


class PersistenceError(StorefrontRealtimeError):
    """The message or notice store could not complete an operation."""

    def __init__(self, message: str = "Store unavailable", store: Optional[str] = None, **kwargs):
        super().__init__(message, error_code="STORE_UNAVAILABLE", status_code=503, **kwargs)
        if store:
            self.details["store"] = store


__all__ = [
    "StorefrontRealtimeError",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "PersistenceError",
]
