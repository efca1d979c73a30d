"""Domain exceptions for the ObaNet backend."""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """
    Base exception for domain-related errors.

    Every domain error carries a stable machine-readable ``code`` and the
    HTTP status it maps to, so handlers can render the error envelope
    without knowing the concrete class.
    """

    code: str = "DOMAIN_ERROR"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        """
        Initialize domain exception.

        Args:
            message: Human-readable error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def extra(self) -> Dict[str, Any]:
        """Additional envelope fields for this error."""
        return {}


class ServiceUnavailableException(DomainException):
    """Raised when the authoritative user store cannot be reached."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(self, operation: str = "user store") -> None:
        """
        Initialize service unavailable exception.

        Args:
            operation: Name of the failing dependency or operation
        """
        super().__init__(
            "Authentication service temporarily unavailable",
            f"Failing dependency: {operation}",
        )
        self.operation = operation


class RateLimitExceededException(DomainException):
    """Raised when an identity exceeds its request quota."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, limit: int, window_seconds: int, retry_after: int) -> None:
        """
        Initialize rate limit exception.

        Args:
            limit: Maximum requests per window
            window_seconds: Window size in seconds
            retry_after: Seconds until the window resets
        """
        minutes = max(1, window_seconds // 60)
        super().__init__(
            f"Too many requests. Limit: {limit} per {minutes} minutes",
            f"Retry after {retry_after} seconds",
        )
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after

    def extra(self) -> Dict[str, Any]:
        return {"retryAfter": self.retry_after}
