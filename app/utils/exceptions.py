"""Custom exceptions for Mintoons backend."""

from typing import Any, Dict, Optional


class MintoonsException(Exception):
    """Base exception for Mintoons application."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize MintoonsException.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code.
            error_code: Machine-readable error code.
            details: Additional error details.
        """
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(MintoonsException):
    """Raised when authentication fails."""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTHENTICATION_ERROR",
            details=details,
        )


class AuthorizationError(MintoonsException):
    """Raised when user is not authorized to access a resource."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="AUTHORIZATION_ERROR",
            details=details,
        )


class NotFoundError(MintoonsException):
    """Raised when a resource is not found."""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(MintoonsException):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class ConflictError(MintoonsException):
    """Raised when a unique resource already exists."""

    def __init__(
        self,
        message: str = "Resource already exists",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONFLICT",
            details=details,
        )


class RateLimitError(MintoonsException):
    """Raised when a named rate limit window is exhausted."""

    def __init__(
        self,
        message: str = "Too many requests",
        retry_after: int = 60,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Initialize RateLimitError."""
        self.retry_after = retry_after
        self.headers = {**(headers or {}), "Retry-After": str(retry_after)}
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details={"retry_after": retry_after, **(details or {})},
        )


class SubscriptionLimitError(MintoonsException):
    """Raised when the user's subscription tier does not allow an action."""

    def __init__(
        self,
        message: str = "Subscription limit reached",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="SUBSCRIPTION_LIMIT",
            details=details,
        )


class ContentGenerationError(MintoonsException):
    """Raised when the AI story assistant cannot produce a response."""

    def __init__(
        self,
        message: str = "Failed to generate content",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONTENT_GENERATION_ERROR",
            details=details,
        )


class EmailDeliveryError(MintoonsException):
    """Raised when an email cannot be handed to the SMTP server."""

    def __init__(
        self,
        message: str = "Email delivery failed",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=502,
            error_code="EMAIL_DELIVERY_ERROR",
            details=details,
        )


class PaymentWebhookError(MintoonsException):
    """Raised when a billing webhook is unsigned, malformed or unknown."""

    def __init__(
        self,
        message: str = "Invalid webhook payload",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="PAYMENT_WEBHOOK_ERROR",
            details=details,
        )
