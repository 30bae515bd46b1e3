"""Custom exceptions for the remote configuration API."""

from typing import Optional

from remoteconfig.contracts.error_spec import ErrorCode, ErrorResponse


class APIException(Exception):
    """Base API exception."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.error_code, message=self.message)


class ValidationError(APIException):
    """Validation error exception."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, ErrorCode.VALIDATION_ERROR, status_code=400)


class AuthenticationError(APIException):
    """Authentication error exception."""

    def __init__(self, message: str = "Missing or invalid API key"):
        super().__init__(message, ErrorCode.UNAUTHORIZED, status_code=401)


class AuthorizationError(APIException):
    """Authorization error exception."""

    def __init__(self, message: str = "Authorization failed"):
        super().__init__(message, ErrorCode.FORBIDDEN, status_code=403)


class NotFoundError(APIException):
    """Resource not found exception."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.RESOURCE_NOT_FOUND, status_code=404)


class RateLimitExceededError(APIException):
    """Rate limit exceeded exception."""

    def __init__(self, message: str, retry_after_millis: int, limit: Optional[int] = None):
        self.retry_after_millis = retry_after_millis
        self.limit = limit
        super().__init__(message, ErrorCode.RATE_LIMIT_EXCEEDED, status_code=429)

    @property
    def retry_after_seconds(self) -> int:
        """Retry hint rounded up to whole seconds."""
        return (self.retry_after_millis + 999) // 1000

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            code=self.error_code,
            message=self.message,
            retry_after_seconds=self.retry_after_seconds,
        )


class ServiceUnavailableError(APIException):
    """Raised by fail-closed components when their backend is unreachable."""

    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message, ErrorCode.SERVICE_UNAVAILABLE, status_code=503)
