"""
Error Taxonomy

Every failure that leaves the provider layer is one of the classes below.
Each carries a stable ``code``, an HTTP-equivalent ``status_code`` and a
human-readable message; ``to_response()`` builds the payload handed to
callers, which never includes the backend exception or its traceback.
"""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """User-facing error payload."""
    code: str
    message: str
    retryable: bool = False


class CloudProviderError(Exception):
    """Base exception for cloud provider operations."""

    code = "cloud_provider_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.retryable = retryable

    @property
    def is_authorization_failure(self) -> bool:
        return self.status_code == 401

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, retryable=self.retryable)


class InvalidInputError(CloudProviderError):
    """An argument had the wrong shape (empty id, bad page size...)."""
    code = "invalid_input"
    status_code = 400


class UnsupportedOperationError(CloudProviderError):
    """The provider does not offer the requested capability."""
    code = "unsupported_operation"
    status_code = 400

    def __init__(self, message: str, capability: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.capability = capability


class UnsupportedProviderError(CloudProviderError):
    """Unknown or disabled provider id."""
    code = "unsupported_provider"
    status_code = 400

    def __init__(self, provider: str):
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class ReauthenticationRequiredError(CloudProviderError):
    """Token invalid or expired and could not be renewed."""
    code = "reauthentication_required"
    status_code = 401


class NotFoundError(CloudProviderError):
    """Target folder or resource does not exist."""
    code = "not_found"
    status_code = 404


class RateLimitExceededError(CloudProviderError):
    """Call budget exhausted, locally or at the backend."""
    code = "rate_limit_exceeded"
    status_code = 429

    def __init__(
        self,
        provider: str,
        limit: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(f"Rate limit exceeded for {provider}", retryable=True)
        self.provider = provider
        self.limit = limit
        self.retry_after = retry_after


class OperationFailedError(CloudProviderError):
    """Generic adapter or network failure."""
    code = "operation_failed"
    status_code = 500

    def __init__(
        self,
        operation: str,
        reason: str,
        kind: str = "error",
        retryable: bool = False,
    ):
        super().__init__(f"Failed to {operation}: {reason}", retryable=retryable)
        self.operation = operation
        self.kind = kind


__all__ = [
    "ErrorResponse",
    "CloudProviderError",
    "InvalidInputError",
    "UnsupportedOperationError",
    "UnsupportedProviderError",
    "ReauthenticationRequiredError",
    "NotFoundError",
    "RateLimitExceededError",
    "OperationFailedError",
]
