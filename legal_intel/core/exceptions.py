"""Custom exception hierarchy."""

from enum import Enum
from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class NotFoundError(AppError):
    """Raised when a record does not exist in the caller's tenant."""
    pass


class InferenceErrorKind(str, Enum):
    """Failure categories for calls to the inference service."""
    CONFIG_ERROR = "config_error"
    API_ERROR = "api_error"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    TRANSIENT_ERROR = "transient_error"


RETRYABLE_KINDS = frozenset({
    InferenceErrorKind.RATE_LIMITED,
    InferenceErrorKind.TIMEOUT,
    InferenceErrorKind.NETWORK_ERROR,
    InferenceErrorKind.TRANSIENT_ERROR,
})


class InferenceClientError(AppError):
    """Raised when a call to the inference service fails.

    Attributes:
        kind: Failure category, drives the retry policy
        status_code: HTTP status of the response, when one was received
        retry_after: Seconds the server asked us to wait (429 only)
    """

    def __init__(
        self,
        message: str,
        kind: InferenceErrorKind,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.kind = InferenceErrorKind(kind)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"InferenceClientError(kind={self.kind.value!r}, status_code={self.status_code!r})"


class MalformedModelOutputError(AppError):
    """Raised when model output is not JSON of the expected shape.

    Never retried.
    """
    pass


class PipelineError(AppError):
    """Base exception for pipeline errors."""
    pass


class StageError(PipelineError):
    """A pipeline stage could not complete; halts the run."""

    def __init__(self, stage: str, message: str, original_error: Exception = None):
        super().__init__(message, original_error=original_error)
        self.stage = stage


class InvalidTransitionError(PipelineError):
    """Raised when an event is not legal for the current run state."""
    pass


class ActionExecutionError(AppError):
    """Raised when an accepted action's side effect cannot be applied."""
    pass
