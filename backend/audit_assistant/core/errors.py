"""
Pipeline error taxonomy.

Every failure that crosses a component boundary is one of these types.
The `retryable` flag is what the retry envelope consults; everything else
(validation, missing objects, unsupported profiles) fails fast.

  PipelineError
    ├── ValidationError               bad input, never retried
    │     └── UnsupportedProfileError
    ├── NotFoundError                 storage handle expired / missing
    ├── TransientServiceError         external 5xx / 429 / transport, retried
    │     ├── ServiceUnavailableError
    │     └── OperationTimeoutError   deadline exceeded, short-circuits retries
    └── GroundingInsufficientError    assistant cannot answer from context
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all typed pipeline failures."""

    code: str = "PIPELINE_ERROR"
    retryable: bool = False

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code


class ValidationError(PipelineError):
    code = "INVALID_REQUEST"


class UnsupportedProfileError(ValidationError):
    code = "UNSUPPORTED_PROFILE"

    def __init__(self, profile: object) -> None:
        super().__init__(f"Unsupported extraction profile: {profile!r}")
        self.profile = profile


class NotFoundError(PipelineError):
    code = "NOT_FOUND"


class TransientServiceError(PipelineError):
    code = "SERVICE_UNAVAILABLE"
    retryable = True


class ServiceUnavailableError(TransientServiceError):
    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OperationTimeoutError(TransientServiceError):
    code = "OPERATION_TIMEOUT"

    def __init__(self, context: str, deadline: float) -> None:
        super().__init__(f"{context} exceeded deadline of {deadline:.1f}s")
        self.context  = context
        self.deadline = deadline


class GroundingInsufficientError(PipelineError):
    """Raised when retrieved context cannot support an answer. Not a failure."""
    code = "GROUNDING_INSUFFICIENT"
