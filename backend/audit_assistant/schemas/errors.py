"""
Structured error bodies

Uniform envelope for every failure surfaced to a caller, plus the mapping
from typed pipeline errors to user-renderable messages:

  TransientServiceError  → ANALYSIS_UNAVAILABLE  ("retry later", retryable)
  UnsupportedProfileError→ UNSUPPORTED_PROFILE
  ValidationError        → UNSUPPORTED_FILE / FILE_TOO_LARGE / INVALID_REQUEST
  NotFoundError          → NOT_FOUND
  anything else          → INTERNAL_ERROR
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from audit_assistant.core.errors import (
    NotFoundError,
    PipelineError,
    TransientServiceError,
    UnsupportedProfileError,
    ValidationError,
)


class ErrorDetail(BaseModel):
    """Single structured error; may appear in a list."""
    field:   str | None = Field(None, description="Input field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    retryable:  bool              = False
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


# ---------------------------------------------------------------------------
# Pre-defined factories
# ---------------------------------------------------------------------------

class UploadErrors:
    """Factories for every upload validation case."""

    @staticmethod
    def unsupported_file_type(filename: str, content_type: str) -> ValidationError:
        return ValidationError(
            f"'{filename}' has an unsupported type '{content_type}'. "
            f"Allowed: PDF, DOCX, DOC, XLSX, XLS, CSV.",
            code="UNSUPPORTED_FILE",
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit_bytes: int) -> ValidationError:
        return ValidationError(
            f"Received {size_bytes:,} bytes; limit is {limit_bytes:,} bytes.",
            code="FILE_TOO_LARGE",
        )

    @staticmethod
    def missing_file() -> ValidationError:
        return ValidationError("The uploaded file is empty.", code="MISSING_FILE")


def error_response_for(exc: Exception, request_id: str | None = None) -> ErrorResponse:
    """Map any exception raised by the pipeline to a renderable ErrorResponse."""
    if isinstance(exc, TransientServiceError):
        return ErrorResponse(
            error_code="ANALYSIS_UNAVAILABLE",
            message="Document analysis is temporarily unavailable. Please retry later.",
            retryable=True,
            details=[ErrorDetail(message=str(exc), code=exc.code)],
            request_id=request_id,
        )
    if isinstance(exc, UnsupportedProfileError):
        return ErrorResponse(
            error_code="UNSUPPORTED_PROFILE",
            message="The requested extraction profile is not supported.",
            details=[ErrorDetail(field="profile", message=str(exc), code=exc.code)],
            request_id=request_id,
        )
    if isinstance(exc, ValidationError):
        return ErrorResponse(
            error_code=exc.code,
            message=exc.message,
            details=[ErrorDetail(field="file", message=exc.message, code=exc.code)]
            if exc.code in ("UNSUPPORTED_FILE", "FILE_TOO_LARGE", "MISSING_FILE") else [],
            request_id=request_id,
        )
    if isinstance(exc, NotFoundError):
        return ErrorResponse(
            error_code="NOT_FOUND",
            message=exc.message,
            request_id=request_id,
        )
    if isinstance(exc, PipelineError):
        return ErrorResponse(error_code=exc.code, message=exc.message, request_id=request_id)
    return ErrorResponse(
        error_code="INTERNAL_ERROR",
        message="An unexpected error occurred.",
        request_id=request_id,
    )
