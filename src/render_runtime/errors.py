"""
Error taxonomy for render-runtime.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Retryable vs non-retryable classification
- Structured context for debugging

"Not found" is deliberately absent: a missing or expired job is a normal
outcome and is reported as ``None`` by the job store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for the render runtime."""

    # Store errors (1xxx)
    STORE_ERROR = "ERR_1000"
    STORE_UNAVAILABLE = "ERR_1001"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "ERR_2000"
    INVALID_PAYLOAD = "ERR_2001"

    # Pipeline errors (3xxx)
    PIPELINE_ERROR = "ERR_3000"
    RENDER_FAILED = "ERR_3001"
    UPLOAD_FAILED = "ERR_3002"
    PIPELINE_TIMEOUT = "ERR_3003"

    # Configuration errors (6xxx)
    CONFIG_ERROR = "ERR_6000"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    job_id: str | None = None
    stage: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "stage": self.stage,
            "operation": self.operation,
            **self.extra,
        }


class RenderRuntimeError(Exception):
    """
    Base exception for all render-runtime errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        retryable: Whether the operation can be retried
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.job_id:
            parts.append(f"(job_id={self.context.job_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Store Errors
# =============================================================================


class StoreError(RenderRuntimeError):
    """Base class for job store failures."""

    code = ErrorCode.STORE_ERROR


class StoreUnavailableError(StoreError):
    """The backing store could not be reached."""

    code = ErrorCode.STORE_UNAVAILABLE
    retryable = True

    def __init__(
        self,
        message: str = "Job store unavailable",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(RenderRuntimeError):
    """Base class for rejected input."""

    code = ErrorCode.VALIDATION_ERROR


class InvalidPayloadError(ValidationError):
    """Producer payload was rejected before a job was created."""

    code = ErrorCode.INVALID_PAYLOAD

    def __init__(
        self,
        message: str = "Invalid job payload",
        *,
        path: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.path = path


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(RenderRuntimeError):
    """Base class for failures inside a job's pipeline."""

    code = ErrorCode.PIPELINE_ERROR


class RenderError(PipelineError):
    """The external render operation failed."""

    code = ErrorCode.RENDER_FAILED


class UploadError(PipelineError):
    """The external upload operation failed."""

    code = ErrorCode.UPLOAD_FAILED


class PipelineTimeoutError(PipelineError):
    """A pipeline stage exceeded its time budget."""

    code = ErrorCode.PIPELINE_TIMEOUT

    def __init__(
        self,
        message: str = "Pipeline stage timed out",
        *,
        timeout: float | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.timeout = timeout


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(RenderRuntimeError, ValueError):
    """Invalid runtime configuration."""

    code = ErrorCode.CONFIG_ERROR


# =============================================================================
# Utilities
# =============================================================================


def describe_error(error: BaseException) -> str:
    """Human-readable one-line description of an exception."""
    if isinstance(error, RenderRuntimeError):
        return error.message
    text = str(error).strip()
    return text or type(error).__name__


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "RenderRuntimeError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
    "InvalidPayloadError",
    "PipelineError",
    "RenderError",
    "UploadError",
    "PipelineTimeoutError",
    "ConfigError",
    "describe_error",
]
