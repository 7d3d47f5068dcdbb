"""
Structured Logging for render-runtime.

This module provides:
- Structured JSON or text logging with consistent fields
- Job/stage context correlation
- Timing helpers for pipeline stages
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

# =============================================================================
# Log Context
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    job_id: str | None = None
    stage: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            job_id=kwargs.get("job_id", self.job_id),
            stage=kwargs.get("stage", self.stage),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("render_runtime.pipeline")

        with logger.job_context(job.id, stage="rendering"):
            logger.info("Render started", concurrency=4)
        ```
    """

    def __init__(
        self,
        name: str = "render_runtime",
        level: str = "INFO",
        json_output: bool = False,
    ):
        self.name = name
        self.json_output = json_output

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))

        self._context: LogContext = LogContext()

        # Configure handler if neither this logger nor a parent has one
        if not self._logger.hasHandlers():
            handler = logging.StreamHandler(sys.stdout)
            if json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(TextFormatter())
            self._logger.addHandler(handler)

    @contextmanager
    def job_context(self, job_id: str, **kwargs) -> Iterator[str]:
        """Attach a job id (and optional stage) to records logged inside the block."""
        old_context = self._context
        try:
            self._context = old_context.with_update(job_id=job_id, **kwargs)
            yield job_id
        finally:
            self._context = old_context

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
        job_id: str | None = None,
    ) -> None:
        record_data = {
            "message": message,
            **self._context.to_dict(),
        }
        if job_id:
            record_data["job_id"] = job_id
        if event_type:
            record_data["event_type"] = event_type
        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}".rstrip())

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    # Typed logging methods

    def log_transition(self, job_id: str, status: str, previous: str | None = None, **kwargs) -> None:
        """Log a persisted job status change."""
        self._log(
            logging.INFO,
            f"Job {job_id} -> {status}",
            event_type="transition",
            data={"status": status, "previous_status": previous, **kwargs},
            job_id=job_id,
        )

    def log_eviction(self, job_id: str, reason: str) -> None:
        """Log removal of a job by the reaper."""
        self._log(
            logging.INFO,
            f"Evicted job {job_id} ({reason})",
            event_type="eviction",
            data={"reason": reason},
            job_id=job_id,
        )

    def log_error(
        self,
        error: BaseException,
        message: str | None = None,
        **kwargs,
    ) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }

        # Extract additional info from RenderRuntimeError
        if hasattr(error, "code"):
            error_data["error_code"] = str(getattr(error.code, "value", error.code))
        if hasattr(error, "retryable"):
            error_data["retryable"] = error.retryable

        self._log(
            logging.ERROR,
            message or f"Error: {error}",
            event_type="error",
            data=error_data,
        )


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        # Parse JSON message if present
        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.LEVEL_COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        return f"{timestamp} {color}{record.levelname:8}{reset} {record.name}: {record.getMessage()}"


# =============================================================================
# Timing Utilities
# =============================================================================


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


# =============================================================================
# Global Logger
# =============================================================================

_loggers: dict[str, StructuredLogger] = {}
_level: str = "INFO"
_json_output: bool = False


def get_logger(name: str = "render_runtime") -> StructuredLogger:
    """Get or create a structured logger."""
    logger = _loggers.get(name)
    if logger is None:
        logger = StructuredLogger(name, level=_level, json_output=_json_output)
        _loggers[name] = logger
    return logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> StructuredLogger:
    """Configure the package loggers."""
    global _level, _json_output
    _level = level.upper()
    _json_output = json_output

    for logger in _loggers.values():
        for handler in list(logger._logger.handlers):
            logger._logger.removeHandler(handler)
        logger._logger.setLevel(getattr(logging, _level))
        logger.json_output = json_output

    root = logging.getLogger("render_runtime")
    root.setLevel(getattr(logging, _level))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
    root.addHandler(handler)

    return get_logger("render_runtime")


__all__ = [
    "LogContext",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "Timer",
    "timed",
    "truncate_for_log",
    "get_logger",
    "configure_logging",
]
