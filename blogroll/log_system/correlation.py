"""Correlation ids for log records.

A correlation id ties together every log line emitted by one sync run or one
tool call. Ids live in a context variable so concurrent fetch tasks spawned by
a run inherit the run's id.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Optional


_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_initialization_correlation_id: Optional[str] = None


def generate_correlation_id(prefix: str = "req") -> str:
    """Generate a short correlation id such as ``req_1a2b3c4d``."""
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def set_correlation_id(correlation_id: str):
    """Bind a correlation id to the current context. Returns the reset token."""
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token) -> None:
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get() or _initialization_correlation_id


def set_initialization_correlation_id(correlation_id: str) -> None:
    """Correlation id used for log lines emitted during server startup."""
    global _initialization_correlation_id
    _initialization_correlation_id = correlation_id


def clear_initialization_correlation_id() -> None:
    global _initialization_correlation_id
    _initialization_correlation_id = None


class CorrelationIdFilter(logging.Filter):
    """Attach ``record.correlation_id`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True
