"""Logging helpers for blogroll."""

from .correlation import (
    CorrelationIdFilter,
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from .unified_logger import UnifiedLogger

__all__ = [
    "CorrelationIdFilter",
    "UnifiedLogger",
    "generate_correlation_id",
    "get_correlation_id",
    "reset_correlation_id",
    "set_correlation_id",
]
