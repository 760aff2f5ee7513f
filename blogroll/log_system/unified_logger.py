"""Unified logging for blogroll.

All modules log through ``UnifiedLogger.get_logger(__name__)``; the handlers
are installed once on the ``blogroll`` root logger by ``initialize_default``.
Console output goes to stderr so the STDIO transport's stdout stays clean.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from blogroll.log_system.correlation import CorrelationIdFilter


ROOT_LOGGER_NAME = "blogroll"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


class UnifiedLogger:
    """Process-wide logging setup for the ``blogroll`` logger hierarchy."""

    _handlers: List[logging.Handler] = []

    @classmethod
    def initialize_default(cls, config) -> None:
        """Install console (and optional file) handlers from config.

        Safe to call more than once; later calls replace earlier handlers.
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        cls._remove_handlers(root)

        formatter = logging.Formatter(LOG_FORMAT)
        correlation_filter = CorrelationIdFilter()

        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        console.addFilter(correlation_filter)
        cls._handlers.append(console)

        log_file = getattr(config, "log_file", None)
        if log_file:
            path = Path(log_file).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(path, maxBytes=5_000_000, backupCount=3)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(correlation_filter)
            cls._handlers.append(file_handler)

        for handler in cls._handlers:
            root.addHandler(handler)

        root.setLevel(getattr(logging, str(config.log_level).upper(), logging.INFO))
        root.propagate = False

    @classmethod
    def get_logger(cls, name: Optional[str] = None) -> logging.Logger:
        """Get a logger inside the ``blogroll`` hierarchy."""
        if not name or name == ROOT_LOGGER_NAME:
            return logging.getLogger(ROOT_LOGGER_NAME)
        if not name.startswith(ROOT_LOGGER_NAME + "."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)

    @classmethod
    def get_available_destinations(cls) -> List[str]:
        return ["console", "file"]

    @classmethod
    def close(cls) -> None:
        """Flush and detach all installed handlers."""
        cls._remove_handlers(logging.getLogger(ROOT_LOGGER_NAME))

    @classmethod
    def _remove_handlers(cls, root: logging.Logger) -> None:
        for handler in cls._handlers:
            root.removeHandler(handler)
            handler.close()
        cls._handlers = []
