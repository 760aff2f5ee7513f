"""Exception logging for MCP tools."""

import functools
from typing import Any, Awaitable, Callable

from blogroll.log_system import UnifiedLogger


def exception_handler(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
    """Log an unhandled tool exception with its traceback, then re-raise it.

    The MCP layer turns the re-raised exception into a tool error response.
    """
    logger = UnifiedLogger.get_logger(__name__)

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Unhandled error in tool {func.__name__}: {e}", exc_info=True)
            raise

    return wrapper
