"""Entry/exit logging for MCP tools, one correlation id per call."""

import functools
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from blogroll.log_system import (
    UnifiedLogger,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)


def _describe(kwargs: Dict[str, Any]) -> str:
    parts = []
    for key, value in kwargs.items():
        if key == "ctx":
            continue
        text = repr(value)
        if len(text) > 80:
            text = text[:77] + "..."
        parts.append(f"{key}={text}")
    return ", ".join(parts)


def tool_logger(
    func: Callable[..., Awaitable[Any]], config: Optional[Dict[str, Any]] = None
) -> Callable[..., Awaitable[Any]]:
    """Wrap a tool so each call logs its arguments, outcome and duration."""
    logger = UnifiedLogger.get_logger(__name__)
    server_name = (config or {}).get("name") or "blogroll"

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        token = set_correlation_id(generate_correlation_id("tool"))
        started = time.perf_counter()
        logger.info(f"[{server_name}] {func.__name__}({_describe(kwargs)}) called")
        try:
            result = await func(*args, **kwargs)
        except Exception:
            elapsed = (time.perf_counter() - started) * 1000
            logger.warning(f"[{server_name}] {func.__name__} raised after {elapsed:.1f}ms")
            raise
        else:
            elapsed = (time.perf_counter() - started) * 1000
            success = result.get("success") if isinstance(result, dict) else None
            logger.info(f"[{server_name}] {func.__name__} finished in {elapsed:.1f}ms (success={success})")
            return result
        finally:
            reset_correlation_id(token)

    return wrapper
