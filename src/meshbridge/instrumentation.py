"""
Timing helpers for mesh operations.

Converter writes and reads perform network I/O against the mesh; ``timed_async``
records how long each one took and warns when the configured threshold is exceeded.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

__all__ = [
    "measure_time",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")


def measure_time(start_time: float) -> float:
    """Return milliseconds elapsed since ``start_time`` (a ``time.perf_counter()`` value)."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator for timing coroutine functions.

    Can be disabled via the MESHBRIDGE_PERF_TRACKING environment variable.

    Example:
        @timed_async("convert_set")
        async def invoke(converter, target, key, value, meta):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from meshbridge.const import (  # noqa: PLC0415
                MESHBRIDGE_PERF_THRESHOLD_MS,
                MESHBRIDGE_PERF_TRACKING,
            )
            from meshbridge.logging_abstraction import get_logger  # noqa: PLC0415

            if not MESHBRIDGE_PERF_TRACKING:
                return await func(*args, **kwargs)

            logger = get_logger(__name__)
            op_name = operation_name or func.__name__

            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(logger, op_name, measure_time(start_time), MESHBRIDGE_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def _log_timing(logger: Any, operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": elapsed_ms > threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        logger.warning(
            "[%s] completed in %.1fms (threshold: %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        logger.debug("[%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
