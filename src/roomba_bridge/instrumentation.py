"""
Timing helpers for robot I/O.

Wraps async operations (session open, commands, state queries) and logs how
long they took, warning when an operation exceeds ROOMBA_PERF_THRESHOLD_MS.
Disabled entirely when ROOMBA_PERF_TRACKING is off.
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
    """Return milliseconds elapsed since ``start_time`` (from time.perf_counter())."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator for timing async functions.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed_async("session_open")
        async def open(self):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from roomba_bridge.const import (  # noqa: PLC0415
                ROOMBA_PERF_THRESHOLD_MS,
                ROOMBA_PERF_TRACKING,
            )
            from roomba_bridge.logging_abstraction import get_logger  # noqa: PLC0415

            if not ROOMBA_PERF_TRACKING:
                return await func(*args, **kwargs)

            logger = get_logger(__name__)
            op_name = operation_name or func.__name__

            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(logger, op_name, measure_time(start_time), ROOMBA_PERF_THRESHOLD_MS)

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
