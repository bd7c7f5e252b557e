"""
Correlation IDs for tracing one robot operation across async hops.

Every controller operation (turn on, turn off, identify, poll tick) runs in
its own correlation scope so that the session open, the commands it issues
and the telemetry it publishes can be grouped in the logs.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new correlation ID (UUID4 hex, no dashes)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    auto_generate: bool = True,
) -> Iterator[str | None]:
    """
    Scope a correlation ID, restoring the previous one on exit.

    Args:
        correlation_id: Specific correlation ID to use (None to auto-generate)
        auto_generate: Generate a new ID if correlation_id is None

    Yields:
        The correlation ID in effect inside the block

    Example:
        with correlation_context() as corr_id:
            await controller.turn_off()
    """
    previous_id = get_correlation_id()

    if correlation_id is None and auto_generate:
        correlation_id = generate_correlation_id()

    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(previous_id)


def ensure_correlation_id() -> str:
    """
    Return the current correlation ID, creating one if none is set.

    Useful at task entry points such as the poller loop.
    """
    current_id = get_correlation_id()
    if current_id is None:
        current_id = generate_correlation_id()
        set_correlation_id(current_id)
    return current_id
