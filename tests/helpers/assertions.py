"""Assertion helpers shared by the unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

TError = TypeVar("TError", bound=BaseException)


async def raises_async(awaitable: Awaitable[object], error_type: type[TError]) -> TError:
    """Await ``awaitable`` and return the ``error_type`` it raised, for attribute checks."""
    try:
        _ = await awaitable
    except error_type as err:
        return err
    message = f"Expected {error_type.__name__} to be raised"
    raise AssertionError(message)  # pragma: no cover


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` holds, failing after ``timeout`` seconds."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)
