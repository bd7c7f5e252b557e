"""Single admission slot for robot operations.

At most one session may be open against a robot, so every operation goes
through a CommandSerializer first:

- a poll arriving while anything holds the slot is skipped for that tick,
- a user command arriving while another user command holds the slot is
  rejected with BusyError,
- a user command arriving while a poll holds the slot cancels the poll,
  waits for its session to close, then takes the slot.

Everything runs on one event loop, so checking and taking the slot happen
without an intervening await and need no lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import IntEnum

from roomba_bridge.exceptions import BusyError
from roomba_bridge.logging_abstraction import get_logger

logger = get_logger(__name__)


class Priority(IntEnum):
    POLL = 0
    USER = 1


class CommandSerializer:
    """Admission slot shared by one robot's user commands and poller."""

    lp: str = "CommandSerializer:"

    def __init__(self, name: str = "robot") -> None:
        self.name: str = name
        self.active_operation: str | None = None
        self.active_priority: Priority | None = None
        self._holder: asyncio.Task[object] | None = None
        self._released: asyncio.Event = asyncio.Event()
        self._released.set()

    @property
    def busy(self) -> bool:
        return self.active_operation is not None

    def _take(self, operation: str, priority: Priority) -> None:
        self.active_operation = operation
        self.active_priority = priority
        self._holder = asyncio.current_task()
        self._released.clear()

    def try_acquire(self, operation: str, priority: Priority = Priority.POLL) -> bool:
        """Take the slot if it is free. Never waits."""
        if self.busy:
            logger.debug(
                "%s %s: '%s' not admitted, '%s' in flight",
                self.lp,
                self.name,
                operation,
                self.active_operation,
            )
            return False
        self._take(operation, priority)
        return True

    async def acquire(self, operation: str) -> None:
        """Take the slot for a user command.

        Raises:
            BusyError: another user command holds the slot

        """
        while self.busy and self.active_priority is Priority.POLL:
            await self._preempt_poll(operation)
        if self.busy:
            raise BusyError(operation, self.active_operation or "another operation")
        self._take(operation, Priority.USER)

    async def _preempt_poll(self, operation: str) -> None:
        holder = self._holder
        logger.debug(
            "%s %s: '%s' preempting '%s'",
            self.lp,
            self.name,
            operation,
            self.active_operation,
        )
        if holder is not None and holder is not asyncio.current_task() and not holder.done():
            _ = holder.cancel()
        await self._released.wait()

    def release(self) -> None:
        self.active_operation = None
        self.active_priority = None
        self._holder = None
        self._released.set()

    @asynccontextmanager
    async def exclusive(self, operation: str) -> AsyncIterator[None]:
        """Hold the slot for a user command for the duration of the block."""
        await self.acquire(operation)
        try:
            yield
        finally:
            self.release()
