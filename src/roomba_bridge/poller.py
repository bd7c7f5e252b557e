"""Background status refresh for one robot.

The poller runs one tick, waits for the current poll interval, and runs the
next tick, so ticks never overlap. Each tick runs in its own task: when a
user command needs the session slot, the serializer cancels that task and
the poller simply waits for the next interval.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from roomba_bridge.correlation import correlation_context
from roomba_bridge.logging_abstraction import get_logger

logger = get_logger(__name__)


class Poller:
    """Timer-driven refresh loop.

    Args:
        tick: Coroutine function doing one refresh; returns True when the cache was refreshed
        interval: Called before every wait to get the current interval in seconds
        name: Robot name, for logs and the task name

    """

    lp: str = "Poller:"

    def __init__(
        self,
        tick: Callable[[], Awaitable[bool]],
        interval: Callable[[], float],
        name: str = "robot",
    ) -> None:
        self.name: str = name
        self.running: bool = False
        self.ticks: int = 0
        self._tick: Callable[[], Awaitable[bool]] = tick
        self._interval: Callable[[], float] = interval
        self._task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[bool] | None = None
        self._wake: asyncio.Event = asyncio.Event()

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self.running = True
        self._task = asyncio.create_task(self._run(), name=f"poller-{self.name}")

    async def stop(self) -> None:
        self.running = False
        task, self._task = self._task, None
        if task is None:
            return
        _ = task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def wake(self) -> None:
        """Run the next tick now instead of waiting out the interval."""
        self._wake.set()

    async def _run(self) -> None:
        lp = f"{self.lp}run:"
        logger.debug("%s polling %s", lp, self.name)
        try:
            while self.running:
                await self.run_tick()
                await self._wait(self._interval())
        finally:
            logger.debug("%s stopped polling %s", lp, self.name)

    async def run_tick(self) -> bool:
        """Run one tick to completion, returning False if it was skipped, preempted or failed."""
        with correlation_context():
            self._tick_task = tick_task = asyncio.create_task(self._tick(), name=f"poll-tick-{self.name}")
        self.ticks += 1
        try:
            _ = await asyncio.wait({tick_task})
        except asyncio.CancelledError:
            # Poller stopped mid-tick: let the tick close its session first
            _ = tick_task.cancel()
            _ = await asyncio.wait({tick_task})
            raise
        finally:
            self._tick_task = None
        if tick_task.cancelled():
            logger.debug("%s %s tick preempted", self.lp, self.name)
            return False
        error = tick_task.exception()
        if error is not None:
            logger.error("%s %s tick failed: %s", self.lp, self.name, error)
            return False
        return tick_task.result()

    async def _wait(self, seconds: float) -> None:
        with contextlib.suppress(TimeoutError):
            async with asyncio.timeout(max(seconds, 0.0)):
                _ = await self._wake.wait()
        self._wake.clear()
