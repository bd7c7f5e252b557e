"""Power-off sequence: pause, wait for the robot to stop, then dock.

A robot that is mid-clean ignores ``dock`` until it has actually stopped,
and its telemetry takes a moment to catch up with a ``pause``. The loop is
an explicit state machine so each transition, and each way it can fail, can
be exercised without real timers::

    REQUESTED -> PAUSING -> WAITING_TO_STOP -> DOCKING -> DONE
         \\           \\              \\             \\
          +-----------+--------------+-------------+--> FAILED

A robot that is already stopped or charging goes straight to DOCKING.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Protocol

from roomba_bridge import metrics
from roomba_bridge.const import DOCK_MAX_ATTEMPTS, DOCK_SETTLE_SECONDS
from roomba_bridge.exceptions import DockTimeoutError
from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.structs import StatusSnapshot

logger = get_logger(__name__)


class DockState(StrEnum):
    REQUESTED = "requested"
    PAUSING = "pausing"
    WAITING_TO_STOP = "waiting_to_stop"
    DOCKING = "docking"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES: frozenset[DockState] = frozenset({DockState.DONE, DockState.FAILED})


class DockingSession(Protocol):
    """The session operations the loop needs."""

    async def pause(self) -> None: ...

    async def request_state(self) -> StatusSnapshot: ...

    async def dock(self) -> None: ...


class DockingWaitLoop:
    """Drives one turn-off invocation to DONE or FAILED.

    The delay between state checks is a scheduled resumption
    (``asyncio.sleep`` by default), never a blocking sleep.
    """

    lp: str = "DockingWaitLoop:"

    def __init__(
        self,
        session: DockingSession,
        *,
        robot: str = "robot",
        settle_seconds: float = DOCK_SETTLE_SECONDS,
        max_attempts: int = DOCK_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self.session: DockingSession = session
        self.robot: str = robot
        self.settle_seconds: float = settle_seconds
        self.max_attempts: int = max_attempts
        self.state: DockState = DockState.REQUESTED
        self.transitions: list[DockState] = [DockState.REQUESTED]
        self.attempts: int = 0
        self._sleep: Callable[[float], Awaitable[None]] = sleep

    def _transition(self, state: DockState) -> None:
        logger.debug("%s %s: %s -> %s", self.lp, self.robot, self.state, state)
        self.state = state
        self.transitions.append(state)

    async def run(self, cached: StatusSnapshot) -> DockState:
        """Run to completion from the cached snapshot.

        Returns:
            DockState.DONE

        Raises:
            DockTimeoutError: still running after max_attempts state checks
            CommandError: pause or dock failed
            StateQueryError: a state check failed

        """
        if self.state is not DockState.REQUESTED:
            msg = "DockingWaitLoop objects are single-use"
            raise RuntimeError(msg)

        self._transition(DockState.PAUSING if cached.running else DockState.DOCKING)
        try:
            while self.state not in TERMINAL_STATES:
                await self._step()
        except BaseException:
            self._transition(DockState.FAILED)
            raise
        return self.state

    async def _step(self) -> None:
        match self.state:
            case DockState.PAUSING:
                await self.session.pause()
                self._transition(DockState.WAITING_TO_STOP)
            case DockState.WAITING_TO_STOP:
                await self._wait_to_stop()
            case DockState.DOCKING:
                await self.session.dock()
                self._transition(DockState.DONE)
                logger.info("%s %s is returning to its dock", self.lp, self.robot)
            case _:
                msg = f"unexpected state {self.state}"
                raise RuntimeError(msg)

    async def _wait_to_stop(self) -> None:
        while True:
            self.attempts += 1
            metrics.record_dock_wait_attempt(self.robot)
            snapshot = await self.session.request_state()
            if not snapshot.running:
                self._transition(DockState.DOCKING)
                return
            if self.attempts >= self.max_attempts:
                logger.warning(
                    "%s %s still running after %d checks, leaving it paused",
                    self.lp,
                    self.robot,
                    self.attempts,
                )
                raise DockTimeoutError(self.attempts, self.settle_seconds)
            await self._sleep(self.settle_seconds)
