"""In-memory robot transport for tests.

FakeTransportFactory builds FakeTransport objects that record every call
into one shared log and follow a script for connects, state answers and
command failures.
"""

from __future__ import annotations

import asyncio
import secrets
from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

from roomba_bridge.structs import DeviceConfig
from roomba_bridge.transport.types import Listener, TransportEvent


def make_dummy_secret(prefix: str = "secret") -> str:
    """Return a non-literal secret string for tests."""
    return f"{prefix}-{secrets.token_hex(16)}"


def robot_state(
    phase: str = "charge",
    battery: int = 77,
    bin_full: bool = False,
    cycle: str = "none",
) -> dict[str, Any]:
    """A complete reported state as the robot sends it."""
    return {
        "batPct": battery,
        "bin": {"present": True, "full": bin_full},
        "cleanMissionStatus": {"phase": phase, "cycle": cycle},
    }


class FakeTransport:
    """RobotTransport double driven by its factory's script."""

    def __init__(self, factory: FakeTransportFactory, connect_error: BaseException | None) -> None:
        self.factory = factory
        self.connect_error = connect_error
        self.started = False
        self.ended = False
        self._listeners: defaultdict[TransportEvent, list[Listener]] = defaultdict(list)

    def on(self, event: TransportEvent, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def off(self, event: TransportEvent, listener: Listener) -> None:
        self._listeners[event].remove(listener)

    def listener_count(self, event: TransportEvent) -> int:
        return len(self._listeners[event])

    def total_listeners(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    def emit(self, event: TransportEvent, *args: object) -> None:
        for listener in list(self._listeners[event]):
            listener(*args)

    async def start(self) -> None:
        self.started = True
        self.factory.calls.append("open")
        if self.connect_error is not None:
            self.emit(TransportEvent.ERROR, self.connect_error)
        elif self.factory.acknowledge:
            self.emit(TransportEvent.CONNECT)

    async def end(self) -> None:
        self.ended = True
        self.factory.calls.append("close")

    async def get_robot_state(self, fields: Sequence[str]) -> Mapping[str, Any]:
        self.factory.calls.append("get_state")
        if self.factory.state_error is not None:
            raise self.factory.state_error
        if self.factory.state_gate is not None:
            await self.factory.state_gate.wait()
        state = self.factory.next_state()
        self.emit(TransportEvent.STATE, state)
        return state

    async def _command(self, name: str) -> None:
        self.factory.calls.append(name)
        if self.factory.command_gate is not None:
            await self.factory.command_gate.wait()
        error = self.factory.command_errors.get(name)
        if error is not None:
            raise error

    async def clean(self) -> None:
        await self._command("clean")

    async def start_cleaning(self) -> None:
        await self._command("start")

    async def pause(self) -> None:
        await self._command("pause")

    async def resume(self) -> None:
        await self._command("resume")

    async def stop(self) -> None:
        await self._command("stop")

    async def dock(self) -> None:
        await self._command("dock")

    async def find(self) -> None:
        await self._command("find")


class FakeTransportFactory:
    """TransportFactory that scripts every transport it builds.

    Attributes:
        calls: Ordered log of "open", "close", "get_state" and command names across all sessions
        states: Answers to successive state queries; the last one repeats
        connect_errors: Error (or None for success) for each successive connect attempt
        acknowledge: When False, a connect attempt neither acknowledges nor fails
        command_errors: Command name -> exception raised by that command
        command_gate: When set, commands wait on it before completing
        state_gate: When set, state queries wait on it before answering

    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.ciphers: list[str] = []
        self.states: list[Mapping[str, Any]] = [robot_state("charge", battery=100)]
        self.connect_errors: list[BaseException | None] = []
        self.acknowledge: bool = True
        self.command_errors: dict[str, BaseException] = {}
        self.command_gate: asyncio.Event | None = None
        self.state_gate: asyncio.Event | None = None
        self.state_error: BaseException | None = None

    def next_state(self) -> Mapping[str, Any]:
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    def __call__(self, config: DeviceConfig, cipher: str) -> FakeTransport:
        self.ciphers.append(cipher)
        connect_error = self.connect_errors.pop(0) if self.connect_errors else None
        transport = FakeTransport(self, connect_error)
        self.transports.append(transport)
        return transport

    def commands(self) -> list[str]:
        """Device-side commands only, in order."""
        return [c for c in self.calls if c not in ("open", "close", "get_state")]


class FakeClock:
    """Settable wall clock: call it for the time, assign ``now`` to move it."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now
