"""Transport-facing types shared by the session and its implementations."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from roomba_bridge.structs import DeviceConfig


class TransportEvent(StrEnum):
    """Events a transport emits to its listeners."""

    CONNECT = "connect"
    ERROR = "error"
    STATE = "state"


Listener = Callable[..., None]


class RobotTransport(Protocol):
    """One connection to a robot's local protocol.

    ``start()`` begins connecting and returns immediately; the outcome is
    reported through a ``connect`` or ``error`` event. ``state`` events carry
    the robot's accumulated reported state (a mapping). Command coroutines
    resolve once the robot has accepted the command and raise on failure.
    """

    def on(self, event: TransportEvent, listener: Listener) -> None: ...

    def off(self, event: TransportEvent, listener: Listener) -> None: ...

    def listener_count(self, event: TransportEvent) -> int: ...

    async def start(self) -> None: ...

    async def end(self) -> None: ...

    async def get_robot_state(self, fields: Sequence[str]) -> Mapping[str, Any]: ...

    async def clean(self) -> None: ...

    async def start_cleaning(self) -> None: ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def stop(self) -> None: ...

    async def dock(self) -> None: ...

    async def find(self) -> None: ...


class TransportFactory(Protocol):
    """Builds a fresh transport for one session using the given TLS cipher."""

    def __call__(self, config: DeviceConfig, cipher: str) -> RobotTransport: ...
