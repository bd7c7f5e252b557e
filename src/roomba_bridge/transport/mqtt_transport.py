"""Robot local protocol over MQTT/TLS.

The robot runs its own MQTT broker on port 8883 and accepts exactly one
client at a time, authenticated with the robot's blid and password. Once
connected it pushes fragments of its shadow document::

    {"state": {"reported": {"batPct": 95, "cleanMissionStatus": {...}}}}

Commands are published to the ``cmd`` topic as JSON::

    {"command": "dock", "time": 1718000000, "initiator": "localApp"}
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import ssl
import time
from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import aiomqtt

from roomba_bridge.const import ROBOT_CMD_TOPIC, ROBOT_MQTT_PORT
from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.transport.types import Listener, TransportEvent

if TYPE_CHECKING:
    from roomba_bridge.structs import DeviceConfig

logger = get_logger(__name__)

_TLS13_PREFIX = "TLS_"


def build_tls_context(cipher: str) -> ssl.SSLContext:
    """TLS context for a robot: self-signed certificate, pinned cipher."""
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    if cipher.startswith(_TLS13_PREFIX):
        # TLS 1.3 suites cannot be selected through set_ciphers(); they are on by default
        ctx.minimum_version = ssl.TLSVersion.TLSv1_3
    else:
        ctx.set_ciphers(cipher)
        ctx.maximum_version = ssl.TLSVersion.TLSv1_2
    return ctx


class MqttRobotTransport:
    """RobotTransport backed by aiomqtt."""

    lp: str = "MqttRobotTransport:"

    def __init__(
        self,
        blid: str,
        password: str,
        address: str,
        *,
        cipher: str,
        port: int = ROBOT_MQTT_PORT,
        keepalive: int = 60,
    ) -> None:
        self.blid: str = blid
        self.address: str = address
        self.cipher: str = cipher
        self.robot_state: dict[str, Any] = {}
        self.connected: bool = False
        self._listeners: defaultdict[TransportEvent, list[Listener]] = defaultdict(list)
        self._run_task: asyncio.Task[None] | None = None
        self._failure: BaseException | None = None
        self._state_generation: int = 0
        self._state_waiters: list[asyncio.Future[None]] = []
        self._client: aiomqtt.Client = aiomqtt.Client(
            hostname=address,
            port=port,
            username=blid,
            password=password,
            identifier=blid,
            protocol=aiomqtt.ProtocolVersion.V311,
            tls_context=build_tls_context(cipher),
            keepalive=keepalive,
            clean_session=False,
        )

    # -- events -------------------------------------------------------------

    def on(self, event: TransportEvent, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def off(self, event: TransportEvent, listener: Listener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners[event].remove(listener)

    def listener_count(self, event: TransportEvent) -> int:
        return len(self._listeners[event])

    def _emit(self, event: TransportEvent, *args: object) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception:
                logger.exception("%s listener for '%s' failed", self.lp, event)

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        if self._run_task is not None:
            return
        self._run_task = asyncio.create_task(self._run(), name=f"robot-mqtt-{self.address}")

    async def end(self) -> None:
        task, self._run_task = self._run_task, None
        if task is None:
            return
        if not task.done():
            _ = task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        lp = f"{self.lp}run:"
        try:
            async with self._client as client:
                self.connected = True
                logger.debug("%s connected to %s", lp, self.address, extra={"cipher": self.cipher})
                self._emit(TransportEvent.CONNECT)
                async for message in client.messages:
                    self._handle_message(str(message.topic), message.payload)
        except (aiomqtt.MqttError, ssl.SSLError, OSError) as err:
            self._failure = err
            logger.debug("%s transport error from %s: %s", lp, self.address, err)
            self._emit(TransportEvent.ERROR, err)
        except Exception as err:
            self._failure = err
            logger.exception("%s unexpected error from %s", lp, self.address)
            self._emit(TransportEvent.ERROR, err)
        finally:
            self.connected = False
            self._wake_state_waiters()

    # -- telemetry ----------------------------------------------------------

    def _handle_message(self, topic: str, payload: object) -> None:
        if not isinstance(payload, bytes | bytearray | str):
            return
        try:
            document = json.loads(payload)
        except ValueError:
            logger.debug("%s ignoring non-JSON message on %s", self.lp, topic)
            return
        state = document.get("state") if isinstance(document, Mapping) else None
        reported = state.get("reported") if isinstance(state, Mapping) else None
        if not isinstance(reported, Mapping):
            return

        self.robot_state.update(reported)
        self._state_generation += 1
        self._wake_state_waiters()
        self._emit(TransportEvent.STATE, dict(self.robot_state))

    def _wake_state_waiters(self) -> None:
        waiters, self._state_waiters = self._state_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    async def get_robot_state(self, fields: Sequence[str]) -> Mapping[str, Any]:
        """Wait for the next state report after which every field in ``fields`` is known.

        Unbounded; callers apply their own timeout.
        """
        seen = self._state_generation
        loop = asyncio.get_running_loop()
        while not (self._state_generation > seen and all(f in self.robot_state for f in fields)):
            if self._failure is not None:
                msg = f"Robot transport failed while waiting for state: {self._failure}"
                raise aiomqtt.MqttError(msg) from self._failure
            if self._run_task is None or self._run_task.done():
                msg = "Robot transport closed while waiting for state"
                raise aiomqtt.MqttError(msg)
            waiter: asyncio.Future[None] = loop.create_future()
            self._state_waiters.append(waiter)
            await waiter
        return dict(self.robot_state)

    # -- commands -----------------------------------------------------------

    async def _command(self, command: str) -> None:
        if not self.connected:
            msg = f"Cannot send '{command}': not connected to {self.address}"
            raise aiomqtt.MqttError(msg)
        payload = json.dumps({"command": command, "time": int(time.time()), "initiator": "localApp"})
        logger.debug("%s sending '%s' to %s", self.lp, command, self.address)
        await self._client.publish(ROBOT_CMD_TOPIC, payload=payload, qos=0)

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


def mqtt_transport_factory(config: DeviceConfig, cipher: str) -> MqttRobotTransport:
    """Default TransportFactory: one MqttRobotTransport per session."""
    return MqttRobotTransport(config.blid, config.robotpwd, config.ipaddress, cipher=cipher)
