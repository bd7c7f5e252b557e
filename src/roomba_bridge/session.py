"""One connect → operate → disconnect cycle against a robot.

The robot's broker accepts a single client, so sessions are short-lived and
never shared: a session is opened for one logical operation and closed on
every exit path, including failures and cancellation.

Typical use::

    async with RobotSession(config, factory, on_state=publish) as session:
        await session.pause()
        snapshot = await session.request_state()
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from types import TracebackType
from typing import Any, Self

from roomba_bridge import metrics
from roomba_bridge.exceptions import CommandError, RobotConnectionError, StateQueryError
from roomba_bridge.instrumentation import timed_async
from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.status import REQUIRED_STATE_FIELDS, malformed_fields, state_is_complete
from roomba_bridge.structs import DeviceConfig, StatusSnapshot
from roomba_bridge.transport.retry_policy import CipherPolicy, TimeoutConfig, should_try_different_cipher
from roomba_bridge.transport.types import Listener, RobotTransport, TransportEvent, TransportFactory

logger = get_logger(__name__)

StatePublisher = Callable[[Mapping[str, Any]], StatusSnapshot]


class RobotSession:
    """Owns one transient transport to a robot.

    Listeners are registered on open and all of them are removed before the
    transport is ended, so repeated sessions never accumulate callbacks.
    """

    lp: str = "RobotSession:"

    def __init__(
        self,
        config: DeviceConfig,
        transport_factory: TransportFactory,
        *,
        on_state: StatePublisher,
        timeouts: TimeoutConfig | None = None,
        cipher_policy: CipherPolicy | None = None,
    ) -> None:
        self.config: DeviceConfig = config
        self.timeouts: TimeoutConfig = timeouts or TimeoutConfig()
        self.cipher_policy: CipherPolicy = cipher_policy or CipherPolicy()
        self.transport_error: BaseException | None = None
        self._transport_factory: TransportFactory = transport_factory
        self._on_state: StatePublisher = on_state
        self._transport: RobotTransport | None = None
        self._listeners: list[tuple[TransportEvent, Listener]] = []
        self._opened: bool = False
        self._closed: bool = False
        self._opened_at: float = 0.0

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    # -- lifecycle ----------------------------------------------------------

    @timed_async("session_open")
    async def open(self) -> Self:
        """Connect to the robot and wait for its acknowledgment.

        Retries with the next TLS cipher when the failure looks like a cipher
        mismatch, up to one attempt per cipher.

        Raises:
            RobotConnectionError: transport error before acknowledgment, or timeout

        """
        lp = f"{self.lp}open:"
        if self._opened:
            msg = "RobotSession objects are single-use"
            raise RuntimeError(msg)

        max_attempts = self.cipher_policy.max_attempts
        for attempt in range(1, max_attempts + 1):
            cipher = self.cipher_policy.current
            try:
                await self._connect(self._transport_factory(self.config, cipher))
            except TimeoutError as err:
                metrics.record_session_open(self.config.name, "timeout")
                reason = f"no connect acknowledgment within {self.timeouts.connect_timeout_seconds}s"
                raise RobotConnectionError(reason, self.config.ipaddress, attempt) from err
            except Exception as err:
                if should_try_different_cipher(err) and attempt < max_attempts:
                    next_cipher = self.cipher_policy.rotate()
                    logger.warning(
                        "%s %s rejected cipher %s, retrying with %s",
                        lp,
                        self.config.name,
                        cipher,
                        next_cipher,
                        extra={"error": str(err), "attempt": attempt},
                    )
                    continue
                metrics.record_session_open(self.config.name, "error")
                raise RobotConnectionError(str(err), self.config.ipaddress, attempt) from err

            self._opened = True
            self._opened_at = time.monotonic()
            metrics.record_session_open(self.config.name, "success")
            metrics.record_session_active(self.config.name, True)
            logger.debug(
                "%s connected to %s",
                lp,
                self.config.name,
                extra={"address": self.config.ipaddress, "cipher": cipher, "attempt": attempt},
            )
            return self

        # Unreachable: the final attempt either returns or raises
        msg = "exhausted connect attempts"
        raise RobotConnectionError(msg, self.config.ipaddress, max_attempts)

    async def _connect(self, transport: RobotTransport) -> None:
        acknowledged: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def on_connect() -> None:
            if not acknowledged.done():
                acknowledged.set_result(None)

        def on_error(error: BaseException) -> None:
            if not acknowledged.done():
                acknowledged.set_exception(error)
            else:
                self._on_transport_error(error)

        self._transport = transport
        self._listen(TransportEvent.STATE, self._on_state_event)
        self._listen(TransportEvent.ERROR, on_error)
        self._listen(TransportEvent.CONNECT, on_connect)
        try:
            await transport.start()
            async with asyncio.timeout(self.timeouts.connect_timeout_seconds):
                await acknowledged
        except BaseException:
            await self._release()
            raise

    def _listen(self, event: TransportEvent, listener: Listener) -> None:
        if self._transport is None:
            return
        self._transport.on(event, listener)
        self._listeners.append((event, listener))

    async def close(self) -> None:
        """Detach listeners and end the transport. Acts once per successful open."""
        if not self._opened or self._closed:
            return
        self._closed = True
        await self._release()
        metrics.record_session_active(self.config.name, False)
        metrics.record_session_duration(self.config.name, time.monotonic() - self._opened_at)
        logger.debug("%s closed session to %s", self.lp, self.config.name)

    async def _release(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        for event, listener in self._listeners:
            transport.off(event, listener)
        self._listeners.clear()
        try:
            await transport.end()
        except Exception:
            logger.exception("%s error ending transport to %s", self.lp, self.config.name)

    async def __aenter__(self) -> Self:
        return await self.open()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- telemetry ----------------------------------------------------------

    def _on_state_event(self, state: Mapping[str, Any]) -> None:
        _ = self._on_state(state)

    def _on_transport_error(self, error: BaseException) -> None:
        self.transport_error = error
        logger.warning(
            "%s transport error on open session to %s: %s",
            self.lp,
            self.config.name,
            error,
        )

    def _require_transport(self, operation: str) -> RobotTransport:
        if not self.is_open or self._transport is None:
            msg = f"Cannot {operation}: session to {self.config.name} is not open"
            raise RuntimeError(msg)
        return self._transport

    @timed_async("request_state")
    async def request_state(self) -> StatusSnapshot:
        """Ask for a fresh complete state and return the published snapshot.

        Raises:
            StateQueryError: no answer within the status timeout, or an unusable answer

        """
        transport = self._require_transport("request state")
        try:
            async with asyncio.timeout(self.timeouts.status_timeout_seconds):
                state = await transport.get_robot_state(REQUIRED_STATE_FIELDS)
        except TimeoutError as err:
            reason = f"no complete state within {self.timeouts.status_timeout_seconds}s"
            raise StateQueryError(reason) from err
        except Exception as err:
            raise StateQueryError(str(err)) from err

        if not state_is_complete(state):
            missing = [key for key in REQUIRED_STATE_FIELDS if not isinstance(state, Mapping) or key not in state]
            raise StateQueryError(f"incomplete state, missing {missing}")
        bad = malformed_fields(state)
        if bad:
            raise StateQueryError(f"malformed state, unusable {bad}")
        return self._on_state(state)

    # -- commands -----------------------------------------------------------

    async def _command(self, name: str, send: Callable[[], Awaitable[None]]) -> None:
        try:
            await send()
        except Exception as err:
            metrics.record_command(self.config.name, name, "error")
            raise CommandError(name, err) from err
        metrics.record_command(self.config.name, name, "success")
        logger.info("%s %s accepted '%s'", self.lp, self.config.name, name)

    @timed_async("clean")
    async def clean(self) -> None:
        await self._command("clean", self._require_transport("clean").clean)

    @timed_async("start")
    async def start(self) -> None:
        await self._command("start", self._require_transport("start").start_cleaning)

    @timed_async("resume")
    async def resume(self) -> None:
        await self._command("resume", self._require_transport("resume").resume)

    @timed_async("pause")
    async def pause(self) -> None:
        await self._command("pause", self._require_transport("pause").pause)

    @timed_async("dock")
    async def dock(self) -> None:
        await self._command("dock", self._require_transport("dock").dock)

    @timed_async("locate")
    async def locate(self) -> None:
        await self._command("locate", self._require_transport("locate").find)
