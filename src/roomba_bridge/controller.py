"""Device-connection controller for one robot.

Owns the robot's configuration, its cached StatusSnapshot, the command
serializer and the poller. The cached snapshot has a single writer,
:meth:`RobotController.publish_state`, which every session calls with the
telemetry it receives (pushed or queried).
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from roomba_bridge import metrics
from roomba_bridge.const import (
    ACTIVE_POLL_SECONDS,
    AFTER_ACTIVE_SECONDS,
    REFRESH_COALESCE_SECONDS,
    USER_INTERESTED_SECONDS,
    USER_POLL_SECONDS,
)
from roomba_bridge.correlation import correlation_context
from roomba_bridge.docking import DockingWaitLoop
from roomba_bridge.exceptions import RoombaBridgeError
from roomba_bridge.logging_abstraction import get_logger
from roomba_bridge.poller import Poller
from roomba_bridge.serializer import CommandSerializer, Priority
from roomba_bridge.session import RobotSession
from roomba_bridge.status import parse_phase
from roomba_bridge.structs import EMPTY_STATUS, DeviceConfig, StatusSnapshot
from roomba_bridge.transport.mqtt_transport import mqtt_transport_factory
from roomba_bridge.transport.retry_policy import CipherPolicy, TimeoutConfig
from roomba_bridge.transport.types import TransportFactory

logger = get_logger(__name__)


class RobotController:
    """High-level, phase-aware commands for one robot.

    ``turn_on``, ``turn_off`` and ``identify`` are user commands: they take
    the serializer slot (preempting a poll, or raising BusyError if another
    user command holds it) and open a session for their duration.
    ``poll_once`` is the poller's tick and gives way to everything else.
    """

    lp: str = "RobotController:"

    def __init__(
        self,
        config: DeviceConfig,
        transport_factory: TransportFactory | None = None,
        *,
        timeouts: TimeoutConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config: DeviceConfig = config
        self.timeouts: TimeoutConfig = timeouts or TimeoutConfig()
        self.cipher_policy: CipherPolicy = CipherPolicy()
        self.serializer: CommandSerializer = CommandSerializer(config.name)
        self.poller: Poller = Poller(self.poll_once, self.current_poll_interval, config.name)
        self._transport_factory: TransportFactory = transport_factory or mqtt_transport_factory
        self._clock: Callable[[], float] = clock
        self._status: StatusSnapshot = EMPTY_STATUS
        self._user_last_interested: float | None = None
        self._last_active: float | None = None
        self._last_refresh_request: float | None = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def cached_status(self) -> StatusSnapshot:
        """Most recently published snapshot (read-only)."""
        return self._status

    def seed_status(self, snapshot: StatusSnapshot) -> None:
        """Replace the cached snapshot without telemetry. For bootstrap and tests only."""
        self._status = snapshot

    def is_active(self) -> bool:
        return self._status.is_active

    def publish_state(self, state: Mapping[str, Any]) -> StatusSnapshot:
        """Merge one telemetry observation into the cache and return the new snapshot."""
        snapshot = parse_phase(state, self._status, timestamp=self._clock())
        self._status = snapshot
        if snapshot.is_active:
            self._last_active = snapshot.timestamp
        metrics.record_battery_level(self.name, snapshot.battery_level)
        return snapshot

    def session(self) -> RobotSession:
        """A new, unopened session publishing into this controller."""
        return RobotSession(
            self.config,
            self._transport_factory,
            on_state=self.publish_state,
            timeouts=self.timeouts,
            cipher_policy=self.cipher_policy,
        )

    # -- user commands ------------------------------------------------------

    async def _run_user_operation(
        self,
        operation: str,
        action: Callable[[RobotSession], Awaitable[None]],
    ) -> None:
        with correlation_context():
            try:
                async with self.serializer.exclusive(operation):
                    async with self.session() as session:
                        await action(session)
            except RoombaBridgeError as err:
                metrics.record_operation(self.name, operation, err.kind)
                logger.warning(
                    "%s %s on %s failed: %s",
                    self.lp,
                    operation,
                    self.name,
                    err,
                    extra={"kind": err.kind},
                )
                raise
            metrics.record_operation(self.name, operation, "success")
        # Report the outcome promptly instead of waiting out the idle interval
        self.poller.wake()

    async def turn_on(self) -> None:
        """Start cleaning, resume a paused cycle, or do nothing if already running."""

        async def action(session: RobotSession) -> None:
            status = self.cached_status
            if status.running:
                logger.info("%s %s is already running", self.lp, self.name)
            elif status.paused:
                await session.resume()
            else:
                await session.clean()

        await self._run_user_operation("turn_on", action)

    async def turn_off(self) -> None:
        """Send the robot home, pausing and waiting for it to stop first if it is running.

        Raises:
            DockTimeoutError: the robot kept running; it is left paused and undocked

        """

        async def action(session: RobotSession) -> None:
            loop = DockingWaitLoop(
                session,
                robot=self.name,
                settle_seconds=self.timeouts.dock_settle_seconds,
                max_attempts=self.timeouts.dock_max_attempts,
            )
            _ = await loop.run(self.cached_status)

        await self._run_user_operation("turn_off", action)

    async def identify(self) -> None:
        """Make the robot play its locate sound."""

        async def action(session: RobotSession) -> None:
            await session.locate()

        await self._run_user_operation("identify", action)

    # -- polling ------------------------------------------------------------

    async def poll_once(self) -> bool:
        """Refresh the cached snapshot unless another operation holds the slot.

        Failures are logged, never raised; the next tick tries again.
        """
        if not self.serializer.try_acquire("poll", Priority.POLL):
            metrics.record_poll(self.name, "skipped")
            return False
        try:
            async with self.session() as session:
                _ = await session.request_state()
        except RoombaBridgeError as err:
            metrics.record_poll(self.name, "failed")
            logger.warning("%s poll of %s failed: %s", self.lp, self.name, err, extra={"kind": err.kind})
            return False
        except BaseException:
            metrics.record_poll(self.name, "preempted")
            raise
        finally:
            self.serializer.release()
        metrics.record_poll(self.name, "refreshed")
        return True

    def current_poll_interval(self) -> float:
        """Seconds until the next poll: short while someone is watching or the robot is busy."""
        now = self._clock()
        if self._user_last_interested is not None and now - self._user_last_interested < USER_INTERESTED_SECONDS:
            return USER_POLL_SECONDS
        if self.is_active() or (self._last_active is not None and now - self._last_active < AFTER_ACTIVE_SECONDS):
            return ACTIVE_POLL_SECONDS
        return self.config.idle_poll_interval_seconds

    def refresh_status_for_user(self) -> None:
        """Note that a reader cares about this robot and refresh soon.

        Requests closer together than REFRESH_COALESCE_SECONDS share one refresh.
        """
        now = self._clock()
        self._user_last_interested = now
        if self._last_refresh_request is None or now - self._last_refresh_request > REFRESH_COALESCE_SECONDS:
            self._last_refresh_request = now
            self.poller.wake()

    def start(self) -> None:
        logger.info(
            "%s starting %s",
            self.lp,
            self.name,
            extra={"address": self.config.ipaddress, "model": self.config.model},
        )
        self.poller.start()

    async def stop(self) -> None:
        await self.poller.stop()
        logger.info("%s stopped %s", self.lp, self.name)
