"""Shared fixtures for unit tests.

Robot config, the fake transport factory, short timeouts, a settable clock
and a controller wired to all of them.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from roomba_bridge.controller import RobotController
from roomba_bridge.structs import DeviceConfig, GlobalObject
from roomba_bridge.transport.retry_policy import TimeoutConfig
from tests.helpers.fakes import FakeClock, FakeTransportFactory, make_dummy_secret


@pytest.fixture
def robot_config() -> DeviceConfig:
    return DeviceConfig(
        name="Broombot",
        model="Roomba i7",
        serialnum="SN-1234",
        blid="3145C80060000000",
        robotpwd=make_dummy_secret("robotpwd"),
        ipaddress="192.168.1.50",
    )


@pytest.fixture
def fake_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def fast_timeouts() -> TimeoutConfig:
    """Short bounds so failure paths finish quickly."""
    return TimeoutConfig(
        connect_timeout_seconds=0.2,
        status_timeout_seconds=0.2,
        dock_settle_seconds=0,
        dock_max_attempts=3,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller(
    robot_config: DeviceConfig,
    fake_factory: FakeTransportFactory,
    fast_timeouts: TimeoutConfig,
    fake_clock: FakeClock,
) -> RobotController:
    return RobotController(robot_config, fake_factory, timeouts=fast_timeouts, clock=fake_clock)


@pytest.fixture
def global_controllers() -> Generator[dict[str, RobotController]]:
    """Expose GlobalObject.controllers, empty before and after the test."""
    g = GlobalObject()
    g.controllers.clear()
    yield g.controllers
    g.controllers.clear()
