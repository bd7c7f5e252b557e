"""Core data structures for the Roomba bridge."""

from __future__ import annotations

import asyncio
import os
from argparse import Namespace
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from roomba_bridge.const import (
    DEFAULT_IDLE_WATCH_MINUTES,
    ROOMBA_API_PORT,
    ROOMBA_CONFIG_FILE_PATH,
    ROOMBA_DEBUG,
    ROOMBA_ENABLE_API,
    ROOMBA_ENABLE_METRICS,
    ROOMBA_METRICS_PORT,
    ROOMBA_SRV_HOST,
    YES_ANSWER,
)

if TYPE_CHECKING:
    from roomba_bridge.api import ApiServer
    from roomba_bridge.controller import RobotController


class CleanBehaviour(StrEnum):
    """What the accessory means by "on". Passed through to the facade untouched."""

    EVERYWHERE = "everywhere"
    ROOMS = "rooms"


class StopBehaviour(StrEnum):
    """What the accessory means by "off". Passed through to the facade untouched."""

    HOME = "home"
    PAUSE = "pause"


class DeviceConfig(BaseModel):
    """Static robot configuration, immutable for the controller's lifetime.

    Field names follow the robot's own vocabulary: ``blid`` is the MQTT
    username/session id and ``robotpwd`` the session secret.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    model: str = "Roomba"
    serialnum: str = ""
    blid: str
    robotpwd: str = Field(repr=False)
    ipaddress: str
    clean_behaviour: CleanBehaviour = Field(default=CleanBehaviour.EVERYWHERE, alias="cleanBehaviour")
    stop_behaviour: StopBehaviour = Field(default=StopBehaviour.HOME, alias="stopBehaviour")
    idle_watch_interval: float = Field(default=DEFAULT_IDLE_WATCH_MINUTES, ge=0, alias="idleWatchInterval")

    @property
    def idle_poll_interval_seconds(self) -> float:
        """Idle poll period in seconds; an interval of 0 falls back to the default."""
        minutes = self.idle_watch_interval or DEFAULT_IDLE_WATCH_MINUTES
        return minutes * 60.0


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    """Last known robot telemetry, replaced wholesale on every observation.

    At most one of running, charging and docking is true.
    """

    timestamp: float = 0.0
    battery_level: int = 0
    bin_full: bool = False
    running: bool = False
    charging: bool = False
    docking: bool = False
    # Stopped part way through a cleaning cycle
    paused: bool = False

    @property
    def is_active(self) -> bool:
        return self.running or self.docking

    def as_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp,
            "batteryLevel": self.battery_level,
            "binFull": self.bin_full,
            "running": self.running,
            "charging": self.charging,
            "docking": self.docking,
            "paused": self.paused,
        }


EMPTY_STATUS = StatusSnapshot()


class GlobalObjEnv(BaseModel):
    """Process settings that a ``--env`` file may override after import."""

    debug: bool = ROOMBA_DEBUG
    config_file_path: str = ROOMBA_CONFIG_FILE_PATH
    srv_host: str = ROOMBA_SRV_HOST
    api_port: int = ROOMBA_API_PORT
    enable_api: bool = ROOMBA_ENABLE_API
    enable_metrics: bool = ROOMBA_ENABLE_METRICS
    metrics_port: int = ROOMBA_METRICS_PORT


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.casefold() in YES_ANSWER


def _env_port(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    return int(raw) if raw.isdigit() else default


class GlobalObject:
    """Singleton container for process-wide handles (loop, controllers, API server).

    Holds no robot state; each controller owns its own snapshot.
    """

    loop: asyncio.AbstractEventLoop | None = None
    cli_args: Namespace | None = None
    controllers: ClassVar[dict[str, RobotController]] = {}
    api_server: ApiServer | None = None
    tasks: ClassVar[list[asyncio.Task[object]]] = []
    env: GlobalObjEnv = GlobalObjEnv()

    _instance: GlobalObject | None = None

    def __new__(cls, *_args: object, **_kwargs: object) -> GlobalObject:
        """Ensure only one GlobalObject instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reload_env(self):
        """Re-evaluate environment variables, e.g. after loading a .env file."""
        self.env = GlobalObjEnv(
            debug=_env_flag("ROOMBA_DEBUG", ROOMBA_DEBUG),
            config_file_path=os.environ.get("ROOMBA_CONFIG_FILE_PATH", ROOMBA_CONFIG_FILE_PATH),
            srv_host=os.environ.get("ROOMBA_SRV_HOST", ROOMBA_SRV_HOST),
            api_port=_env_port("ROOMBA_API_PORT", ROOMBA_API_PORT),
            enable_api=_env_flag("ROOMBA_ENABLE_API", ROOMBA_ENABLE_API),
            enable_metrics=_env_flag("ROOMBA_ENABLE_METRICS", ROOMBA_ENABLE_METRICS),
            metrics_port=_env_port("ROOMBA_METRICS_PORT", ROOMBA_METRICS_PORT),
        )
