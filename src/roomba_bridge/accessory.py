"""Characteristic-style views of a robot's cached status.

These are the values an accessory host shows for a robot vacuum: contact
(docked) sensor, filter (bin) indicator, battery service. They are pure
functions of a StatusSnapshot and never touch the robot.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel

from roomba_bridge.structs import CleanBehaviour, StatusSnapshot, StopBehaviour

if TYPE_CHECKING:
    from roomba_bridge.controller import RobotController

LOW_BATTERY_THRESHOLD = 20


class DockedStatus(StrEnum):
    CONTACT_DETECTED = "CONTACT_DETECTED"
    CONTACT_NOT_DETECTED = "CONTACT_NOT_DETECTED"


class BinStatus(StrEnum):
    CHANGE_FILTER = "CHANGE_FILTER"
    FILTER_OK = "FILTER_OK"


class BatteryStatus(StrEnum):
    LOW = "Low"
    NORMAL = "Normal"


class ChargingState(StrEnum):
    CHARGING = "CHARGING"
    NOT_CHARGING = "NOT_CHARGING"


def docked_status(status: StatusSnapshot) -> DockedStatus:
    """A charging robot is sitting on its dock."""
    return DockedStatus.CONTACT_DETECTED if status.charging else DockedStatus.CONTACT_NOT_DETECTED


def bin_status(status: StatusSnapshot) -> BinStatus:
    return BinStatus.CHANGE_FILTER if status.bin_full else BinStatus.FILTER_OK


def battery_status(status: StatusSnapshot) -> BatteryStatus:
    return BatteryStatus.LOW if status.battery_level <= LOW_BATTERY_THRESHOLD else BatteryStatus.NORMAL


def charging_state(status: StatusSnapshot) -> ChargingState:
    return ChargingState.CHARGING if status.charging else ChargingState.NOT_CHARGING


class RobotStatusView(BaseModel):
    """What the HTTP facade reports for one robot."""

    name: str
    model: str
    serialnum: str
    on: bool
    active: bool
    battery_level: int
    battery_status: BatteryStatus
    charging_state: ChargingState
    docked_status: DockedStatus
    bin_status: BinStatus
    running: bool
    charging: bool
    docking: bool
    paused: bool
    last_updated: float
    clean_behaviour: CleanBehaviour
    stop_behaviour: StopBehaviour

    @classmethod
    def from_controller(cls, controller: RobotController) -> RobotStatusView:
        status = controller.cached_status
        config = controller.config
        return cls(
            name=config.name,
            model=config.model,
            serialnum=config.serialnum,
            on=status.running,
            active=status.is_active,
            battery_level=status.battery_level,
            battery_status=battery_status(status),
            charging_state=charging_state(status),
            docked_status=docked_status(status),
            bin_status=bin_status(status),
            running=status.running,
            charging=status.charging,
            docking=status.docking,
            paused=status.paused,
            last_updated=status.timestamp,
            clean_behaviour=config.clean_behaviour,
            stop_behaviour=config.stop_behaviour,
        )
