"""Translate raw robot telemetry into StatusSnapshot values.

The robot reports its state as a JSON document (the "reported" section of
its shadow). Only three fields matter here::

    {
        "batPct": 77,
        "bin": {"full": false},
        "cleanMissionStatus": {"phase": "run", "cycle": "clean"}
    }

Telemetry arrives in fragments, so :func:`parse_phase` merges whatever is
present onto the previous snapshot and leaves everything else alone.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import replace
from enum import StrEnum
from typing import Any

from roomba_bridge.structs import EMPTY_STATUS, StatusSnapshot

__all__ = [
    "CHARGING_PHASES",
    "DOCKING_PHASES",
    "REQUIRED_STATE_FIELDS",
    "Phase",
    "malformed_fields",
    "parse_phase",
    "phase_of",
    "state_is_complete",
]


class Phase(StrEnum):
    """Known values of cleanMissionStatus.phase. Robots may report others."""

    RUN = "run"
    CHARGE = "charge"
    RECHARGE = "recharge"
    STOP = "stop"
    STUCK = "stuck"
    EVAC = "evac"
    USER_DOCK = "hmUsrDock"
    MID_MISSION_DOCK = "hmMidMsn"
    POST_MISSION_DOCK = "hmPostMsn"


CHARGING_PHASES: frozenset[str] = frozenset({Phase.CHARGE, Phase.RECHARGE})
DOCKING_PHASES: frozenset[str] = frozenset({Phase.USER_DOCK, Phase.MID_MISSION_DOCK, Phase.POST_MISSION_DOCK})
REQUIRED_STATE_FIELDS: tuple[str, ...] = ("batPct", "bin", "cleanMissionStatus")

_CLEAN_CYCLE = "clean"


def state_is_complete(state: object) -> bool:
    """True when ``state`` carries battery, bin and mission status."""
    return isinstance(state, Mapping) and all(state.get(key) is not None for key in REQUIRED_STATE_FIELDS)


def malformed_fields(state: Mapping[str, Any]) -> list[str]:
    """Required fields present in ``state`` whose value parse_phase cannot use."""
    bad: list[str] = []
    if _battery_level(state.get("batPct")) is None:
        bad.append("batPct")
    bin_state = state.get("bin")
    if not isinstance(bin_state, Mapping) or not isinstance(bin_state.get("full"), bool):
        bad.append("bin")
    if phase_of(state) is None:
        bad.append("cleanMissionStatus")
    return bad


def phase_of(state: object) -> str | None:
    if not isinstance(state, Mapping):
        return None
    mission = state.get("cleanMissionStatus")
    if not isinstance(mission, Mapping):
        return None
    phase = mission.get("phase")
    return phase if isinstance(phase, str) else None


def _battery_level(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    # json.loads accepts NaN and Infinity
    if not math.isfinite(value):
        return None
    return max(0, min(100, int(value)))


def parse_phase(
    state: object,
    previous: StatusSnapshot = EMPTY_STATUS,
    timestamp: float | None = None,
) -> StatusSnapshot:
    """Build the snapshot implied by ``state`` on top of ``previous``.

    Pure and total: fields that are missing or malformed keep their value
    from ``previous`` and a non-mapping ``state`` returns ``previous``.

    Phase mapping:
        run                            -> running
        charge, recharge               -> charging
        hmUsrDock, hmMidMsn, hmPostMsn -> docking
        anything else                  -> idle (all three false)

    Args:
        state: Raw reported state from the robot
        previous: Snapshot to merge onto
        timestamp: Observation time for the new snapshot (defaults to previous.timestamp)

    Returns:
        A new StatusSnapshot

    """
    if not isinstance(state, Mapping):
        return previous

    changes: dict[str, Any] = {}
    if timestamp is not None:
        changes["timestamp"] = timestamp

    battery = _battery_level(state.get("batPct"))
    if battery is not None:
        changes["battery_level"] = battery

    bin_state = state.get("bin")
    if isinstance(bin_state, Mapping) and isinstance(bin_state.get("full"), bool):
        changes["bin_full"] = bin_state["full"]

    phase = phase_of(state)
    if phase is not None:
        running = phase == Phase.RUN
        changes["running"] = running
        changes["charging"] = phase in CHARGING_PHASES
        changes["docking"] = phase in DOCKING_PHASES
        cycle = state["cleanMissionStatus"].get("cycle")
        changes["paused"] = not running and cycle == _CLEAN_CYCLE

    return replace(previous, **changes)
