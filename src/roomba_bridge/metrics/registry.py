"""Prometheus metrics for robot sessions, commands and polling."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

roomba_session_open_total: Final = Counter(  # type: ignore[assignment]
    "roomba_session_open_total",
    "Total session open attempts",
    ["robot", "outcome"],
)

roomba_session_duration_seconds: Final = Histogram(  # type: ignore[assignment]
    "roomba_session_duration_seconds",
    "Time a session stayed open, from connect acknowledgment to close",
    ["robot"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

roomba_session_active: Final = Gauge(  # type: ignore[assignment]
    "roomba_session_active",
    "1 while a session to the robot is open",
    ["robot"],
)

roomba_command_total: Final = Counter(  # type: ignore[assignment]
    "roomba_command_total",
    "Total commands sent to the robot",
    ["robot", "command", "outcome"],
)

roomba_operation_total: Final = Counter(  # type: ignore[assignment]
    "roomba_operation_total",
    "Total high-level operations (turn_on, turn_off, identify)",
    ["robot", "operation", "outcome"],
)

roomba_poll_total: Final = Counter(  # type: ignore[assignment]
    "roomba_poll_total",
    "Total poll ticks by outcome (refreshed, skipped, preempted, failed)",
    ["robot", "outcome"],
)

roomba_dock_wait_attempts_total: Final = Counter(  # type: ignore[assignment]
    "roomba_dock_wait_attempts_total",
    "Total state checks made while waiting for the robot to stop before docking",
    ["robot"],
)

roomba_battery_level: Final = Gauge(  # type: ignore[assignment]
    "roomba_battery_level",
    "Last reported battery percentage",
    ["robot"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9410) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_session_open(robot: str, outcome: str) -> None:
    roomba_session_open_total.labels(robot=robot, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_session_active(robot: str, active: bool) -> None:
    roomba_session_active.labels(robot=robot).set(1 if active else 0)  # type: ignore[no-untyped-call]


def record_session_duration(robot: str, seconds: float) -> None:
    roomba_session_duration_seconds.labels(robot=robot).observe(seconds)  # type: ignore[no-untyped-call]


def record_command(robot: str, command: str, outcome: str) -> None:
    roomba_command_total.labels(robot=robot, command=command, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_operation(robot: str, operation: str, outcome: str) -> None:
    roomba_operation_total.labels(  # type: ignore[no-untyped-call]
        robot=robot,
        operation=operation,
        outcome=outcome,
    ).inc()


def record_poll(robot: str, outcome: str) -> None:
    roomba_poll_total.labels(robot=robot, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_dock_wait_attempt(robot: str) -> None:
    roomba_dock_wait_attempts_total.labels(robot=robot).inc()  # type: ignore[no-untyped-call]


def record_battery_level(robot: str, level: int) -> None:
    roomba_battery_level.labels(robot=robot).set(level)  # type: ignore[no-untyped-call]
