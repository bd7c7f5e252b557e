"""Metrics module."""

from .registry import (
    record_battery_level,
    record_command,
    record_dock_wait_attempt,
    record_operation,
    record_poll,
    record_session_active,
    record_session_duration,
    record_session_open,
    start_metrics_server,
)

__all__ = [
    "record_battery_level",
    "record_command",
    "record_dock_wait_attempt",
    "record_operation",
    "record_poll",
    "record_session_active",
    "record_session_duration",
    "record_session_open",
    "start_metrics_server",
]
