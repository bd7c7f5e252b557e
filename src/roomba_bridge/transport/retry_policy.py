"""Timeout configuration and TLS cipher fallback for robot sessions.

Robots differ in the TLS ciphers their firmware accepts and the failure
looks like a generic connect error. When a connect fails in a way that
suggests a cipher mismatch, the session moves on to the next cipher and the
policy remembers whichever one worked for the following sessions.
"""

from __future__ import annotations

from collections.abc import Sequence

from roomba_bridge.const import (
    CONNECT_TIMEOUT_SECONDS,
    DOCK_MAX_ATTEMPTS,
    DOCK_SETTLE_SECONDS,
    ROBOT_CIPHERS,
    STATUS_TIMEOUT_SECONDS,
)


class TimeoutConfig:
    """Bounded waits applied to one robot.

    Both the connect wait and the docking-wait attempt count are bounded so
    that an unresponsive robot on the LAN never holds the session slot
    indefinitely.
    """

    def __init__(
        self,
        connect_timeout_seconds: float = CONNECT_TIMEOUT_SECONDS,
        status_timeout_seconds: float = STATUS_TIMEOUT_SECONDS,
        dock_settle_seconds: float = DOCK_SETTLE_SECONDS,
        dock_max_attempts: int = DOCK_MAX_ATTEMPTS,
    ) -> None:
        self.connect_timeout_seconds = connect_timeout_seconds
        self.status_timeout_seconds = status_timeout_seconds
        self.dock_settle_seconds = dock_settle_seconds
        self.dock_max_attempts = dock_max_attempts

    def __repr__(self) -> str:
        return (
            f"TimeoutConfig(connect={self.connect_timeout_seconds}s, "
            f"status={self.status_timeout_seconds}s, "
            f"dock_settle={self.dock_settle_seconds}s, "
            f"dock_max_attempts={self.dock_max_attempts})"
        )


def should_try_different_cipher(error: BaseException) -> bool:
    """True when ``error`` suggests the robot rejected our TLS setup."""
    message = str(error)
    if "TLS" in message or "SSL" in message:
        return True
    return "identifier rejected" in message.lower()


class CipherPolicy:
    """Rotating choice of TLS cipher for a robot."""

    def __init__(self, ciphers: Sequence[str] = ROBOT_CIPHERS) -> None:
        if not ciphers:
            msg = "CipherPolicy needs at least one cipher"
            raise ValueError(msg)
        self.ciphers: tuple[str, ...] = tuple(ciphers)
        self.index: int = 0

    @property
    def current(self) -> str:
        return self.ciphers[self.index]

    @property
    def max_attempts(self) -> int:
        """One attempt per cipher, plus the initial attempt."""
        return len(self.ciphers) + 1

    def rotate(self) -> str:
        self.index = (self.index + 1) % len(self.ciphers)
        return self.current

    def __repr__(self) -> str:
        return f"CipherPolicy(current={self.current!r}, ciphers={self.ciphers!r})"
