"""Exception hierarchy for robot operations.

Every failure is local to one logical operation (a command or a poll tick).
Each class carries a ``kind`` string so the accessory facade can report the
failure category without importing the classes.
"""

from __future__ import annotations


class RoombaBridgeError(Exception):
    """Base class for all robot operation failures."""

    kind: str = "error"


class RobotConnectionError(RoombaBridgeError):
    """Could not open a session to the robot.

    Raised when:
    - The transport reports an error before the connect acknowledgment
    - No acknowledgment arrives within CONNECT_TIMEOUT_SECONDS
    - Every configured TLS cipher was rejected

    Note: Named RobotConnectionError to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        reason: Specific failure reason
        address: Robot address the session targeted
        attempts: Number of connect attempts made

    """

    kind = "connection"

    def __init__(self, reason: str, address: str = "unknown", attempts: int = 1) -> None:
        self.reason: str = reason
        self.address: str = address
        self.attempts: int = attempts
        super().__init__(f"Connection to {address} failed: {reason} ({attempts} attempt(s))")


class StateQueryError(RoombaBridgeError):
    """The robot did not answer a state query with a usable state.

    Attributes:
        reason: Specific failure reason

    """

    kind = "state_query"

    def __init__(self, reason: str) -> None:
        self.reason: str = reason
        super().__init__(f"State query failed: {reason}")


class CommandError(RoombaBridgeError):
    """The robot rejected or failed to acknowledge a command.

    Attributes:
        command: Command name (clean, pause, dock, ...)
        cause: Originating transport error, also chained as __cause__

    """

    kind = "command"

    def __init__(self, command: str, cause: BaseException | None = None) -> None:
        self.command: str = command
        self.cause: BaseException | None = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Command '{command}' failed{detail}")


class DockTimeoutError(RoombaBridgeError):
    """The robot kept reporting phase 'run' after a pause.

    The robot is left paused but undocked.

    Attributes:
        attempts: State queries made while waiting
        settle_seconds: Delay between queries

    """

    kind = "dock_timeout"

    def __init__(self, attempts: int, settle_seconds: float) -> None:
        self.attempts: int = attempts
        self.settle_seconds: float = settle_seconds
        super().__init__(f"Robot still running after {attempts} state checks ({settle_seconds}s apart); not docking")


class BusyError(RoombaBridgeError):
    """A user command arrived while another user command held the session slot.

    Attributes:
        operation: The rejected operation
        active_operation: The operation currently in flight

    """

    kind = "busy"

    def __init__(self, operation: str, active_operation: str) -> None:
        self.operation: str = operation
        self.active_operation: str = active_operation
        super().__init__(f"Cannot {operation}: {active_operation} is in progress")
