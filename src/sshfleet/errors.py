"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    CONNECTION_ERROR = 5
    EXEC_ERROR = 6
    VALIDATION_ERROR = 7
    MENU_UNREACHABLE = 8
    OPERATION_FAILED = 9
    NO_CONFIRMATION = 10
    PARTIAL_FAILURE = 11


class ConnectionFailureKind(str, Enum):
    AUTHENTICATION = "authentication"
    REFUSED = "refused"
    HOST_NOT_FOUND = "host-not-found"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    KEY = "key"
    CHANNEL = "channel"
    UNKNOWN = "unknown"


_CONNECTION_HINTS = {
    ConnectionFailureKind.AUTHENTICATION: "Authentication failed. Verify username, password, or SSH key.",
    ConnectionFailureKind.REFUSED: "Connection refused. Verify SSH port and firewall settings.",
    ConnectionFailureKind.HOST_NOT_FOUND: "Host not found. Verify IP address or domain.",
    ConnectionFailureKind.UNREACHABLE: "Host unreachable. Verify IP address, routing, or DNS.",
    ConnectionFailureKind.TIMEOUT: "Connection timeout. Verify VPS is online and accessible.",
    ConnectionFailureKind.KEY: "SSH key error. Verify key format and permissions.",
    ConnectionFailureKind.CHANNEL: "Remote shell could not be opened. Check sshd limits on the host.",
    ConnectionFailureKind.UNKNOWN: "Inspect logs for the underlying transport error.",
}


def connection_hint(kind: ConnectionFailureKind) -> str:
    return _CONNECTION_HINTS.get(kind, _CONNECTION_HINTS[ConnectionFailureKind.UNKNOWN])


@dataclass
class SSHFleetError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class SSHConnectionError(SSHFleetError):
    """Transport-level failure: auth, unreachable host, timeout."""

    code: ExitCode = ExitCode.CONNECTION_ERROR
    kind: ConnectionFailureKind = ConnectionFailureKind.UNKNOWN
    host: str = ""

    def __post_init__(self) -> None:
        if not self.hint:
            self.hint = connection_hint(self.kind)


@dataclass
class ExecError(SSHFleetError):
    """The remote command channel could not be opened."""

    code: ExitCode = ExitCode.EXEC_ERROR


@dataclass
class MenuUnreachableError(SSHFleetError):
    code: ExitCode = ExitCode.MENU_UNREACHABLE
    attempts: list[str] = field(default_factory=list)


@dataclass
class OperationFailedError(SSHFleetError):
    code: ExitCode = ExitCode.OPERATION_FAILED
    detail: str = ""


@dataclass
class NoConfirmationError(SSHFleetError):
    code: ExitCode = ExitCode.NO_CONFIRMATION
    hint: str = "Verify the account state manually on the host."


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
