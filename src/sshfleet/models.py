"""Operation outcomes and account records returned by the provisioning core."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from enum import Enum

from sshfleet.errors import (
    ExecError,
    MenuUnreachableError,
    NoConfirmationError,
    OperationFailedError,
    SSHConnectionError,
    SSHFleetError,
)


class OperationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    NO_CONFIRMATION = "no-confirmation"


class ErrorKind(str, Enum):
    CONNECTION = "connection"
    EXEC = "exec"
    MENU_UNREACHABLE = "menu-unreachable"
    OPERATION_FAILED = "operation-failed"
    NO_CONFIRMATION = "no-confirmation"
    INVALID_REQUEST = "invalid-request"
    UNEXPECTED = "unexpected"


class ProvisionPath(str, Enum):
    MENU = "menu"
    DIRECT = "direct"


class AccountKind(str, Enum):
    ORDINARY = "ordinary"
    TOKEN = "token"
    HWID = "hwid"


@dataclass(frozen=True)
class AccountTag:
    """Decoded form of the `{kind-tag},{payload}` account comment field."""

    kind: AccountKind
    payload: str
    connection_limit: int = 1

    @property
    def password(self) -> str:
        return self.payload


@dataclass(frozen=True)
class CreatedAccount:
    server_ip: str
    username: str
    token: str = ""
    expires_in: str = ""


@dataclass(frozen=True)
class AccountRecord:
    username: str
    password: str
    kind: AccountKind
    connection_limit: int
    expiration_date: str
    days_remaining: int
    is_blocked: bool
    never_expires: bool = False

    @property
    def is_active(self) -> bool:
        if self.is_blocked:
            return False
        return self.never_expires or self.days_remaining > 0


@dataclass(frozen=True)
class ConnectionRecord:
    username: str
    ip_address: str = ""
    protocol: str = "SSH"


_ERROR_KINDS: tuple[tuple[type[SSHFleetError], ErrorKind], ...] = (
    (SSHConnectionError, ErrorKind.CONNECTION),
    (ExecError, ErrorKind.EXEC),
    (MenuUnreachableError, ErrorKind.MENU_UNREACHABLE),
    (OperationFailedError, ErrorKind.OPERATION_FAILED),
    (NoConfirmationError, ErrorKind.NO_CONFIRMATION),
)


@dataclass
class OperationOutcome:
    operation: str
    target: str
    status: OperationStatus
    raw_output: str = ""
    payload: object | None = None
    error_kind: ErrorKind | None = None
    detail: str = ""
    path: ProvisionPath | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    @classmethod
    def succeeded(
        cls,
        operation: str,
        target: str,
        *,
        raw_output: str = "",
        payload: object | None = None,
        path: ProvisionPath | None = None,
    ) -> OperationOutcome:
        return cls(
            operation=operation,
            target=target,
            status=OperationStatus.SUCCESS,
            raw_output=raw_output,
            payload=payload,
            path=path,
        )

    @classmethod
    def failed(
        cls,
        operation: str,
        target: str,
        detail: str,
        *,
        raw_output: str = "",
        error_kind: ErrorKind = ErrorKind.OPERATION_FAILED,
        path: ProvisionPath | None = None,
    ) -> OperationOutcome:
        return cls(
            operation=operation,
            target=target,
            status=OperationStatus.FAILED,
            raw_output=raw_output,
            error_kind=error_kind,
            detail=detail,
            path=path,
        )

    @classmethod
    def unconfirmed(
        cls,
        operation: str,
        target: str,
        *,
        raw_output: str = "",
        path: ProvisionPath | None = None,
    ) -> OperationOutcome:
        return cls(
            operation=operation,
            target=target,
            status=OperationStatus.NO_CONFIRMATION,
            raw_output=raw_output,
            error_kind=ErrorKind.NO_CONFIRMATION,
            detail="No success or error message was recognized; verify manually.",
            path=path,
        )

    @classmethod
    def from_error(
        cls,
        operation: str,
        target: str,
        exc: Exception,
        *,
        path: ProvisionPath | None = None,
    ) -> OperationOutcome:
        if isinstance(exc, NoConfirmationError):
            return cls.unconfirmed(operation, target, path=path)
        kind = ErrorKind.UNEXPECTED
        for error_type, mapped in _ERROR_KINDS:
            if isinstance(exc, error_type):
                kind = mapped
                break
        else:
            if isinstance(exc, SSHFleetError):
                kind = ErrorKind.INVALID_REQUEST
        detail = exc.detail if isinstance(exc, OperationFailedError) and exc.detail else str(exc)
        return cls.failed(operation, target, detail, error_kind=kind, path=path)

    def raise_for_status(self) -> None:
        if self.status == OperationStatus.SUCCESS:
            return
        if self.status == OperationStatus.NO_CONFIRMATION:
            raise NoConfirmationError(f"{self.operation} on {self.target} could not be confirmed.")
        raise OperationFailedError(
            f"{self.operation} failed on {self.target}.",
            hint=self.detail,
            detail=self.detail,
        )

    def to_dict(self, *, include_output: bool = False) -> dict[str, object]:
        data: dict[str, object] = {
            "operation": self.operation,
            "target": self.target,
            "status": self.status.value,
            "success": self.success,
            "path": self.path.value if self.path else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "detail": self.detail,
            "payload": _payload_to_data(self.payload),
        }
        if self.notes:
            data["notes"] = list(self.notes)
        if include_output:
            data["raw_output"] = self.raw_output
        return data


def _payload_to_data(payload: object | None) -> object | None:
    if payload is None:
        return None
    if isinstance(payload, list):
        return [_payload_to_data(item) for item in payload]
    if is_dataclass(payload) and not isinstance(payload, type):
        data = asdict(payload)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        if isinstance(payload, AccountRecord):
            data["is_active"] = payload.is_active
        return data
    return payload
