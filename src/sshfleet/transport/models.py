"""Remote target and command result models."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sshfleet.errors import ConnectionFailureKind


class RemoteTarget(BaseModel):
    """Connection parameters for one host, supplied fresh on every call."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(default=22, ge=1, le=65535)
    username: str = "root"
    password: str = Field(default="", repr=False)
    private_key: str = Field(default="", repr=False)
    passphrase: str = Field(default="", repr=False)
    timeout: float | None = Field(default=None, gt=0)
    keepalive_interval: int | None = Field(default=None, ge=0)

    @field_validator("host", "username")
    @classmethod
    def _require_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value cannot be empty")
        return cleaned

    @property
    def label(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def combined(self) -> str:
        return f"{self.stdout}\n{self.stderr}".strip()


@dataclass(frozen=True)
class ConnectionCheck:
    success: bool
    error: str = ""
    hint: str = ""
    kind: ConnectionFailureKind | None = None
    details: dict[str, object] = field(default_factory=dict)
