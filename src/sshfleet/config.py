"""TOML config loading/saving for transport, menu and direct-command settings."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from pathlib import Path
from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from sshfleet import constants

DEFAULT_CONFIG_PATH = Path("~/.config/sshfleet/config.toml").expanduser()
DEFAULT_POLICY: Literal["menu", "direct", "menu-then-direct"] = "menu-then-direct"
SSH_TIMEOUT_ENV = "SSHFLEET_SSH_TIMEOUT"
KEEPALIVE_ENV = "SSHFLEET_KEEPALIVE_INTERVAL"
LOG_LEVEL_ENV = "SSHFLEET_LOG_LEVEL"
POLICY_ENV = "SSHFLEET_POLICY"

_VALID_POLICIES = {"menu", "direct", "menu-then-direct"}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARN", "WARNING", "ERROR"}

ModelT = TypeVar("ModelT", bound=BaseModel)


class TransportSettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    connect_timeout: float = Field(default=constants.SSH_CONNECT_TIMEOUT_SECONDS, gt=0)
    keepalive_interval: int = Field(default=constants.SSH_KEEPALIVE_INTERVAL_SECONDS, ge=0)
    banner_timeout: float = Field(default=constants.SSH_BANNER_TIMEOUT_SECONDS, gt=0)
    auth_timeout: float = Field(default=constants.SSH_AUTH_TIMEOUT_SECONDS, gt=0)
    command_timeout: float = Field(default=constants.SSH_COMMAND_TIMEOUT_SECONDS, gt=0)
    shell_grace: float = Field(default=constants.SHELL_GRACE_SECONDS, ge=0)
    poll_interval: float = Field(default=constants.SHELL_POLL_INTERVAL_SECONDS, gt=0)
    term: str = constants.SHELL_TERM
    width: int = Field(default=constants.SHELL_WIDTH, ge=20)
    height: int = Field(default=constants.SHELL_HEIGHT, ge=5)


class MenuTiming(BaseModel):
    """Delays (seconds) the menu scripts use between keystrokes."""

    model_config = ConfigDict(validate_assignment=True)

    clear_wait: float = Field(default=1.0, ge=0)
    launch_timeout: float = Field(default=5.0, ge=0)
    navigate_wait: float = Field(default=2.0, ge=0)
    prompt_wait: float = Field(default=2.0, ge=0)
    field_wait: float = Field(default=3.0, ge=0)
    field_gap: float = Field(default=1.5, ge=0)
    duration_wait: float = Field(default=4.0, ge=0)
    result_grace: float = Field(default=5.0, ge=0)
    lookup_wait: float = Field(default=2.5, ge=0)
    settle_wait: float = Field(default=2.0, ge=0)
    confirm_wait: float = Field(default=1.5, ge=0)
    enter_wait: float = Field(default=1.0, ge=0)
    acknowledge_wait: float = Field(default=1.5, ge=0)
    monitor_wait: float = Field(default=4.0, ge=0)
    purge_wait: float = Field(default=3.0, ge=0)
    exit_wait: float = Field(default=1.0, ge=0)
    interrupt_wait: float = Field(default=0.5, ge=0)


class MenuSettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    commands: list[str] = Field(default_factory=lambda: list(constants.MENU_COMMANDS), min_length=1)
    banner_patterns: list[str] = Field(
        default_factory=lambda: [
            "ADMINISTRAR CUENTAS",
            r"Ingresa una Opci[oó]n",
            "MENU PRINCIPAL",
        ],
        min_length=1,
    )
    timing: MenuTiming = Field(default_factory=MenuTiming)

    @field_validator("commands")
    @classmethod
    def _validate_commands(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        if not cleaned:
            raise ValueError("At least one menu command is required")
        return cleaned


class DirectSettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    login_shell: str = constants.DEFAULT_LOGIN_SHELL
    settle_seconds: float = Field(default=0.5, ge=0)
    command_timeout: float = Field(default=constants.SSH_COMMAND_TIMEOUT_SECONDS, gt=0)
    default_connection_limit: int = Field(default=1, ge=1)

    @field_validator("login_shell")
    @classmethod
    def _validate_shell(cls, value: str) -> str:
        if value not in constants.ACCOUNT_SHELLS:
            raise ValueError(f"Unsupported login shell: {value}")
        return value


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    transport: TransportSettings = Field(default_factory=TransportSettings)
    menu: MenuSettings = Field(default_factory=MenuSettings)
    direct: DirectSettings = Field(default_factory=DirectSettings)
    provision_policy: Literal["menu", "direct", "menu-then-direct"] = DEFAULT_POLICY
    fleet_max_workers: int = Field(default=constants.DEFAULT_FLEET_WORKERS, ge=1, le=64)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return normalized


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_scalar(item) for item in value) + "]"
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _sanitize_section(model: type[ModelT], raw: object, *, skip: frozenset[str] = frozenset()) -> ModelT:
    """Apply each known key on its own so one bad value never discards the rest."""
    section = model()
    if not isinstance(raw, dict):
        return section
    accepted: dict[str, object] = {}
    for name in model.model_fields:
        if name in skip or name not in raw:
            continue
        candidate = {**accepted, name: raw[name]}
        try:
            model.model_validate(candidate)
        except ValidationError:
            continue
        accepted[name] = raw[name]
    return model.model_validate(accepted)


def _env_float(name: str) -> float | None:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _apply_env_overrides(cfg: AppConfig) -> AppConfig:
    timeout = _env_float(SSH_TIMEOUT_ENV)
    if timeout is not None:
        cfg.transport.connect_timeout = timeout
    keepalive = _env_float(KEEPALIVE_ENV)
    if keepalive is not None:
        cfg.transport.keepalive_interval = int(keepalive)
    log_level = os.getenv(LOG_LEVEL_ENV, "").strip().upper()
    if log_level in _VALID_LOG_LEVELS:
        cfg.log_level = log_level
    policy = os.getenv(POLICY_ENV, "").strip().lower()
    if policy in _VALID_POLICIES:
        cfg.provision_policy = policy  # type: ignore[assignment]
    return cfg


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    cfg.transport = _sanitize_section(TransportSettings, raw.get("transport"))

    menu_raw = raw.get("menu")
    menu = _sanitize_section(MenuSettings, menu_raw, skip=frozenset({"timing"}))
    if isinstance(menu_raw, dict):
        menu.timing = _sanitize_section(MenuTiming, menu_raw.get("timing"))
    cfg.menu = menu

    cfg.direct = _sanitize_section(DirectSettings, raw.get("direct"))

    policy = raw.get("provision_policy", cfg.provision_policy)
    if isinstance(policy, str) and policy in _VALID_POLICIES:
        cfg.provision_policy = policy  # type: ignore[assignment]

    workers = raw.get("fleet_max_workers", cfg.fleet_max_workers)
    if isinstance(workers, int) and not isinstance(workers, bool) and 1 <= workers <= 64:
        cfg.fleet_max_workers = workers

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str) and log_level.strip().upper() in _VALID_LOG_LEVELS:
        cfg.log_level = log_level

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _apply_env_overrides(AppConfig())
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return _apply_env_overrides(AppConfig())
    if not isinstance(raw, dict):
        return _apply_env_overrides(AppConfig())
    return _apply_env_overrides(_sanitize(raw))


def _section_lines(header: str, model: BaseModel, *, skip: frozenset[str] = frozenset()) -> list[str]:
    lines = ["", f"[{header}]"]
    for name, value in model.model_dump().items():
        if name in skip:
            continue
        lines.append(f"{name} = {_toml_scalar(value)}")
    return lines


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"provision_policy = {_toml_scalar(config.provision_policy)}",
        f"fleet_max_workers = {_toml_scalar(config.fleet_max_workers)}",
        f"log_level = {_toml_scalar(config.log_level)}",
    ]
    lines.extend(_section_lines("transport", config.transport))
    lines.extend(_section_lines("menu", config.menu, skip=frozenset({"timing"})))
    lines.extend(_section_lines("menu.timing", config.menu.timing))
    lines.extend(_section_lines("direct", config.direct))

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
