"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import json
import logging as py_logging
import os
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from .config import AppConfig, load_config
from .errors import ExitCode, SSHFleetError, user_facing_error
from .fleet import FleetAction, FleetResult, run_across
from .limits import enforce_connection_limits
from .logging import configure_logging, default_log_path
from .maintenance import HostMaintenance
from .menu import detect_menu
from .models import AccountKind, OperationOutcome
from .monitoring import HostMonitor
from .parsing import bound_tag, ordinary_tag
from .provisioner import AccountProvisioner, ProvisionPolicy, build_provisioner
from .transport import RemoteTarget, SSHConnector

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_VALID_POLICIES = tuple(item.value for item in ProvisionPolicy)
_VALID_KINDS = tuple(item.value for item in AccountKind)
DEFAULT_PASSWORD_ENV = "SSHFLEET_SSH_PASSWORD"
DEFAULT_SECRET_ENV = "SSHFLEET_ACCOUNT_SECRET"

ConnectorFactory = Callable[[AppConfig], SSHConnector]


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _port_type(value: str) -> int:
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--port must be an integer") from exc
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError("--port must be between 1 and 65535")
    return port


def _positive_int(name: str) -> Callable[[str], int]:
    def parse(value: str) -> int:
        try:
            parsed = int(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"{name} must be an integer") from exc
        if parsed < 1:
            raise argparse.ArgumentTypeError(f"{name} must be at least 1")
        return parsed

    return parse


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", action="append", required=True, help="Target host (repeat for fan-out)")
    parser.add_argument("--port", type=_port_type, default=22)
    parser.add_argument("--user", default="root")
    parser.add_argument("--password-env", default=DEFAULT_PASSWORD_ENV)
    parser.add_argument("--key-file", type=Path, default=None)
    parser.add_argument("--passphrase-env", default="")
    parser.add_argument("--workers", type=_positive_int("--workers"), default=None)
    parser.add_argument("--include-output", action="store_true", help="Include raw captured output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sshfleet")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--policy", choices=_VALID_POLICIES, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)

    commands = parser.add_subparsers(dest="command", required=True)

    for name in ("test", "detect", "list", "connections", "purge", "metrics", "clean-logs", "clear-cache", "disk"):
        _add_target_arguments(commands.add_parser(name))

    restart = commands.add_parser("restart")
    _add_target_arguments(restart)
    restart.add_argument("--yes", action="store_true", help="Confirm the reboot")

    limits = commands.add_parser("limits")
    _add_target_arguments(limits)
    limits.add_argument("--dry-run", action="store_true")

    create = commands.add_parser("create")
    _add_target_arguments(create)
    create.add_argument("username")
    create.add_argument("--days", type=_positive_int("--days"), required=True)
    create.add_argument("--secret-env", default=DEFAULT_SECRET_ENV)
    create.add_argument("--kind", choices=_VALID_KINDS, default=AccountKind.ORDINARY.value)
    create.add_argument("--client-id", default="")
    create.add_argument("--limit", type=_positive_int("--limit"), default=None)

    renew = commands.add_parser("renew")
    _add_target_arguments(renew)
    renew.add_argument("username")
    renew.add_argument("--days", type=_positive_int("--days"), required=True)

    for name in ("remove", "lock", "unlock"):
        sub = commands.add_parser(name)
        _add_target_arguments(sub)
        sub.add_argument("username")

    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def _read_env(name: str, *, required: bool, what: str) -> str:
    value = os.environ.get(name, "") if name else ""
    if required and not value:
        raise SSHFleetError(
            f"Missing {what}.",
            code=ExitCode.INVALID_ARGS,
            hint=f"Export it in the {name} environment variable.",
        )
    return value


def build_targets(namespace: argparse.Namespace) -> list[RemoteTarget]:
    private_key = ""
    if namespace.key_file is not None:
        try:
            private_key = namespace.key_file.expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise SSHFleetError(
                f"Cannot read key file: {namespace.key_file}",
                code=ExitCode.INVALID_ARGS,
                hint=str(exc),
            ) from exc
    password = _read_env(namespace.password_env, required=not private_key, what="SSH password")
    passphrase = _read_env(namespace.passphrase_env, required=False, what="key passphrase")

    targets: list[RemoteTarget] = []
    for host in namespace.host:
        try:
            targets.append(
                RemoteTarget(
                    host=host,
                    port=namespace.port,
                    username=namespace.user,
                    password=password,
                    private_key=private_key,
                    passphrase=passphrase,
                )
            )
        except ValueError as exc:
            raise SSHFleetError(
                f"Invalid target: {host!r}",
                code=ExitCode.INVALID_ARGS,
                hint=str(exc).splitlines()[0],
            ) from exc
    return targets


def _create_action(namespace: argparse.Namespace, provisioner: AccountProvisioner, config: AppConfig) -> FleetAction:
    kind = AccountKind(namespace.kind)
    secret = _read_env(namespace.secret_env, required=True, what="account secret")
    if kind == AccountKind.ORDINARY:
        tag = ordinary_tag(secret, namespace.limit or config.direct.default_connection_limit)
    else:
        if not namespace.client_id:
            raise SSHFleetError(
                f"--client-id is required for {kind.value} accounts.",
                code=ExitCode.INVALID_ARGS,
            )
        tag = bound_tag(kind, namespace.client_id)
    return lambda target: provisioner.create(target, namespace.username, secret, namespace.days, tag=tag)


def _maintenance_action(namespace: argparse.Namespace, maintenance: HostMaintenance) -> FleetAction:
    command = namespace.command
    if command == "clean-logs":
        return maintenance.clean_logs
    if command == "clear-cache":
        return maintenance.clear_cache
    if command == "disk":
        return lambda target: OperationOutcome.succeeded("disk", target.label, payload=maintenance.disk_report(target))
    if not namespace.yes:
        raise SSHFleetError(
            "Refusing to reboot without confirmation.",
            code=ExitCode.INVALID_ARGS,
            hint="Pass --yes to restart the target hosts.",
        )
    return maintenance.restart


def build_action(
    namespace: argparse.Namespace,
    connector: SSHConnector,
    config: AppConfig,
) -> FleetAction:
    command = namespace.command
    if command == "test":
        def check(target: RemoteTarget) -> OperationOutcome:
            result = connector.test_connection(target)
            if result.success:
                return OperationOutcome.succeeded("test", target.label)
            outcome = OperationOutcome.failed("test", target.label, f"{result.error} {result.hint}".strip())
            outcome.payload = dict(result.details)
            return outcome

        return check
    if command == "detect":
        return lambda target: OperationOutcome.succeeded("detect", target.label, payload=detect_menu(connector, target))
    if command == "metrics":
        monitor = HostMonitor(connector, command_timeout=config.transport.command_timeout)
        return lambda target: OperationOutcome.succeeded("metrics", target.label, payload=monitor.collect(target))
    if command in ("clean-logs", "clear-cache", "disk", "restart"):
        return _maintenance_action(namespace, HostMaintenance(connector, command_timeout=config.transport.command_timeout))

    provisioner = build_provisioner(config.provision_policy, connector, config)
    if command == "create":
        return _create_action(namespace, provisioner, config)
    if command == "remove":
        return lambda target: provisioner.remove(target, namespace.username)
    if command == "renew":
        return lambda target: provisioner.renew(target, namespace.username, namespace.days)
    if command == "lock":
        return lambda target: provisioner.block(target, namespace.username)
    if command == "unlock":
        return lambda target: provisioner.unblock(target, namespace.username)
    if command == "list":
        return lambda target: OperationOutcome.succeeded("list", target.label, payload=provisioner.list_accounts(target))
    if command == "connections":
        return provisioner.list_connections
    if command == "purge":
        return provisioner.purge_expired
    if command == "limits":
        return lambda target: OperationOutcome.succeeded(
            "limits",
            target.label,
            payload=enforce_connection_limits(provisioner, target, dry_run=namespace.dry_run),
        )
    raise SSHFleetError(f"Unknown command: {command}", code=ExitCode.INVALID_ARGS)


def run_cli_flow(
    namespace: argparse.Namespace,
    config: AppConfig,
    *,
    connector_factory: ConnectorFactory | None = None,
) -> int:
    if namespace.policy:
        config.provision_policy = namespace.policy
    targets = build_targets(namespace)
    connector = (connector_factory or (lambda cfg: SSHConnector(cfg.transport)))(config)
    action = build_action(namespace, connector, config)
    workers = namespace.workers or config.fleet_max_workers
    result: FleetResult = run_across(namespace.command, targets, action, max_workers=workers)
    print(json.dumps(result.to_dict(include_output=namespace.include_output), indent=2, default=str))
    return int(result.exit_code)


def main(
    argv: Sequence[str] | None = None,
    *,
    connector_factory: ConnectorFactory | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    config = load_config(namespace.config)
    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level or config.log_level, log_file=log_path)

    try:
        logger.debug("Starting CLI flow command=%s", namespace.command)
        return run_cli_flow(namespace, config, connector_factory=connector_factory)
    except SSHFleetError as exc:
        logger.error(
            "Handled SSHFleetError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        hint = f"Inspect logs: {log_path}"
        print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
