"""Paramiko-backed one-shot and interactive SSH channels."""

from __future__ import annotations

import errno
import io
import logging as py_logging
import socket
import time
from collections.abc import Callable, Iterable
from contextlib import suppress

import paramiko

from sshfleet.config import TransportSettings
from sshfleet.errors import ConnectionFailureKind, ExecError, SSHConnectionError, connection_hint
from sshfleet.security import command_for_log, truncate_log
from sshfleet.terminal.session import TerminalSession
from sshfleet.transport.models import CommandResult, ConnectionCheck, RemoteTarget

logger = py_logging.getLogger(__name__)

ClientFactory = Callable[[], paramiko.SSHClient]

_UNREACHABLE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH, errno.EHOSTDOWN}
_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
)


def _default_client_factory() -> paramiko.SSHClient:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    return client


def load_private_key(material: str, passphrase: str = "") -> paramiko.PKey:
    for key_cls in _KEY_CLASSES:
        try:
            return key_cls.from_private_key(io.StringIO(material), password=passphrase or None)
        except paramiko.PasswordRequiredException as exc:
            raise SSHConnectionError(
                "Private key is encrypted and no passphrase was supplied.",
                kind=ConnectionFailureKind.KEY,
            ) from exc
        except (paramiko.SSHException, ValueError):
            continue
    raise SSHConnectionError(
        "Unsupported or malformed private key.",
        kind=ConnectionFailureKind.KEY,
    )


def _errno_kind(code: int | None) -> ConnectionFailureKind | None:
    if code == errno.ECONNREFUSED:
        return ConnectionFailureKind.REFUSED
    if code in _UNREACHABLE_ERRNOS:
        return ConnectionFailureKind.UNREACHABLE
    if code == errno.ETIMEDOUT:
        return ConnectionFailureKind.TIMEOUT
    return None


def _message_kind(message: str) -> ConnectionFailureKind:
    lowered = message.lower()
    if "econnrefused" in lowered or "refused" in lowered:
        return ConnectionFailureKind.REFUSED
    if "etimedout" in lowered or "timeout" in lowered or "timed out" in lowered:
        return ConnectionFailureKind.TIMEOUT
    if "enotfound" in lowered or "name or service not known" in lowered:
        return ConnectionFailureKind.HOST_NOT_FOUND
    if "ehostunreach" in lowered or "unreachable" in lowered:
        return ConnectionFailureKind.UNREACHABLE
    if "authentication" in lowered:
        return ConnectionFailureKind.AUTHENTICATION
    if "key" in lowered:
        return ConnectionFailureKind.KEY
    return ConnectionFailureKind.UNKNOWN


def classify_connection_error(exc: BaseException) -> ConnectionFailureKind:
    """Map a transport exception to the triage category shown to operators."""
    if isinstance(exc, SSHConnectionError):
        return exc.kind
    if isinstance(exc, paramiko.PasswordRequiredException):
        return ConnectionFailureKind.KEY
    if isinstance(exc, paramiko.AuthenticationException):
        return ConnectionFailureKind.AUTHENTICATION
    if isinstance(exc, paramiko.ssh_exception.NoValidConnectionsError):
        kinds = {_errno_kind(getattr(item, "errno", None)) for item in exc.errors.values()}
        if ConnectionFailureKind.UNREACHABLE in kinds and ConnectionFailureKind.REFUSED not in kinds:
            return ConnectionFailureKind.UNREACHABLE
        if ConnectionFailureKind.TIMEOUT in kinds and ConnectionFailureKind.REFUSED not in kinds:
            return ConnectionFailureKind.TIMEOUT
        return ConnectionFailureKind.REFUSED
    if isinstance(exc, socket.gaierror):
        return ConnectionFailureKind.HOST_NOT_FOUND
    if isinstance(exc, TimeoutError):
        return ConnectionFailureKind.TIMEOUT
    if isinstance(exc, OSError):
        return _errno_kind(exc.errno) or _message_kind(str(exc))
    return _message_kind(str(exc))


class SSHConnector:
    """Opens a fresh, exclusively owned connection for every call."""

    def __init__(
        self,
        settings: TransportSettings | None = None,
        *,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or TransportSettings()
        self._client_factory = client_factory or _default_client_factory
        self._clock = clock
        self._sleep = sleep

    def _connect(self, target: RemoteTarget) -> paramiko.SSHClient:
        pkey = load_private_key(target.private_key, target.passphrase) if target.private_key else None
        timeout = target.timeout or self.settings.connect_timeout
        kwargs: dict[str, object] = {
            "hostname": target.host,
            "port": target.port,
            "username": target.username,
            "timeout": timeout,
            "banner_timeout": self.settings.banner_timeout,
            "auth_timeout": self.settings.auth_timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if pkey is not None:
            kwargs["pkey"] = pkey
        elif target.password:
            kwargs["password"] = target.password

        client = self._client_factory()
        logger.debug(
            "ssh-connect host=%s auth=%s timeout=%s",
            target.label,
            "key" if pkey is not None else "password",
            timeout,
        )
        try:
            client.connect(**kwargs)
        except (paramiko.SSHException, OSError, EOFError) as exc:
            with suppress(Exception):
                client.close()
            kind = classify_connection_error(exc)
            logger.error("ssh-connect-failed host=%s kind=%s error=%s", target.label, kind.value, exc)
            raise SSHConnectionError(
                f"Unable to connect to {target.label}: {exc or type(exc).__name__}",
                kind=kind,
                host=target.host,
            ) from exc

        keepalive = (
            target.keepalive_interval
            if target.keepalive_interval is not None
            else self.settings.keepalive_interval
        )
        transport = client.get_transport()
        if transport is not None and keepalive:
            transport.set_keepalive(keepalive)
        return client

    def run_once(
        self,
        target: RemoteTarget,
        command: str,
        *,
        timeout: float | None = None,
        sensitive: Iterable[str] = (),
    ) -> CommandResult:
        effective_timeout = timeout or self.settings.command_timeout
        masked = command_for_log(command, sensitive)
        logger.debug("run-once host=%s command=%s", target.label, masked)

        client = self._connect(target)
        try:
            try:
                stdin, stdout, stderr = client.exec_command(command, timeout=effective_timeout)
            except paramiko.SSHException as exc:
                raise ExecError(
                    f"Failed to open command channel on {target.label}.",
                    hint=str(exc) or "Check sshd session limits on the host.",
                ) from exc
            try:
                stdin.close()
                out = stdout.read()
                err = stderr.read()
                exit_code = stdout.channel.recv_exit_status()
            except TimeoutError as exc:
                raise SSHConnectionError(
                    f"Command timed out after {effective_timeout}s on {target.label}.",
                    kind=ConnectionFailureKind.TIMEOUT,
                    host=target.host,
                ) from exc
        finally:
            client.close()

        result = CommandResult(
            exit_code=exit_code,
            stdout=_decode(out).strip(),
            stderr=_decode(err).strip(),
        )
        logger.debug(
            "run-once-done host=%s exit=%s stderr=%s",
            target.label,
            result.exit_code,
            truncate_log(result.stderr, 200),
        )
        return result

    def open_interactive(self, target: RemoteTarget) -> TerminalSession:
        client = self._connect(target)
        try:
            channel = client.invoke_shell(
                term=self.settings.term,
                width=self.settings.width,
                height=self.settings.height,
            )
        except paramiko.SSHException as exc:
            client.close()
            raise SSHConnectionError(
                f"Failed to open interactive shell on {target.label}.",
                kind=ConnectionFailureKind.CHANNEL,
                host=target.host,
            ) from exc

        session = TerminalSession(
            channel,
            client=client,
            label=target.label,
            poll_interval=self.settings.poll_interval,
            clock=self._clock,
            sleep=self._sleep,
        )
        try:
            session.await_output(self.settings.shell_grace)
        except BaseException:
            session.close(graceful=False)
            raise
        logger.debug("shell-open host=%s initial_bytes=%s", target.label, len(session.output))
        return session

    def test_connection(self, target: RemoteTarget) -> ConnectionCheck:
        try:
            result = self.run_once(target, 'echo "test"')
        except (SSHConnectionError, ExecError) as exc:
            kind = exc.kind if isinstance(exc, SSHConnectionError) else ConnectionFailureKind.CHANNEL
            return ConnectionCheck(
                success=False,
                error=exc.message,
                hint=exc.hint or connection_hint(kind),
                kind=kind,
                details={"host": target.host, "port": target.port, "username": target.username},
            )
        if result.ok and result.stdout == "test":
            return ConnectionCheck(success=True)
        return ConnectionCheck(
            success=False,
            error="Command execution failed or unexpected output",
            details={"stdout": result.stdout, "stderr": result.stderr, "code": result.exit_code},
        )


def _decode(payload: bytes | str) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8", errors="replace")
    return str(payload)
