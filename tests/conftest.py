from __future__ import annotations

from collections.abc import Callable
import logging as py_logging
from pathlib import Path

import pytest

from sshfleet.transport import CommandResult, RemoteTarget, SSHConnector

_SECURITY_TEST_FILES = {
    "test_security.py",
    "test_direct_commands.py",
}

MENU_BANNER = (
    "\x1b[1;36m======================================\x1b[0m\n"
    "        ADMINISTRAR CUENTAS\n"
    " [1] > CUENTAS SSH\n"
    " [0] > SALIR\n"
    "\x1b[1;33m Ingresa una Opcion: \x1b[0m"
)


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _SECURITY_TEST_FILES:
            item.add_marker(pytest.mark.security)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)


class FakeChannel:
    """Paramiko channel stand-in; ``responder`` turns each sent line into output."""

    def __init__(
        self,
        responder: Callable[[str], str | bytes | None] | None = None,
        *,
        initial: str | bytes = "",
    ) -> None:
        self.responder = responder
        self.pending = bytearray()
        self.sent: list[str] = []
        self.lines: list[str] = []
        self.closed = False
        self.eof_received = False
        self.close_calls = 0
        self.fail_on_send: str | None = None
        self.feed(initial)

    def feed(self, payload: str | bytes) -> None:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self.pending.extend(payload)

    def recv_ready(self) -> bool:
        return bool(self.pending)

    def recv(self, size: int) -> bytes:
        chunk = bytes(self.pending[:size])
        del self.pending[:size]
        return chunk

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("Socket is closed")
        text = data.decode("utf-8")
        if self.fail_on_send is not None and text.rstrip("\n") == self.fail_on_send:
            raise OSError("connection reset by peer")
        self.sent.append(text)
        if text == "\x03":
            self.lines.append(text)
            return
        for line in text.split("\n")[:-1]:
            self.lines.append(line)
            if self.responder is not None:
                reply = self.responder(line)
                if reply:
                    self.feed(reply)

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class FakeMenuHost:
    """Scripted ADMRufu screen: replies by exact input line."""

    def __init__(
        self,
        replies: dict[str, str] | None = None,
        *,
        launch_commands: tuple[str, ...] = ("menu",),
        banner: str = MENU_BANNER,
    ) -> None:
        self.replies = dict(replies or {})
        self.launch_commands = launch_commands
        self.banner = banner
        self.seen: list[str] = []

    def __call__(self, line: str) -> str | None:
        self.seen.append(line)
        if line == "clear":
            return "\x1b[H\x1b[2J"
        if line in self.launch_commands:
            return f"{line}\r\n{self.banner}"
        if line in ("menu", "adm"):
            return f"{line}\r\nbash: {line}: command not found\r\nroot@vps:~# "
        if line in self.replies:
            return f"{line}\r\n{self.replies[line]}"
        return f"{line}\r\n"


class FakeTransport:
    def __init__(self) -> None:
        self.keepalive: int | None = None

    def set_keepalive(self, interval: int) -> None:
        self.keepalive = interval


class _FakeStream:
    def __init__(self, payload: bytes, exit_code: int = 0, error: BaseException | None = None) -> None:
        self.payload = payload
        self.channel = self
        self.exit_code = exit_code
        self.error = error
        self.closed = False

    def read(self) -> bytes:
        if self.error is not None:
            raise self.error
        return self.payload

    def recv_exit_status(self) -> int:
        return self.exit_code

    def close(self) -> None:
        self.closed = True


class FakeSSHClient:
    def __init__(
        self,
        *,
        channel: FakeChannel | None = None,
        handler: Callable[[str], tuple[int, str, str]] | None = None,
        connect_error: BaseException | None = None,
        exec_error: BaseException | None = None,
        read_error: BaseException | None = None,
        fail_hosts: dict[str, BaseException] | None = None,
    ) -> None:
        self.channel = channel
        self.fail_hosts = dict(fail_hosts or {})
        self.handler = handler or (lambda _command: (0, "", ""))
        self.connect_error = connect_error
        self.exec_error = exec_error
        self.read_error = read_error
        self.connect_kwargs: dict[str, object] | None = None
        self.transport = FakeTransport()
        self.commands: list[str] = []
        self.shell_args: dict[str, object] | None = None
        self.close_calls = 0

    def set_missing_host_key_policy(self, policy: object) -> None:
        self.policy = policy

    def connect(self, **kwargs: object) -> None:
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error
        if kwargs.get("hostname") in self.fail_hosts:
            raise self.fail_hosts[str(kwargs["hostname"])]

    def get_transport(self) -> FakeTransport:
        return self.transport

    def exec_command(self, command: str, timeout: float | None = None) -> tuple[_FakeStream, _FakeStream, _FakeStream]:
        self.commands.append(command)
        if self.exec_error is not None:
            raise self.exec_error
        exit_code, out, err = self.handler(command)
        stdout = _FakeStream(out.encode("utf-8"), exit_code, self.read_error)
        return _FakeStream(b""), stdout, _FakeStream(err.encode("utf-8"))

    def invoke_shell(self, term: str = "vt100", width: int = 80, height: int = 24) -> FakeChannel:
        self.shell_args = {"term": term, "width": width, "height": height}
        assert self.channel is not None
        return self.channel

    def close(self) -> None:
        self.close_calls += 1


class ScriptedConnector(SSHConnector):
    """One-shot connector double: matches commands against ordered rules."""

    def __init__(self, rules: list[tuple[str, tuple[int, str, str]]] | None = None) -> None:
        super().__init__()
        self.rules = list(rules or [])
        self.calls: list[str] = []
        self.sensitive: list[tuple[str, ...]] = []

    def add(self, fragment: str, exit_code: int = 0, stdout: str = "", stderr: str = "") -> ScriptedConnector:
        self.rules.append((fragment, (exit_code, stdout, stderr)))
        return self

    def run_once(self, target, command, *, timeout=None, sensitive=()) -> CommandResult:
        self.calls.append(command)
        self.sensitive.append(tuple(sensitive))
        for fragment, (exit_code, stdout, stderr) in self.rules:
            if fragment in command:
                return CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)
        return CommandResult(exit_code=0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def target() -> RemoteTarget:
    return RemoteTarget(host="203.0.113.5", username="root", password="hunter2")


@pytest.fixture
def scripted_connector() -> ScriptedConnector:
    return ScriptedConnector()


@pytest.fixture
def menu_connector(clock: FakeClock):
    """Build an SSHConnector whose interactive shell is a FakeMenuHost."""

    def build(host: FakeMenuHost) -> tuple[SSHConnector, FakeSSHClient]:
        client = FakeSSHClient(channel=FakeChannel(host, initial="Welcome to Ubuntu\r\nroot@vps:~# "))
        connector = SSHConnector(client_factory=lambda: client, clock=clock, sleep=clock.sleep)
        return connector, client

    return build


@pytest.fixture
def make_channel():
    return FakeChannel


@pytest.fixture
def make_client():
    return FakeSSHClient


@pytest.fixture
def make_menu_host():
    return FakeMenuHost


@pytest.fixture(autouse=True)
def _reset_sshfleet_logger():
    yield
    logger = py_logging.getLogger("sshfleet")
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.setLevel(py_logging.NOTSET)
    logger.propagate = True
