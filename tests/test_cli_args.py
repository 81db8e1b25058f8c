from __future__ import annotations

import json
import socket
from pathlib import Path

import pytest

from sshfleet import cli
from sshfleet.errors import ExitCode
from sshfleet.transport import SSHConnector


@pytest.fixture(autouse=True)
def _isolated_cli(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(cli, "default_log_path", lambda: tmp_path / "logs" / "sshfleet.log")
    monkeypatch.setenv("SSHFLEET_SSH_PASSWORD", "hunter2")
    monkeypatch.setenv("SSHFLEET_ACCOUNT_SECRET", "Xk9#pL2q")
    for name in ("SSHFLEET_POLICY", "SSHFLEET_LOG_LEVEL", "SSHFLEET_SSH_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


def _factory(make_client, handler, **kwargs):
    return lambda config: SSHConnector(config.transport, client_factory=lambda: make_client(handler=handler, **kwargs))


def _base(tmp_path: Path) -> list[str]:
    return ["--config", str(tmp_path / "missing.toml")]


def test_cli_help_lists_account_commands() -> None:
    help_text = cli.build_parser().format_help()

    commands = ("create", "renew", "remove", "lock", "unlock", "list", "connections", "purge", "limits")
    for command in (*commands, "clean-logs", "clear-cache", "disk", "restart"):
        assert command in help_text


def test_missing_command_returns_usage_error() -> None:
    assert cli.main([]) == 2


def test_invalid_port_returns_usage_error() -> None:
    assert cli.main(["test", "--host", "vps", "--port", "70000"]) == 2


def test_missing_password_env_is_reported(monkeypatch, tmp_path: Path, capsys) -> None:
    monkeypatch.delenv("SSHFLEET_SSH_PASSWORD")

    code = cli.main([*_base(tmp_path), "test", "--host", "vps"])

    assert code == int(ExitCode.INVALID_ARGS)
    assert "SSHFLEET_SSH_PASSWORD" in capsys.readouterr().err


def test_test_command_prints_json(make_client, tmp_path: Path, capsys) -> None:
    factory = _factory(make_client, lambda command: (0, "test", ""))

    code = cli.main([*_base(tmp_path), "test", "--host", "vps"], connector_factory=factory)

    report = json.loads(capsys.readouterr().out)
    assert code == 0
    assert report["status"] == "success"
    assert report["targets"][0]["target"] == "root@vps:22"


def test_create_across_hosts_reports_partial_failure(make_client, tmp_path: Path, capsys) -> None:
    factory = _factory(
        make_client,
        lambda command: (0, "", ""),
        fail_hosts={"down.example": socket.timeout("timed out")},
    )

    code = cli.main(
        [
            *_base(tmp_path),
            "--policy",
            "direct",
            "create",
            "--host",
            "up.example",
            "--host",
            "down.example",
            "alice",
            "--days",
            "30",
        ],
        connector_factory=factory,
    )

    report = json.loads(capsys.readouterr().out)
    assert code == int(ExitCode.PARTIAL_FAILURE)
    assert report["status"] == "partial-failure"
    assert report["targets"][0]["payload"]["username"] == "alice"
    assert report["failures"][0]["target"] == "root@down.example:22"
    assert report["failures"][0]["error_kind"] == "connection"


def test_bound_kind_requires_client_id(make_client, tmp_path: Path, capsys) -> None:
    factory = _factory(make_client, lambda command: (0, "", ""))

    code = cli.main(
        [*_base(tmp_path), "create", "--host", "vps", "bob", "--days", "30", "--kind", "token"],
        connector_factory=factory,
    )

    assert code == int(ExitCode.INVALID_ARGS)
    assert "--client-id" in capsys.readouterr().err


def test_detect_reports_menu_version(make_client, tmp_path: Path, capsys) -> None:
    def handler(command: str) -> tuple[int, str, str]:
        if command.startswith("test -d"):
            return 0, "installed\n", ""
        return 0, "1.2.7\n", ""

    code = cli.main([*_base(tmp_path), "detect", "--host", "vps"], connector_factory=_factory(make_client, handler))

    report = json.loads(capsys.readouterr().out)
    assert code == 0
    assert report["targets"][0]["payload"] == {"installed": True, "version": "1.2.7"}


def test_lock_uses_direct_policy_from_env(make_client, monkeypatch, tmp_path: Path, capsys) -> None:
    monkeypatch.setenv("SSHFLEET_POLICY", "direct")
    seen: list[str] = []

    def handler(command: str) -> tuple[int, str, str]:
        seen.append(command)
        return 0, "", ""

    code = cli.main([*_base(tmp_path), "lock", "--host", "vps", "alice"], connector_factory=_factory(make_client, handler))

    assert code == 0
    assert seen == ["usermod -L alice"]
    assert json.loads(capsys.readouterr().out)["targets"][0]["path"] == "direct"


def test_unexpected_failure_points_to_logs(tmp_path: Path, capsys) -> None:
    def broken_factory(config):
        raise RuntimeError("boom")

    code = cli.main([*_base(tmp_path), "test", "--host", "vps"], connector_factory=broken_factory)

    assert code == int(ExitCode.RUNTIME_ERROR)
    assert "Inspect logs" in capsys.readouterr().err


def test_log_level_flag_is_accepted(make_client, tmp_path: Path) -> None:
    factory = _factory(make_client, lambda command: (0, "test", ""))

    code = cli.main(
        [*_base(tmp_path), "--log-level", "warning", "--log-file", str(tmp_path / "run.log"), "test", "--host", "vps"],
        connector_factory=factory,
    )

    assert code == 0
    assert (tmp_path / "run.log").exists()


def test_disk_command_reports_space_and_log_size(make_client, tmp_path: Path, capsys) -> None:
    def handler(command: str) -> tuple[int, str, str]:
        if command.startswith("df -h"):
            return 0, "50G 20G 30G 40%\n", ""
        return 0, "128\n", ""

    code = cli.main([*_base(tmp_path), "disk", "--host", "vps"], connector_factory=_factory(make_client, handler))

    payload = json.loads(capsys.readouterr().out)["targets"][0]["payload"]
    assert code == 0
    assert payload["disk"] == {"total": "50G", "used": "20G", "available": "30G", "percent": 40}
    assert payload["log_size_mb"] == 128


def test_restart_requires_confirmation(make_client, tmp_path: Path, capsys) -> None:
    seen: list[str] = []

    def handler(command: str) -> tuple[int, str, str]:
        seen.append(command)
        return 0, "", ""

    code = cli.main([*_base(tmp_path), "restart", "--host", "vps"], connector_factory=_factory(make_client, handler))

    assert code == int(ExitCode.INVALID_ARGS)
    assert "--yes" in capsys.readouterr().err
    assert seen == []

    code = cli.main(
        [*_base(tmp_path), "restart", "--host", "vps", "--yes"], connector_factory=_factory(make_client, handler)
    )

    assert code == 0
    assert len(seen) == 1
    assert "reboot" in seen[0]
