from __future__ import annotations

import pytest

from sshfleet.errors import SSHConnectionError
from sshfleet.maintenance import (
    DISK_SPACE_COMMAND,
    LOG_SIZE_COMMAND,
    RESTART_COMMAND,
    DiskSpace,
    HostMaintenance,
    parse_disk_space,
    parse_log_size,
)
from sshfleet.models import OperationStatus
from sshfleet.transport import SSHConnector


def test_parse_disk_space_reads_df_columns() -> None:
    assert parse_disk_space("25G 9.1G 15G 38%\n") == DiskSpace(total="25G", used="9.1G", available="15G", percent=38)


def test_parsers_default_to_zero_values() -> None:
    assert parse_disk_space("") == DiskSpace()
    assert parse_disk_space("25G 9.1G 15G n/a").percent == 0
    assert parse_log_size("") == 0
    assert parse_log_size("du: cannot access") == 0
    assert parse_log_size("412\n") == 412


def test_clean_logs_runs_one_chained_command(scripted_connector, target) -> None:
    outcome = HostMaintenance(scripted_connector).clean_logs(target)

    assert outcome.success
    assert len(scripted_connector.calls) == 1
    command = scripted_connector.calls[0]
    assert "truncate -s 0 /var/log/auth.log" in command
    assert "journalctl --vacuum-time=1d" in command
    assert " && " in command


def test_clean_logs_partial_failure_is_still_success(scripted_connector, target) -> None:
    scripted_connector.add("truncate", exit_code=1, stderr="permission denied")

    outcome = HostMaintenance(scripted_connector).clean_logs(target)

    assert outcome.status == OperationStatus.SUCCESS
    assert outcome.notes == ["some cleanup commands failed: permission denied"]


def test_clear_cache_reports_failure(scripted_connector, target) -> None:
    scripted_connector.add("drop_caches", exit_code=1, stderr="read-only file system")

    outcome = HostMaintenance(scripted_connector).clear_cache(target)

    assert outcome.status == OperationStatus.FAILED
    assert outcome.detail == "read-only file system"
    assert scripted_connector.calls[0].startswith("sync && echo 3 > /proc/sys/vm/drop_caches")


def test_disk_report_combines_df_and_log_size(scripted_connector, target) -> None:
    scripted_connector.add("df -h", stdout="50G 20G 30G 40%\n").add("du -sm", stdout="128\n")

    report = HostMaintenance(scripted_connector).disk_report(target)

    assert report.disk == DiskSpace(total="50G", used="20G", available="30G", percent=40)
    assert report.log_size_mb == 128
    assert scripted_connector.calls == [DISK_SPACE_COMMAND, LOG_SIZE_COMMAND]


def test_failed_queries_degrade_to_zero(scripted_connector, target) -> None:
    scripted_connector.add("df -h", exit_code=1).add("du -sm", exit_code=1, stdout="999")

    maintenance = HostMaintenance(scripted_connector)

    assert maintenance.disk_space(target) == DiskSpace()
    assert maintenance.log_size_mb(target) == 0


def test_restart_detaches_reboot(scripted_connector, target) -> None:
    outcome = HostMaintenance(scripted_connector).restart(target)

    assert outcome.success
    assert outcome.operation == "restart"
    assert scripted_connector.calls == [RESTART_COMMAND]
    assert RESTART_COMMAND.startswith("nohup ")


def test_connection_errors_propagate(make_client, target) -> None:
    client = make_client(connect_error=TimeoutError("timed out"))

    with pytest.raises(SSHConnectionError):
        HostMaintenance(SSHConnector(client_factory=lambda: client)).clean_logs(target)
