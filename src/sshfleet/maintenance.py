"""One-shot host maintenance: log and cache cleanup, disk usage, reboot."""

from __future__ import annotations

import logging as py_logging
from dataclasses import dataclass

from sshfleet import constants
from sshfleet.models import OperationOutcome
from sshfleet.transport import CommandResult, RemoteTarget, SSHConnector

logger = py_logging.getLogger(__name__)

# Every cleanup command tolerates missing files; only the chain as a whole is reported.
LOG_CLEANUP_COMMANDS: tuple[str, ...] = (
    "truncate -s 0 /var/log/auth.log 2>/dev/null || true",
    "truncate -s 0 /var/log/syslog 2>/dev/null || true",
    "truncate -s 0 /var/log/kern.log 2>/dev/null || true",
    "truncate -s 0 /var/log/messages 2>/dev/null || true",
    "rm -f /var/log/*.gz 2>/dev/null || true",
    "rm -f /var/log/*.1 2>/dev/null || true",
    "rm -f /var/log/*.old 2>/dev/null || true",
    "find /var/log/v2ray/ -type f -delete 2>/dev/null || true",
    "find /var/log/xray/ -type f -delete 2>/dev/null || true",
    "find /var/log/squid/ -type f -delete 2>/dev/null || true",
    "find /var/log/nginx/ -type f -name '*.log' -exec truncate -s 0 {} \\; 2>/dev/null || true",
    "find /var/log/apache2/ -type f -name '*.log' -exec truncate -s 0 {} \\; 2>/dev/null || true",
    "journalctl --vacuum-time=1d 2>/dev/null || true",
    "cat /dev/null > ~/.bash_history 2>/dev/null || true",
)
CACHE_CLEANUP_COMMANDS: tuple[str, ...] = (
    "sync",
    "echo 3 > /proc/sys/vm/drop_caches",
    "(apt-get clean 2>/dev/null || true)",
    "(apt-get autoclean 2>/dev/null || true)",
    "(yum clean all 2>/dev/null || true)",
)
LOG_SIZE_COMMAND = "du -sm /var/log 2>/dev/null | awk '{print $1}'"
DISK_SPACE_COMMAND = "df -h / | tail -1 | awk '{print $2, $3, $4, $5}'"
# Detached so the command returns before the connection drops.
RESTART_COMMAND = 'nohup bash -c "sleep 2 && reboot" > /dev/null 2>&1 &'


@dataclass(frozen=True)
class DiskSpace:
    total: str = "0G"
    used: str = "0G"
    available: str = "0G"
    percent: int = 0


@dataclass(frozen=True)
class DiskReport:
    disk: DiskSpace
    log_size_mb: int


def parse_disk_space(text: str) -> DiskSpace:
    """Parse ``size used avail use%`` as printed by the ``df`` pipeline."""
    parts = text.split()
    if len(parts) < 4:
        return DiskSpace()
    try:
        percent = int(parts[3].rstrip("%"))
    except ValueError:
        percent = 0
    return DiskSpace(total=parts[0], used=parts[1], available=parts[2], percent=percent)


def parse_log_size(text: str) -> int:
    try:
        return int(text.strip() or "0")
    except ValueError:
        return 0


class HostMaintenance:
    """Maintenance actions run through single ``run_once`` calls.

    Connection errors propagate. Read-only queries degrade to zero values
    when their command fails.
    """

    def __init__(
        self,
        connector: SSHConnector,
        *,
        command_timeout: float = constants.SSH_COMMAND_TIMEOUT_SECONDS,
        cleanup_timeout: float = constants.MAINTENANCE_TIMEOUT_SECONDS,
    ) -> None:
        self.connector = connector
        self._timeout = command_timeout
        self._cleanup_timeout = cleanup_timeout

    def _query(self, target: RemoteTarget, command: str) -> str:
        result = self.connector.run_once(target, command, timeout=self._timeout)
        if not result.ok:
            logger.warning("maintenance-query-failed host=%s stderr=%s", target.label, result.stderr)
            return ""
        return result.stdout

    def clean_logs(self, target: RemoteTarget) -> OperationOutcome:
        logger.info("maintenance-clean-logs host=%s", target.label)
        result = self.connector.run_once(target, " && ".join(LOG_CLEANUP_COMMANDS), timeout=self._cleanup_timeout)
        outcome = OperationOutcome.succeeded("clean-logs", target.label, raw_output=result.stdout)
        if not result.ok:
            logger.warning("maintenance-clean-logs-partial host=%s stderr=%s", target.label, result.stderr)
            outcome.notes.append(f"some cleanup commands failed: {result.stderr or result.exit_code}")
        return outcome

    def clear_cache(self, target: RemoteTarget) -> OperationOutcome:
        logger.info("maintenance-clear-cache host=%s", target.label)
        result = self.connector.run_once(target, " && ".join(CACHE_CLEANUP_COMMANDS), timeout=self._cleanup_timeout)
        return self._verdict("clear-cache", target, result)

    def restart(self, target: RemoteTarget) -> OperationOutcome:
        logger.warning("maintenance-restart host=%s", target.label)
        result = self.connector.run_once(target, RESTART_COMMAND, timeout=constants.RESTART_TIMEOUT_SECONDS)
        return self._verdict("restart", target, result)

    def log_size_mb(self, target: RemoteTarget) -> int:
        return parse_log_size(self._query(target, LOG_SIZE_COMMAND))

    def disk_space(self, target: RemoteTarget) -> DiskSpace:
        return parse_disk_space(self._query(target, DISK_SPACE_COMMAND))

    def disk_report(self, target: RemoteTarget) -> DiskReport:
        return DiskReport(disk=self.disk_space(target), log_size_mb=self.log_size_mb(target))

    @staticmethod
    def _verdict(operation: str, target: RemoteTarget, result: CommandResult) -> OperationOutcome:
        if result.ok:
            return OperationOutcome.succeeded(operation, target.label, raw_output=result.stdout)
        detail = result.stderr or f"exit status {result.exit_code}"
        logger.error("maintenance-failed host=%s operation=%s detail=%s", target.label, operation, detail)
        return OperationOutcome.failed(operation, target.label, detail, raw_output=result.stdout)
