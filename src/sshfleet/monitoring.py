"""Host metrics: node_exporter when present, shell commands otherwise."""

from __future__ import annotations

import logging as py_logging
import re
import shlex
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field

from sshfleet import constants
from sshfleet.transport import RemoteTarget, SSHConnector

logger = py_logging.getLogger(__name__)

CPU_COMMAND = r"""top -bn1 | grep "Cpu(s)" | sed "s/.*, *\([0-9.]*\)%* id.*/\1/" | awk '{print 100 - $1}'"""
RAM_COMMAND = "free | grep Mem | awk '{print ($3/$2) * 100.0}'"
DISK_COMMAND = "df -h / | tail -1 | awk '{print $5}' | sed 's/%//'"
UPTIME_COMMAND = "uptime -p"
PORTS_COMMAND = "ss -tuln | grep LISTEN || netstat -tuln | grep LISTEN"
OS_COMMAND = "cat /etc/os-release | grep PRETTY_NAME | cut -d= -f2 | sed 's/\"//g'"

_CPU_SAMPLE = re.compile(r'^node_cpu_seconds_total\{([^}]*)\}\s+([0-9.eE+-]+)$', re.MULTILINE)
_MEM_TOTAL = re.compile(r"^node_memory_MemTotal_bytes\s+([0-9.eE+-]+)$", re.MULTILINE)
_MEM_AVAILABLE = re.compile(r"^node_memory_MemAvailable_bytes\s+([0-9.eE+-]+)$", re.MULTILINE)
_FS_AVAIL = re.compile(r'^node_filesystem_avail_bytes\{[^}]*mountpoint="/"[^}]*\}\s+([0-9.eE+-]+)$', re.MULTILINE)
_FS_SIZE = re.compile(r'^node_filesystem_size_bytes\{[^}]*mountpoint="/"[^}]*\}\s+([0-9.eE+-]+)$', re.MULTILINE)
_BOOT_TIME = re.compile(r"^node_boot_time_seconds\s+([0-9.eE+-]+)$", re.MULTILINE)


@dataclass(frozen=True)
class PortStatus:
    port: int
    service: str
    listening: bool
    protocol: str = "tcp"


@dataclass
class HostMetrics:
    cpu: float = 0.0
    ram: float = 0.0
    disk: float = 0.0
    uptime: str = "unknown"
    ports: list[PortStatus] = field(default_factory=list)
    source: str = "commands"
    collected_at: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class SystemInfo:
    os: str = "Unknown"
    kernel: str = "Unknown"
    hostname: str = "Unknown"


def _percent(used: float, total: float, digits: int = 1) -> float:
    if total <= 0:
        return 0.0
    return round(used / total * 100, digits)


def _to_float(text: str) -> float:
    try:
        return float(text.strip())
    except ValueError:
        return 0.0


def parse_node_cpu(metrics: str) -> float:
    idle = total = 0.0
    for labels, value in _CPU_SAMPLE.findall(metrics):
        seconds = _to_float(value)
        total += seconds
        if 'mode="idle"' in labels:
            idle += seconds
    return _percent(total - idle, total)


def parse_node_ram(metrics: str) -> float:
    total = _MEM_TOTAL.search(metrics)
    available = _MEM_AVAILABLE.search(metrics)
    if not total or not available:
        return 0.0
    total_bytes = _to_float(total.group(1))
    return _percent(total_bytes - _to_float(available.group(1)), total_bytes)


def parse_node_disk(metrics: str) -> float:
    avail = _FS_AVAIL.search(metrics)
    size = _FS_SIZE.search(metrics)
    if not avail or not size:
        return 0.0
    size_bytes = _to_float(size.group(1))
    return _percent(size_bytes - _to_float(avail.group(1)), size_bytes, 0)


def format_uptime(seconds: float) -> str:
    seconds = max(0, int(seconds))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    return f"{days} days, {hours} hours, {minutes} minutes"


def parse_node_uptime(metrics: str, now: float) -> str:
    match = _BOOT_TIME.search(metrics)
    if not match:
        return "unknown"
    return format_uptime(now - _to_float(match.group(1)))


def parse_listening_ports(text: str, ports: dict[int, str] = constants.COMMON_PORTS) -> list[PortStatus]:
    lines = text.splitlines()
    statuses: list[PortStatus] = []
    for port, service in ports.items():
        listening = any(f":{port} " in line or f":{port}\t" in line for line in lines)
        statuses.append(PortStatus(port=port, service=service, listening=listening))
    return statuses


class HostMonitor:
    def __init__(
        self,
        connector: SSHConnector,
        *,
        clock: Callable[[], float] = time.time,
        command_timeout: float = constants.SSH_COMMAND_TIMEOUT_SECONDS,
    ) -> None:
        self.connector = connector
        self._clock = clock
        self._timeout = command_timeout

    def _stdout(self, target: RemoteTarget, command: str, *, timeout: float | None = None) -> str:
        result = self.connector.run_once(target, command, timeout=timeout or self._timeout)
        if not result.ok:
            logger.warning("metrics-command-failed host=%s command=%s stderr=%s", target.label, command, result.stderr)
            return ""
        return result.stdout

    def has_node_exporter(self, target: RemoteTarget) -> bool:
        reply = self._stdout(target, f"curl -s {shlex.quote(constants.NODE_EXPORTER_URL)} | head -1", timeout=3)
        return "node_" in reply

    def port_status(self, target: RemoteTarget) -> list[PortStatus]:
        output = self._stdout(target, PORTS_COMMAND)
        if not output:
            return []
        return parse_listening_ports(output)

    def collect(self, target: RemoteTarget) -> HostMetrics:
        now = self._clock()
        if self.has_node_exporter(target):
            metrics = self._stdout(target, f"curl -s {shlex.quote(constants.NODE_EXPORTER_URL)}")
            if metrics:
                logger.info("metrics host=%s source=node_exporter", target.label)
                return HostMetrics(
                    cpu=parse_node_cpu(metrics),
                    ram=parse_node_ram(metrics),
                    disk=parse_node_disk(metrics),
                    uptime=parse_node_uptime(metrics, now),
                    ports=self.port_status(target),
                    source="node_exporter",
                    collected_at=now,
                )

        logger.info("metrics host=%s source=commands", target.label)
        uptime = self._stdout(target, UPTIME_COMMAND).strip()
        return HostMetrics(
            cpu=round(_to_float(self._stdout(target, CPU_COMMAND) or "0"), 1),
            ram=round(_to_float(self._stdout(target, RAM_COMMAND) or "0"), 1),
            disk=_to_float(self._stdout(target, DISK_COMMAND) or "0"),
            uptime=uptime.removeprefix("up ") if uptime else "unknown",
            ports=self.port_status(target),
            source="commands",
            collected_at=now,
        )

    def system_info(self, target: RemoteTarget) -> SystemInfo:
        return SystemInfo(
            os=self._stdout(target, OS_COMMAND).strip() or "Unknown",
            kernel=self._stdout(target, "uname -r").strip() or "Unknown",
            hostname=self._stdout(target, "hostname").strip() or "Unknown",
        )
