"""Shared constants for transport, menu automation and account parsing."""

from __future__ import annotations

import re

# =============================================================================
# TIMEOUT CONSTANTS (in seconds)
# =============================================================================

SSH_CONNECT_TIMEOUT_SECONDS: float = 30.0
SSH_KEEPALIVE_INTERVAL_SECONDS: int = 10
SSH_BANNER_TIMEOUT_SECONDS: float = 30.0
SSH_AUTH_TIMEOUT_SECONDS: float = 30.0
SSH_COMMAND_TIMEOUT_SECONDS: float = 10.0
MAINTENANCE_TIMEOUT_SECONDS: float = 30.0
RESTART_TIMEOUT_SECONDS: float = 5.0
SHELL_GRACE_SECONDS: float = 1.0
SHELL_POLL_INTERVAL_SECONDS: float = 0.05

# =============================================================================
# LIMIT CONSTANTS
# =============================================================================

TERMINAL_LOG_TRUNCATE_LIMIT: int = 320
DEFAULT_LOG_TRUNCATE_LIMIT: int = 700
SHELL_READ_CHUNK_BYTES: int = 4096
SHELL_TERM: str = "xterm"
SHELL_WIDTH: int = 200
SHELL_HEIGHT: int = 50
DEFAULT_FLEET_WORKERS: int = 8

# =============================================================================
# REMOTE HOST CONSTANTS
# =============================================================================

MENU_INSTALL_DIR: str = "/etc/ADMRufu"
MENU_VERSION_FILE: str = "/etc/ADMRufu/vercion"
MENU_COMMANDS: tuple[str, ...] = ("menu", "adm")
ACCOUNT_SHELLS: frozenset[str] = frozenset({"/bin/bash", "/bin/false"})
DEFAULT_LOGIN_SHELL: str = "/bin/false"
SYSTEM_ACCOUNTS: frozenset[str] = frozenset({"syslog", "nobody", "ubuntu", "admin"})
COMMON_PORTS: dict[int, str] = {
    22: "SSH",
    80: "HTTP",
    443: "HTTPS",
    8080: "HTTP-Alt",
    3128: "Squid Proxy",
    1194: "OpenVPN",
    7300: "V2Ray",
    8888: "WebSocket",
    9000: "SocksPy",
}
NODE_EXPORTER_URL: str = "http://127.0.0.1:9100/metrics"

# =============================================================================
# REGEX PATTERNS (compiled at module level)
# =============================================================================

ANSI_ESCAPE_PATTERN: re.Pattern[str] = re.compile(
    r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b[()][A-Za-z0-9]|\x1b[=>78]",
)

CHPASSWD_PAYLOAD_PATTERN: re.Pattern[str] = re.compile(
    r"(printf\s+'%s\\n'\s+)(\S+)(\s*\|\s*chpasswd)",
)

SECRET_ASSIGNMENT_PATTERN: re.Pattern[str] = re.compile(
    r"\b(password|passwd|secret|token)(\s*[=:]\s*)\S+",
    re.IGNORECASE,
)

PRIVATE_KEY_BLOCK_PATTERN: re.Pattern[str] = re.compile(
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
    re.DOTALL,
)
