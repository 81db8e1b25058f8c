"""Security utilities for log sanitization and credential masking."""

from __future__ import annotations

from collections.abc import Iterable

from sshfleet.constants import (
    ANSI_ESCAPE_PATTERN,
    CHPASSWD_PAYLOAD_PATTERN,
    DEFAULT_LOG_TRUNCATE_LIMIT,
    PRIVATE_KEY_BLOCK_PATTERN,
    SECRET_ASSIGNMENT_PATTERN,
    TERMINAL_LOG_TRUNCATE_LIMIT,
)


def truncate_log(value: str, limit: int = DEFAULT_LOG_TRUNCATE_LIMIT) -> str:
    """Truncate log text to the specified limit with ellipsis."""
    value = value.strip()
    if len(value) <= limit:
        return value
    return value[: max(0, limit - 3)] + "..."


def tail_log(value: str, limit: int = TERMINAL_LOG_TRUNCATE_LIMIT) -> str:
    """Keep the end of a growing buffer, where the latest prompt lives."""
    value = value.strip()
    if len(value) <= limit:
        return value
    return "..." + value[-max(0, limit - 3) :]


def strip_ansi(value: str) -> str:
    return ANSI_ESCAPE_PATTERN.sub("", value)


def mask_values(value: str, sensitive: Iterable[str]) -> str:
    masked = value
    for secret in sensitive:
        if secret:
            masked = masked.replace(secret, "***")
    return masked


def redact_secrets(value: str) -> str:
    """Mask private keys, chpasswd payloads and `password=`-style assignments."""
    redacted = PRIVATE_KEY_BLOCK_PATTERN.sub("***PRIVATE KEY***", value)
    redacted = CHPASSWD_PAYLOAD_PATTERN.sub(r"\1***\3", redacted)
    return SECRET_ASSIGNMENT_PATTERN.sub(r"\1\2***", redacted)


def sanitize_log_text(
    value: str,
    limit: int = DEFAULT_LOG_TRUNCATE_LIMIT,
    *,
    sensitive: Iterable[str] = (),
) -> str:
    """Mask sensitive values and return a bounded-length log string."""
    if not value:
        return ""

    return truncate_log(redact_secrets(mask_values(value, sensitive)), limit)


def sanitize_terminal_log_text(value: str, *, sensitive: Iterable[str] = ()) -> str:
    """Sanitize terminal output, keeping the most recent part of the buffer."""
    if not value:
        return ""
    cleaned = strip_ansi(value).replace("\r", "")
    cleaned = mask_values(cleaned, sensitive)
    cleaned = SECRET_ASSIGNMENT_PATTERN.sub(r"\1\2***", cleaned)
    return tail_log(cleaned)


def command_for_log(command: str, sensitive: Iterable[str] = ()) -> str:
    """Return a masked command string bounded for logging."""
    if not command:
        return ""
    return sanitize_log_text(command, sensitive=sensitive)
