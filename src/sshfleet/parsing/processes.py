"""Parsing of sshd session processes from ``ps`` output."""

from __future__ import annotations

import re

from sshfleet.models import ConnectionRecord

# OpenSSH names per-session processes "sshd: user@tty" (or "sshd-session:" since 9.8).
_SESSION_PROCESS = re.compile(r"sshd(?:-session)?:\s+([^\s@\[]+)@(\S+)")


def parse_session_processes(text: str) -> list[ConnectionRecord]:
    records: list[ConnectionRecord] = []
    for line in text.splitlines():
        match = _SESSION_PROCESS.search(line)
        if match:
            records.append(ConnectionRecord(username=match.group(1)))
    return records


def count_for_user(records: list[ConnectionRecord], username: str) -> int:
    return sum(1 for record in records if record.username == username)
