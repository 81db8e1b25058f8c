"""Extraction of structured fields from menu output banners."""

from __future__ import annotations

import logging as py_logging
import re

from sshfleet.models import ConnectionRecord, CreatedAccount
from sshfleet.security import strip_ansi

logger = py_logging.getLogger(__name__)

_SERVER_IP = re.compile(r"IP\s+(?:DEL\s+)?SERVIDOR[\s:]*([0-9][0-9.]*)", re.IGNORECASE)
_USERNAME = re.compile(r"NOMBRE\s+(?:ID|USUARIO)[\s:]*([^\s:]\S*)", re.IGNORECASE)
_TOKEN = re.compile(r"TOKEN[\s:]*([^\s:]\S*)", re.IGNORECASE)
_EXPIRES = re.compile(r"EXPIRA\s+EN\s*:?\s*([^\s:].*)", re.IGNORECASE)
_IP_VALUE = re.compile(r"([0-9]+(?:\.[0-9]+){3})")
_MONITOR_ROW = re.compile(r"(\w+)\s*\|\s*([\d.]+)\s*\|")


def _is_server_ip_label(line: str) -> bool:
    return "IP" in line and "SERVIDOR" in line


def _is_username_label(line: str) -> bool:
    return "NOMBRE" in line and ("ID" in line or "USUARIO" in line)


def _is_token_label(line: str) -> bool:
    return "TOKEN" in line


def _is_expiry_label(line: str) -> bool:
    return "EXPIRA" in line and "EN" in line


def _next_word(lines: list[str], index: int) -> str:
    if index + 1 >= len(lines):
        return ""
    candidate = lines[index + 1].strip()
    if not candidate or ":" in candidate:
        return ""
    return candidate.split()[0]


def parse_created_account(text: str) -> CreatedAccount | None:
    """Read the account banner printed after a successful create.

    Each label is looked up on its own line first; when the value is missing
    there, the following line is used. Returns None unless both the server IP
    and the account name were found.
    """
    lines = strip_ansi(text).replace("\r", "").split("\n")
    server_ip = username = token = expires_in = ""

    for index, line in enumerate(lines):
        if _is_server_ip_label(line):
            match = _SERVER_IP.search(line)
            if match:
                server_ip = match.group(1)
            elif index + 1 < len(lines):
                ip_match = _IP_VALUE.search(lines[index + 1])
                if ip_match:
                    server_ip = ip_match.group(1)

        if _is_username_label(line):
            match = _USERNAME.search(line)
            if match:
                username = match.group(1)
            else:
                username = _next_word(lines, index) or username

        if _is_token_label(line):
            match = _TOKEN.search(line)
            if match:
                token = match.group(1)
            else:
                token = _next_word(lines, index) or token

        if _is_expiry_label(line):
            match = _EXPIRES.search(line)
            if match:
                expires_in = match.group(1).strip()
            elif index + 1 < len(lines):
                expires_in = lines[index + 1].strip()

    if server_ip and username:
        return CreatedAccount(server_ip=server_ip, username=username, token=token, expires_in=expires_in)

    logger.warning(
        "created-account-unparsed server_ip_found=%s username_found=%s",
        bool(server_ip),
        bool(username),
    )
    return None


def parse_connection_monitor(text: str) -> list[ConnectionRecord]:
    """Parse ``user | ip | protocol`` rows from the connection monitor screen."""
    records: list[ConnectionRecord] = []
    for line in strip_ansi(text).splitlines():
        match = _MONITOR_ROW.search(line)
        if match:
            records.append(ConnectionRecord(username=match.group(1), ip_address=match.group(2)))
    return records
