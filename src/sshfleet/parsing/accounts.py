"""Parsing of passwd dumps, chage expiry lines and passwd lock status."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime

from sshfleet import constants
from sshfleet.models import AccountRecord
from sshfleet.parsing.kind_tag import decode_kind_tag
from sshfleet.security import strip_ansi

logger = py_logging.getLogger(__name__)

_NEVER_MARKERS = ("never", "nunca")
_DATE_FORMATS = ("%b %d, %Y", "%Y-%m-%d", "%d/%m/%Y", "%B %d, %Y")


@dataclass(frozen=True)
class PasswdEntry:
    username: str
    uid: str
    gid: str
    comment: str
    home: str
    shell: str


@dataclass(frozen=True)
class ChageExpiry:
    expiration_date: str = ""
    expires_on: date | None = None
    never_expires: bool = False
    parsed: bool = False

    def days_remaining(self, today: date) -> int:
        if self.expires_on is None:
            return 0
        return (self.expires_on - today).days


def parse_passwd_line(line: str) -> PasswdEntry | None:
    parts = line.strip().split(":")
    if len(parts) < 7:
        return None
    username, _password, uid, gid, comment, home, shell = parts[:7]
    shell = shell.strip()
    if not username or "home" not in home:
        return None
    if shell not in constants.ACCOUNT_SHELLS:
        return None
    if username in constants.SYSTEM_ACCOUNTS:
        return None
    return PasswdEntry(username=username, uid=uid, gid=gid, comment=comment, home=home, shell=shell)


def parse_passwd_entries(raw: str) -> list[PasswdEntry]:
    entries: list[PasswdEntry] = []
    for line in strip_ansi(raw).splitlines():
        entry = parse_passwd_line(line)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_chage_expiry(text: str) -> ChageExpiry:
    """Parse the "Account expires" value printed by ``chage -l``."""
    value = strip_ansi(text).strip()
    if ":" in value and not value[:4].isdigit():
        value = value.split(":", 1)[1].strip()
    if not value:
        return ChageExpiry()
    lowered = value.lower()
    if any(marker in lowered for marker in _NEVER_MARKERS):
        return ChageExpiry(never_expires=True, parsed=True)
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(value, fmt).date()
        except ValueError:
            continue
        return ChageExpiry(expiration_date=parsed.isoformat(), expires_on=parsed, parsed=True)
    logger.debug("chage-expiry-unparsed value=%s", value)
    return ChageExpiry(expiration_date="")


def parse_lock_status(text: str) -> bool:
    """True when ``passwd --status`` reports the account as locked (``L``)."""
    value = strip_ansi(text).strip().split()
    if not value:
        return False
    # Either the full status line or just its second field.
    status = value[1] if len(value) > 1 else value[0]
    return status.upper().startswith("L")


def build_account_record(
    entry: PasswdEntry,
    chage_text: str,
    status_text: str,
    today: date,
) -> AccountRecord:
    tag = decode_kind_tag(entry.comment)
    expiry = parse_chage_expiry(chage_text)
    if chage_text.strip() and not expiry.parsed:
        logger.warning("account-expiry-unparsed user=%s", entry.username)
    return AccountRecord(
        username=entry.username,
        password=tag.payload,
        kind=tag.kind,
        connection_limit=tag.connection_limit,
        expiration_date=expiry.expiration_date,
        days_remaining=expiry.days_remaining(today),
        is_blocked=parse_lock_status(status_text),
        never_expires=expiry.never_expires,
    )


def parse_account_listing(
    raw: str,
    details: Mapping[str, tuple[str, str]],
    today: date,
) -> list[AccountRecord]:
    """Combine a passwd dump with per-account ``(chage, status)`` output."""
    records: list[AccountRecord] = []
    for entry in parse_passwd_entries(raw):
        chage_text, status_text = details.get(entry.username, ("", ""))
        records.append(build_account_record(entry, chage_text, status_text, today))
    return records
