"""Pure text-to-record extraction over captured remote output."""

from .accounts import (
    ChageExpiry,
    PasswdEntry,
    build_account_record,
    parse_account_listing,
    parse_chage_expiry,
    parse_lock_status,
    parse_passwd_entries,
    parse_passwd_line,
)
from .banner import parse_connection_monitor, parse_created_account
from .kind_tag import bound_tag, decode_kind_tag, encode_kind_tag, ordinary_tag
from .processes import count_for_user, parse_session_processes

__all__ = [
    "bound_tag",
    "build_account_record",
    "ChageExpiry",
    "count_for_user",
    "decode_kind_tag",
    "encode_kind_tag",
    "ordinary_tag",
    "parse_account_listing",
    "parse_chage_expiry",
    "parse_connection_monitor",
    "parse_created_account",
    "parse_lock_status",
    "parse_passwd_entries",
    "parse_passwd_line",
    "parse_session_processes",
    "PasswdEntry",
]
