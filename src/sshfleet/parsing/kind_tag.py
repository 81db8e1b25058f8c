"""Account kind encoding in the passwd comment (GECOS) field.

Ordinary accounts store ``{limit},{password}``. Accounts bound to a client
application store ``token,{client-id}`` or ``hwid,{client-id}`` and always
have a connection limit of one.
"""

from __future__ import annotations

from sshfleet.errors import ExitCode, SSHFleetError
from sshfleet.models import AccountKind, AccountTag

TOKEN_MARKER = "token"
HWID_MARKER = "hwid"
MISSING_PAYLOAD = "***"

_MARKERS = {
    TOKEN_MARKER: AccountKind.TOKEN,
    HWID_MARKER: AccountKind.HWID,
}
_FORBIDDEN = (":", "\n", "\r")


def encode_kind_tag(tag: AccountTag) -> str:
    for char in _FORBIDDEN:
        if char in tag.payload:
            raise SSHFleetError(
                "Account payload cannot contain ':' or line breaks.",
                code=ExitCode.VALIDATION_ERROR,
                hint="The passwd comment field is colon-delimited.",
            )
    if tag.kind == AccountKind.TOKEN:
        return f"{TOKEN_MARKER},{tag.payload}"
    if tag.kind == AccountKind.HWID:
        return f"{HWID_MARKER},{tag.payload}"
    if tag.connection_limit < 1:
        raise SSHFleetError(
            f"Invalid connection limit: {tag.connection_limit}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use a limit of at least 1.",
        )
    return f"{tag.connection_limit},{tag.payload}"


def decode_kind_tag(field: str) -> AccountTag:
    head, separator, payload = field.partition(",")
    if not separator:
        payload = MISSING_PAYLOAD
    marker = head.strip().lower()
    if marker in _MARKERS:
        return AccountTag(kind=_MARKERS[marker], payload=payload, connection_limit=1)
    try:
        limit = int(marker or "1")
    except ValueError:
        limit = 1
    return AccountTag(kind=AccountKind.ORDINARY, payload=payload, connection_limit=max(1, limit))


def ordinary_tag(password: str, connection_limit: int = 1) -> AccountTag:
    return AccountTag(kind=AccountKind.ORDINARY, payload=password, connection_limit=connection_limit)


def bound_tag(kind: AccountKind, client_id: str) -> AccountTag:
    if kind == AccountKind.ORDINARY:
        raise SSHFleetError(
            "Bound accounts must be token or hwid kind.",
            code=ExitCode.VALIDATION_ERROR,
        )
    return AccountTag(kind=kind, payload=client_id, connection_limit=1)
