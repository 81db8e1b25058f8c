"""Connection limit enforcement for ordinary accounts on one host."""

from __future__ import annotations

import logging as py_logging
from dataclasses import dataclass

from sshfleet.models import ConnectionRecord
from sshfleet.parsing import count_for_user
from sshfleet.provisioner import AccountProvisioner
from sshfleet.transport import RemoteTarget

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class LimitCheck:
    username: str
    max_connections: int
    current_connections: int
    exceeded: bool
    blocked: bool = False
    detail: str = ""


def enforce_connection_limits(
    provisioner: AccountProvisioner,
    target: RemoteTarget,
    *,
    dry_run: bool = False,
) -> list[LimitCheck]:
    """Block active accounts whose live sessions exceed their connection limit."""
    accounts = [
        record
        for record in provisioner.list_accounts(target)
        if record.is_active and record.connection_limit > 0
    ]
    if not accounts:
        return []

    sessions = provisioner.list_connections(target)
    sessions.raise_for_status()
    records: list[ConnectionRecord] = list(sessions.payload or [])

    checks: list[LimitCheck] = []
    for account in accounts:
        current = count_for_user(records, account.username)
        exceeded = current > account.connection_limit
        if not exceeded or dry_run:
            checks.append(LimitCheck(account.username, account.connection_limit, current, exceeded))
            continue

        outcome = provisioner.block(target, account.username)
        logger.warning(
            "limit-exceeded host=%s user=%s current=%s max=%s blocked=%s",
            target.label,
            account.username,
            current,
            account.connection_limit,
            outcome.success,
        )
        checks.append(
            LimitCheck(
                account.username,
                account.connection_limit,
                current,
                exceeded,
                blocked=outcome.success,
                detail=outcome.detail,
            )
        )
    return checks
