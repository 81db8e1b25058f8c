"""Account provisioning capability with menu and direct-command variants."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from datetime import date, timedelta
from enum import Enum
from typing import Protocol

from sshfleet.config import AppConfig
from sshfleet.direct import DirectCommandProvisioner
from sshfleet.errors import ExitCode, MenuUnreachableError, SSHFleetError
from sshfleet.menu import MenuEngine, MenuRequest
from sshfleet.models import (
    AccountKind,
    AccountRecord,
    AccountTag,
    OperationOutcome,
    OperationStatus,
    ProvisionPath,
)
from sshfleet.transport import RemoteTarget, SSHConnector

logger = py_logging.getLogger(__name__)


class ProvisionPolicy(str, Enum):
    MENU = "menu"
    DIRECT = "direct"
    MENU_THEN_DIRECT = "menu-then-direct"


class AccountProvisioner(Protocol):
    path: ProvisionPath | None

    def create(
        self,
        target: RemoteTarget,
        username: str,
        secret: str,
        days: int,
        *,
        tag: AccountTag | None = None,
    ) -> OperationOutcome: ...

    def remove(self, target: RemoteTarget, username: str) -> OperationOutcome: ...

    def renew(self, target: RemoteTarget, username: str, days: int) -> OperationOutcome: ...

    def block(self, target: RemoteTarget, username: str) -> OperationOutcome: ...

    def unblock(self, target: RemoteTarget, username: str) -> OperationOutcome: ...

    def list_connections(self, target: RemoteTarget) -> OperationOutcome: ...

    def purge_expired(self, target: RemoteTarget) -> OperationOutcome: ...

    def list_accounts(self, target: RemoteTarget) -> list[AccountRecord]: ...


def _validate_days(days: int) -> int:
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise SSHFleetError(
            f"Invalid duration: {days!r}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use a whole number of days, at least 1.",
        )
    return days


class MenuDrivenProvisioner:
    """Drives the ADMRufu menu; account listing reads the passwd database."""

    path = ProvisionPath.MENU

    def __init__(self, engine: MenuEngine, direct: DirectCommandProvisioner) -> None:
        self.engine = engine
        self.direct = direct

    def create(
        self,
        target: RemoteTarget,
        username: str,
        secret: str,
        days: int,
        *,
        tag: AccountTag | None = None,
    ) -> OperationOutcome:
        if tag is not None and tag.kind != AccountKind.ORDINARY:
            raise SSHFleetError(
                f"The menu cannot create {tag.kind.value} accounts.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use the direct policy for token or hwid accounts.",
            )
        return self.engine.run(target, MenuRequest.create(username, secret, _validate_days(days)))

    def remove(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self.engine.run(target, MenuRequest.remove(username))

    def renew(self, target: RemoteTarget, username: str, days: int) -> OperationOutcome:
        return self.engine.run(target, MenuRequest.renew(username, _validate_days(days)))

    def block(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self.engine.run(target, MenuRequest.block(username))

    def unblock(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self.engine.run(target, MenuRequest.unblock(username))

    def list_connections(self, target: RemoteTarget) -> OperationOutcome:
        return self.engine.run(target, MenuRequest.list_connections())

    def purge_expired(self, target: RemoteTarget) -> OperationOutcome:
        return self.engine.run(target, MenuRequest.purge_expired())

    def list_accounts(self, target: RemoteTarget) -> list[AccountRecord]:
        return self.direct.list_accounts(target)


class DirectProvisioner:
    """Adapts the direct command set to the provisioning capability."""

    path = ProvisionPath.DIRECT

    def __init__(self, direct: DirectCommandProvisioner, *, today: Callable[[], date] = date.today) -> None:
        self.direct = direct
        self._today = today

    def _expiry(self, days: int) -> date:
        return self._today() + timedelta(days=_validate_days(days))

    def create(
        self,
        target: RemoteTarget,
        username: str,
        secret: str,
        days: int,
        *,
        tag: AccountTag | None = None,
    ) -> OperationOutcome:
        return self.direct.create_account(target, username, secret, self._expiry(days), tag=tag)

    def remove(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self.direct.delete_account(target, username)

    def renew(self, target: RemoteTarget, username: str, days: int) -> OperationOutcome:
        return self.direct.set_expiry(target, username, self._expiry(days))

    def block(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self.direct.lock(target, username)

    def unblock(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self.direct.unlock(target, username)

    def list_connections(self, target: RemoteTarget) -> OperationOutcome:
        records = self.direct.list_connections(target)
        return OperationOutcome.succeeded(
            "list-connections",
            target.label,
            payload=records,
            path=ProvisionPath.DIRECT,
        )

    def purge_expired(self, target: RemoteTarget) -> OperationOutcome:
        return self.direct.purge_expired(target)

    def list_accounts(self, target: RemoteTarget) -> list[AccountRecord]:
        return self.direct.list_accounts(target)


class FallbackProvisioner:
    """Try the primary path; use the fallback when the primary cannot or did not do it.

    An unreachable menu or an explicit failure report moves the operation to
    the fallback. An unconfirmed outcome is returned as is: the first attempt
    may have taken effect, so repeating it could act twice.
    """

    path: ProvisionPath | None = None

    def __init__(self, primary: AccountProvisioner, fallback: AccountProvisioner) -> None:
        self.primary = primary
        self.fallback = fallback

    def _attempt(
        self,
        operation: str,
        target: RemoteTarget,
        primary: Callable[[], OperationOutcome],
        fallback: Callable[[], OperationOutcome],
    ) -> OperationOutcome:
        try:
            outcome = primary()
        except MenuUnreachableError as exc:
            reason = exc.message
            logger.warning("fallback host=%s operation=%s reason=menu-unreachable", target.label, operation)
        else:
            if outcome.status != OperationStatus.FAILED:
                return outcome
            reason = outcome.detail
            logger.warning(
                "fallback host=%s operation=%s reason=operation-failed detail=%s",
                target.label,
                operation,
                reason,
            )

        result = fallback()
        result.notes.append(f"primary path failed: {reason}")
        return result

    def create(
        self,
        target: RemoteTarget,
        username: str,
        secret: str,
        days: int,
        *,
        tag: AccountTag | None = None,
    ) -> OperationOutcome:
        if tag is not None and tag.kind != AccountKind.ORDINARY:
            return self.fallback.create(target, username, secret, days, tag=tag)
        return self._attempt(
            "create",
            target,
            lambda: self.primary.create(target, username, secret, days, tag=tag),
            lambda: self.fallback.create(target, username, secret, days, tag=tag),
        )

    def remove(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self._attempt(
            "remove",
            target,
            lambda: self.primary.remove(target, username),
            lambda: self.fallback.remove(target, username),
        )

    def renew(self, target: RemoteTarget, username: str, days: int) -> OperationOutcome:
        return self._attempt(
            "renew",
            target,
            lambda: self.primary.renew(target, username, days),
            lambda: self.fallback.renew(target, username, days),
        )

    def block(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self._attempt(
            "block",
            target,
            lambda: self.primary.block(target, username),
            lambda: self.fallback.block(target, username),
        )

    def unblock(self, target: RemoteTarget, username: str) -> OperationOutcome:
        return self._attempt(
            "unblock",
            target,
            lambda: self.primary.unblock(target, username),
            lambda: self.fallback.unblock(target, username),
        )

    def list_connections(self, target: RemoteTarget) -> OperationOutcome:
        return self._attempt(
            "list-connections",
            target,
            lambda: self.primary.list_connections(target),
            lambda: self.fallback.list_connections(target),
        )

    def purge_expired(self, target: RemoteTarget) -> OperationOutcome:
        return self._attempt(
            "purge-expired",
            target,
            lambda: self.primary.purge_expired(target),
            lambda: self.fallback.purge_expired(target),
        )

    def list_accounts(self, target: RemoteTarget) -> list[AccountRecord]:
        return self.fallback.list_accounts(target)


def build_provisioner(
    policy: ProvisionPolicy | str,
    connector: SSHConnector,
    config: AppConfig | None = None,
) -> AccountProvisioner:
    config = config or AppConfig()
    try:
        resolved = ProvisionPolicy(policy)
    except ValueError as exc:
        raise SSHFleetError(
            f"Unknown provisioning policy: {policy}",
            code=ExitCode.INVALID_ARGS,
            hint="Use one of: " + ", ".join(item.value for item in ProvisionPolicy),
        ) from exc

    direct_commands = DirectCommandProvisioner(connector, config.direct)
    direct = DirectProvisioner(direct_commands)
    if resolved == ProvisionPolicy.DIRECT:
        return direct
    menu = MenuDrivenProvisioner(MenuEngine(connector, config.menu), direct_commands)
    if resolved == ProvisionPolicy.MENU:
        return menu
    return FallbackProvisioner(menu, direct)
