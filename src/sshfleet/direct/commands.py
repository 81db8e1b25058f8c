"""Account management through one-shot Linux user administration commands."""

from __future__ import annotations

import logging as py_logging
import re
import shlex
import time
from collections.abc import Callable, Iterable
from datetime import date

from sshfleet.config import DirectSettings
from sshfleet.errors import ExitCode, OperationFailedError, SSHFleetError
from sshfleet.models import (
    AccountRecord,
    AccountTag,
    ConnectionRecord,
    CreatedAccount,
    OperationOutcome,
    ProvisionPath,
)
from sshfleet.parsing import (
    build_account_record,
    count_for_user,
    encode_kind_tag,
    ordinary_tag,
    parse_passwd_entries,
    parse_session_processes,
)
from sshfleet.transport import CommandResult, RemoteTarget, SSHConnector

logger = py_logging.getLogger(__name__)

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.][A-Za-z0-9_.-]{0,31}$")
_ALREADY_EXISTS = ("already exists",)
_DOES_NOT_EXIST = ("does not exist",)
_NO_CHANGES = ("no changes",)

LIST_ACCOUNTS_COMMAND = (
    "cat /etc/passwd | grep 'home' | grep -E '(/bin/bash|/bin/false)' "
    "| grep -v 'syslog' | grep -v '::/' | sort"
)
SESSION_PROCESSES_COMMAND = "ps -eo args="


def validate_username(username: str) -> str:
    cleaned = username.strip()
    if not _USERNAME_PATTERN.match(cleaned):
        raise SSHFleetError(
            f"Invalid account name: {username!r}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use up to 32 letters, digits, '.', '_' or '-'.",
        )
    return cleaned


def format_expiry(expiry: date | str) -> str:
    if isinstance(expiry, date):
        return expiry.isoformat()
    try:
        return date.fromisoformat(expiry.strip()).isoformat()
    except ValueError as exc:
        raise SSHFleetError(
            f"Invalid expiration date: {expiry!r}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use YYYY-MM-DD.",
        ) from exc


def _mentions(result: CommandResult, markers: Iterable[str]) -> bool:
    text = result.combined.lower()
    return any(marker in text for marker in markers)


def _detail(result: CommandResult) -> str:
    return result.stderr or result.stdout or f"exit status {result.exit_code}"


class DirectCommandProvisioner:
    """Runs each account operation as discrete commands over fresh connections."""

    def __init__(
        self,
        connector: SSHConnector,
        settings: DirectSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.connector = connector
        self.settings = settings or DirectSettings()
        self._sleep = sleep
        self._today = today

    def _run(self, target: RemoteTarget, command: str, *, sensitive: Iterable[str] = ()) -> CommandResult:
        return self.connector.run_once(
            target,
            command,
            timeout=self.settings.command_timeout,
            sensitive=tuple(sensitive),
        )

    def _failed(self, operation: str, target: RemoteTarget, detail: str) -> OperationOutcome:
        logger.error("direct-failed host=%s operation=%s detail=%s", target.label, operation, detail)
        return OperationOutcome.failed(operation, target.label, detail, path=ProvisionPath.DIRECT)

    def _single(self, operation: str, target: RemoteTarget, command: str, *, tolerate: Iterable[str] = ()) -> OperationOutcome:
        result = self._run(target, command)
        if not result.ok and not _mentions(result, tolerate):
            return self._failed(operation, target, _detail(result))
        logger.info("direct-done host=%s operation=%s", target.label, operation)
        return OperationOutcome.succeeded(operation, target.label, raw_output=result.combined, path=ProvisionPath.DIRECT)

    def create_account(
        self,
        target: RemoteTarget,
        identifier: str,
        secret: str,
        expiry: date | str,
        *,
        tag: AccountTag | None = None,
    ) -> OperationOutcome:
        username = validate_username(identifier)
        expiry_text = format_expiry(expiry)
        tag = tag or ordinary_tag(secret, self.settings.default_connection_limit)
        sensitive = (secret, tag.payload)
        notes: list[str] = []

        useradd = (
            f"useradd -m -s {shlex.quote(self.settings.login_shell)} -e {shlex.quote(expiry_text)} "
            f"-c {shlex.quote(encode_kind_tag(tag))} {shlex.quote(username)}"
        )
        created = self._run(target, useradd, sensitive=sensitive)
        if not created.ok:
            if not _mentions(created, _ALREADY_EXISTS):
                return self._failed("create", target, _detail(created))
            logger.info("direct-create-exists host=%s user=%s", target.label, username)
            notes.append("account already existed")

        credentials = shlex.quote(f"{username}:{secret}")
        password_set = self._run(target, f"printf '%s\\n' {credentials} | chpasswd", sensitive=sensitive)
        if not password_set.ok:
            return self._failed("create", target, f"Setting the password failed: {_detail(password_set)}")

        expiry_set = self._run(target, f"chage -E {shlex.quote(expiry_text)} {shlex.quote(username)}")
        if not expiry_set.ok:
            logger.warning("direct-create-expiry host=%s user=%s detail=%s", target.label, username, _detail(expiry_set))
            notes.append(f"expiry not applied: {_detail(expiry_set)}")

        logger.info("direct-create-done host=%s user=%s expires=%s", target.label, username, expiry_text)
        outcome = OperationOutcome.succeeded(
            "create",
            target.label,
            payload=CreatedAccount(server_ip=target.host, username=username, token=secret, expires_in=expiry_text),
            path=ProvisionPath.DIRECT,
        )
        outcome.notes.extend(notes)
        return outcome

    def delete_account(self, target: RemoteTarget, identifier: str) -> OperationOutcome:
        username = validate_username(identifier)
        # Best effort: the account may have no running sessions.
        self._run(target, f"pkill -u {shlex.quote(username)} || true")
        if self.settings.settle_seconds:
            self._sleep(self.settings.settle_seconds)
        return self._single("remove", target, f"userdel -r {shlex.quote(username)}", tolerate=_DOES_NOT_EXIST)

    def set_expiry(self, target: RemoteTarget, identifier: str, expiry: date | str) -> OperationOutcome:
        username = validate_username(identifier)
        command = f"chage -E {shlex.quote(format_expiry(expiry))} {shlex.quote(username)}"
        return self._single("renew", target, command)

    def lock(self, target: RemoteTarget, identifier: str) -> OperationOutcome:
        username = validate_username(identifier)
        return self._single("block", target, f"usermod -L {shlex.quote(username)}", tolerate=_NO_CHANGES)

    def unlock(self, target: RemoteTarget, identifier: str) -> OperationOutcome:
        username = validate_username(identifier)
        return self._single("unblock", target, f"usermod -U {shlex.quote(username)}", tolerate=_NO_CHANGES)

    def set_secret(self, target: RemoteTarget, identifier: str, secret: str) -> OperationOutcome:
        username = validate_username(identifier)
        credentials = shlex.quote(f"{username}:{secret}")
        result = self._run(target, f"printf '%s\\n' {credentials} | chpasswd", sensitive=(secret,))
        if not result.ok:
            return self._failed("set-secret", target, _detail(result))
        return OperationOutcome.succeeded("set-secret", target.label, path=ProvisionPath.DIRECT)

    def rename_account(self, target: RemoteTarget, identifier: str, new_identifier: str) -> OperationOutcome:
        old = validate_username(identifier)
        new = validate_username(new_identifier)
        command = f"usermod -l {shlex.quote(new)} -d {shlex.quote('/home/' + new)} -m {shlex.quote(old)}"
        return self._single("rename", target, command)

    def list_accounts(self, target: RemoteTarget) -> list[AccountRecord]:
        """Read operator accounts from /etc/passwd.

        Costs one round trip for the dump plus two per account (expiry and
        lock status). Hosts are expected to hold tens of accounts.
        """
        dump = self._run(target, LIST_ACCOUNTS_COMMAND)
        if not dump.ok:
            raise OperationFailedError(
                f"Could not read the account database on {target.label}.",
                hint=_detail(dump),
                detail=_detail(dump),
            )

        today = self._today()
        records: list[AccountRecord] = []
        for entry in parse_passwd_entries(dump.stdout):
            name = shlex.quote(entry.username)
            chage = self._run(target, f"chage -l {name} | sed -n '4p' | awk -F ': ' '{{print $2}}'")
            status = self._run(target, f"passwd --status {name} | cut -d ' ' -f2")
            records.append(build_account_record(entry, chage.stdout, status.stdout, today))
        logger.info("direct-list host=%s accounts=%s", target.label, len(records))
        return records

    def list_connections(self, target: RemoteTarget) -> list[ConnectionRecord]:
        result = self._run(target, SESSION_PROCESSES_COMMAND)
        if not result.ok:
            raise OperationFailedError(
                f"Could not list sessions on {target.label}.",
                hint=_detail(result),
                detail=_detail(result),
            )
        return parse_session_processes(result.stdout)

    def connection_count(self, target: RemoteTarget, identifier: str) -> int:
        username = validate_username(identifier)
        return count_for_user(self.list_connections(target), username)

    def purge_expired(self, target: RemoteTarget) -> OperationOutcome:
        expired = [
            record
            for record in self.list_accounts(target)
            if record.expiration_date and not record.never_expires and record.days_remaining <= 0
        ]
        removed: list[str] = []
        failures: list[str] = []
        for record in expired:
            outcome = self.delete_account(target, record.username)
            if outcome.success:
                removed.append(record.username)
            else:
                failures.append(f"{record.username}: {outcome.detail}")

        logger.info("direct-purge host=%s removed=%s failed=%s", target.label, len(removed), len(failures))
        if failures:
            outcome = self._failed("purge-expired", target, "; ".join(failures))
            outcome.payload = removed
            return outcome
        return OperationOutcome.succeeded("purge-expired", target.label, payload=removed, path=ProvisionPath.DIRECT)
