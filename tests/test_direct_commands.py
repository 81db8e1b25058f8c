from __future__ import annotations

import shlex
from datetime import date

import pytest

from sshfleet.config import DirectSettings
from sshfleet.direct import DirectCommandProvisioner, format_expiry, validate_username
from sshfleet.errors import ExitCode, OperationFailedError, SSHFleetError
from sshfleet.models import AccountKind, CreatedAccount, OperationStatus, ProvisionPath
from sshfleet.parsing import bound_tag

PASSWD_DUMP = "\n".join(
    [
        "alice:x:1001:1001:2,s3cret:/home/alice:/bin/false",
        "bob:x:1002:1002:token,client-9981:/home/bob:/bin/false",
        "carol:x:1003:1003:1,pw:/home/carol:/bin/bash",
    ]
)


def _provisioner(connector, sleeps: list[float] | None = None) -> DirectCommandProvisioner:
    recorded = sleeps if sleeps is not None else []
    return DirectCommandProvisioner(
        connector,
        DirectSettings(),
        sleep=recorded.append,
        today=lambda: date(2025, 11, 26),
    )


def _with_listing(connector):
    return (
        connector.add("cat /etc/passwd", stdout=PASSWD_DUMP)
        .add("chage -l alice", stdout="Dec 26, 2025")
        .add("passwd --status alice", stdout="P")
        .add("chage -l bob", stdout="never")
        .add("passwd --status bob", stdout="L")
        .add("chage -l carol", stdout="Jan 01, 2024")
        .add("passwd --status carol", stdout="P")
    )


def test_create_runs_useradd_chpasswd_and_chage(scripted_connector, target) -> None:
    outcome = _provisioner(scripted_connector).create_account(target, "alice", "Xk9#pL2q", date(2025, 12, 26))

    assert outcome.success
    assert outcome.path == ProvisionPath.DIRECT
    assert outcome.payload == CreatedAccount(
        server_ip="203.0.113.5",
        username="alice",
        token="Xk9#pL2q",
        expires_in="2025-12-26",
    )
    assert scripted_connector.calls == [
        "useradd -m -s /bin/false -e 2025-12-26 -c '1,Xk9#pL2q' alice",
        "printf '%s\\n' 'alice:Xk9#pL2q' | chpasswd",
        "chage -E 2025-12-26 alice",
    ]
    assert "Xk9#pL2q" in scripted_connector.sensitive[1]


def test_create_existing_account_still_sets_password(scripted_connector, target) -> None:
    scripted_connector.add("useradd", 9, stderr="useradd: user 'alice' already exists")

    outcome = _provisioner(scripted_connector).create_account(target, "alice", "Xk9#pL2q", "2025-12-26")

    assert outcome.success
    assert outcome.notes == ["account already existed"]
    assert any("chpasswd" in call for call in scripted_connector.calls)


def test_create_fails_on_other_useradd_errors(scripted_connector, target) -> None:
    scripted_connector.add("useradd", 1, stderr="useradd: cannot lock /etc/passwd; try again later.")

    outcome = _provisioner(scripted_connector).create_account(target, "alice", "pw", "2025-12-26")

    assert outcome.status == OperationStatus.FAILED
    assert "cannot lock /etc/passwd" in outcome.detail
    assert len(scripted_connector.calls) == 1


def test_create_fails_when_password_cannot_be_set(scripted_connector, target) -> None:
    scripted_connector.add("chpasswd", 1, stderr="chpasswd: (user alice) pam_chauthtok() failed")

    outcome = _provisioner(scripted_connector).create_account(target, "alice", "pw", "2025-12-26")

    assert not outcome.success
    assert outcome.detail.startswith("Setting the password failed")


def test_create_expiry_failure_is_a_note_only(scripted_connector, target) -> None:
    scripted_connector.add("chage -E", 1, stderr="chage: user 'alice' does not exist in /etc/passwd")

    outcome = _provisioner(scripted_connector).create_account(target, "alice", "pw", "2025-12-26")

    assert outcome.success
    assert outcome.notes[0].startswith("expiry not applied")


def test_create_bound_account_stores_kind_marker(scripted_connector, target) -> None:
    tag = bound_tag(AccountKind.TOKEN, "client-9981")

    _provisioner(scripted_connector).create_account(target, "bob", "pw", "2025-12-26", tag=tag)

    assert "-c token,client-9981 bob" in scripted_connector.calls[0]


def test_secret_with_quotes_is_shell_quoted(scripted_connector, target) -> None:
    secret = "pa'ss; rm -rf /"

    _provisioner(scripted_connector).create_account(target, "alice", secret, "2025-12-26")

    assert scripted_connector.calls[1] == f"printf '%s\\n' {shlex.quote('alice:' + secret)} | chpasswd"


@pytest.mark.parametrize("username", ["alice; reboot", "$(id)", "", "a" * 33, "-rf"])
def test_invalid_usernames_never_reach_the_host(scripted_connector, target, username: str) -> None:
    with pytest.raises(SSHFleetError) as exc_info:
        _provisioner(scripted_connector).create_account(target, username, "pw", "2025-12-26")

    assert exc_info.value.code == ExitCode.VALIDATION_ERROR
    assert scripted_connector.calls == []


def test_invalid_expiry_is_rejected(scripted_connector, target) -> None:
    with pytest.raises(SSHFleetError):
        _provisioner(scripted_connector).create_account(target, "alice", "pw", "26/12/2025")


def test_delete_terminates_sessions_then_removes(scripted_connector, target) -> None:
    sleeps: list[float] = []

    outcome = _provisioner(scripted_connector, sleeps).delete_account(target, "alice")

    assert outcome.success
    assert outcome.operation == "remove"
    assert scripted_connector.calls == ["pkill -u alice || true", "userdel -r alice"]
    assert sleeps == [0.5]


def test_delete_missing_account_is_success(scripted_connector, target) -> None:
    scripted_connector.add("userdel", 6, stderr="userdel: user 'ghost' does not exist")

    outcome = _provisioner(scripted_connector).delete_account(target, "ghost")

    assert outcome.success


def test_delete_reports_other_failures(scripted_connector, target) -> None:
    scripted_connector.add("userdel", 8, stderr="userdel: user alice is currently used by process 4242")

    outcome = _provisioner(scripted_connector).delete_account(target, "alice")

    assert not outcome.success
    assert "currently used by process" in outcome.detail


def test_lock_and_unlock_are_idempotent(scripted_connector, target) -> None:
    provisioner = _provisioner(scripted_connector)

    first = provisioner.lock(target, "alice")
    second = provisioner.lock(target, "alice")
    scripted_connector.add("usermod -U", 1, stderr="usermod: no changes")
    unlocked = provisioner.unlock(target, "alice")

    assert first.success and second.success
    assert unlocked.success
    assert scripted_connector.calls == ["usermod -L alice", "usermod -L alice", "usermod -U alice"]


def test_set_expiry_uses_chage(scripted_connector, target) -> None:
    outcome = _provisioner(scripted_connector).set_expiry(target, "alice", date(2026, 1, 31))

    assert outcome.success
    assert outcome.operation == "renew"
    assert scripted_connector.calls == ["chage -E 2026-01-31 alice"]


def test_set_secret_and_rename(scripted_connector, target) -> None:
    provisioner = _provisioner(scripted_connector)

    secret = provisioner.set_secret(target, "alice", "n3w")
    renamed = provisioner.rename_account(target, "alice", "alicia")

    assert secret.success and renamed.success
    assert scripted_connector.calls[-1] == "usermod -l alicia -d /home/alicia -m alice"
    assert scripted_connector.sensitive[0] == ("n3w",)


def test_list_accounts_builds_records(scripted_connector, target) -> None:
    records = _provisioner(_with_listing(scripted_connector)).list_accounts(target)

    by_name = {record.username: record for record in records}
    assert list(by_name) == ["alice", "bob", "carol"]

    alice = by_name["alice"]
    assert alice.kind == AccountKind.ORDINARY
    assert alice.password == "s3cret"
    assert alice.connection_limit == 2
    assert alice.expiration_date == "2025-12-26"
    assert alice.days_remaining == 30
    assert alice.is_active

    bob = by_name["bob"]
    assert bob.kind == AccountKind.TOKEN
    assert bob.password == "client-9981"
    assert bob.never_expires
    assert bob.is_blocked
    assert not bob.is_active

    carol = by_name["carol"]
    assert carol.days_remaining < 0
    assert not carol.is_active

    assert len(scripted_connector.calls) == 1 + 2 * 3


def test_list_accounts_raises_when_passwd_unreadable(scripted_connector, target) -> None:
    scripted_connector.add("cat /etc/passwd", 1, stderr="cat: /etc/passwd: Permission denied")

    with pytest.raises(OperationFailedError):
        _provisioner(scripted_connector).list_accounts(target)


def test_purge_removes_only_expired_accounts(scripted_connector, target) -> None:
    outcome = _provisioner(_with_listing(scripted_connector)).purge_expired(target)

    assert outcome.success
    assert outcome.payload == ["carol"]
    assert "userdel -r carol" in scripted_connector.calls
    assert "userdel -r alice" not in scripted_connector.calls
    assert "userdel -r bob" not in scripted_connector.calls


def test_purge_reports_partial_failures(scripted_connector, target) -> None:
    _with_listing(scripted_connector).add("userdel -r carol", 8, stderr="userdel: carol is logged in")

    outcome = _provisioner(scripted_connector).purge_expired(target)

    assert not outcome.success
    assert outcome.payload == []
    assert "carol" in outcome.detail


def test_list_connections_parses_sshd_sessions(scripted_connector, target) -> None:
    scripted_connector.add(
        "ps -eo args=",
        stdout="\n".join(
            [
                "/usr/sbin/sshd -D",
                "sshd: alice [priv]",
                "sshd: alice@pts/0",
                "sshd: alice@notty",
                "sshd-session: bob@pts/1",
            ]
        ),
    )

    records = _provisioner(scripted_connector).list_connections(target)

    assert [record.username for record in records] == ["alice", "alice", "bob"]


def test_connection_count_matches_exact_username(scripted_connector, target) -> None:
    scripted_connector.add(
        "ps -eo args=",
        stdout="\n".join(["sshd: alice@pts/0", "sshd: alice2@pts/1", "sshd: alicex@notty", "sshd: alice@notty"]),
    )

    assert _provisioner(scripted_connector).connection_count(target, "alice") == 2
    assert len(scripted_connector.calls) == 1


def test_validate_username_and_expiry_helpers() -> None:
    assert validate_username(" alice ") == "alice"
    assert format_expiry(date(2025, 12, 26)) == "2025-12-26"
    assert format_expiry("2025-12-26") == "2025-12-26"
