"""Navigation scripts for the ADMRufu account menu.

Menu hierarchy, as observed on installed hosts::

    main menu
      1  ADMINISTRAR CUENTAS
           1  create account      (name, password, days)
           2  remove account      (name)
           3  renew account       (name, days)
           4  block / unblock     (name, then 1 = block, 2 = unblock)
           7  connection monitor
           9  purge expired accounts
      0  exit

Field prompts are not confirmed before typing; every field is sent after a
fixed delay.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from sshfleet.config import MenuTiming
from sshfleet.errors import ExitCode, SSHFleetError
from sshfleet.menu.classifier import CREATE_SUCCESS_PATTERNS, SUCCESS_PATTERNS
from sshfleet.menu.script import (
    Capture,
    Classify,
    MenuScript,
    SendField,
    SendLiteral,
    Step,
    WaitFixed,
)

MAIN_ACCOUNTS_OPTION = "1"
EXIT_OPTION = "0"
BLOCK_CHOICE = "1"
UNBLOCK_CHOICE = "2"
ENTER = ""


class MenuOperation(str, Enum):
    CREATE = "create"
    REMOVE = "remove"
    RENEW = "renew"
    BLOCK = "block"
    UNBLOCK = "unblock"
    LIST_CONNECTIONS = "list-connections"
    PURGE_EXPIRED = "purge-expired"


LEAF_OPTIONS: dict[MenuOperation, str] = {
    MenuOperation.CREATE: "1",
    MenuOperation.REMOVE: "2",
    MenuOperation.RENEW: "3",
    MenuOperation.BLOCK: "4",
    MenuOperation.UNBLOCK: "4",
    MenuOperation.LIST_CONNECTIONS: "7",
    MenuOperation.PURGE_EXPIRED: "9",
}


@dataclass(frozen=True)
class MenuRequest:
    operation: MenuOperation
    fields: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def create(cls, username: str, password: str, days: int) -> MenuRequest:
        return cls(MenuOperation.CREATE, {"username": username, "password": password, "days": str(days)})

    @classmethod
    def remove(cls, username: str) -> MenuRequest:
        return cls(MenuOperation.REMOVE, {"username": username})

    @classmethod
    def renew(cls, username: str, days: int) -> MenuRequest:
        return cls(MenuOperation.RENEW, {"username": username, "days": str(days)})

    @classmethod
    def block(cls, username: str) -> MenuRequest:
        return cls(MenuOperation.BLOCK, {"username": username})

    @classmethod
    def unblock(cls, username: str) -> MenuRequest:
        return cls(MenuOperation.UNBLOCK, {"username": username})

    @classmethod
    def list_connections(cls) -> MenuRequest:
        return cls(MenuOperation.LIST_CONNECTIONS)

    @classmethod
    def purge_expired(cls) -> MenuRequest:
        return cls(MenuOperation.PURGE_EXPIRED)


def _send(text: str, wait: float, label: str = "") -> tuple[Step, Step]:
    return SendLiteral(text, label=label), WaitFixed(wait)


def _navigate(operation: MenuOperation, timing: MenuTiming) -> tuple[Step, ...]:
    return (
        *_send(MAIN_ACCOUNTS_OPTION, timing.navigate_wait, "manage accounts"),
        *_send(LEAF_OPTIONS[operation], timing.navigate_wait, operation.value),
    )


def _create(timing: MenuTiming) -> MenuScript:
    return MenuScript(
        operation=MenuOperation.CREATE.value,
        steps=(
            *_navigate(MenuOperation.CREATE, timing),
            WaitFixed(timing.prompt_wait),
            SendField("username"),
            WaitFixed(timing.field_wait),
            WaitFixed(timing.field_gap),
            SendField("password", secret=True),
            WaitFixed(timing.field_wait),
            WaitFixed(timing.field_gap),
            SendField("days"),
            WaitFixed(timing.duration_wait),
            WaitFixed(timing.result_grace),
            Classify(CREATE_SUCCESS_PATTERNS, parse_created=True),
        ),
        acknowledge=_send(ENTER, timing.acknowledge_wait, "acknowledge"),
    )


def _remove(timing: MenuTiming) -> MenuScript:
    return MenuScript(
        operation=MenuOperation.REMOVE.value,
        steps=(
            *_navigate(MenuOperation.REMOVE, timing),
            WaitFixed(timing.field_gap),
            SendField("username"),
            WaitFixed(timing.lookup_wait),
            WaitFixed(timing.settle_wait),
            *_send(ENTER, timing.enter_wait, "continue"),
            Classify(SUCCESS_PATTERNS),
        ),
    )


def _renew(timing: MenuTiming) -> MenuScript:
    return MenuScript(
        operation=MenuOperation.RENEW.value,
        steps=(
            *_navigate(MenuOperation.RENEW, timing),
            WaitFixed(timing.field_gap),
            SendField("username"),
            WaitFixed(timing.lookup_wait),
            WaitFixed(timing.field_gap),
            SendField("days"),
            WaitFixed(timing.lookup_wait),
            WaitFixed(timing.settle_wait),
            *_send(ENTER, timing.enter_wait, "continue"),
            Classify(SUCCESS_PATTERNS),
        ),
    )


def _toggle_block(operation: MenuOperation, choice: str, timing: MenuTiming) -> MenuScript:
    return MenuScript(
        operation=operation.value,
        steps=(
            *_navigate(operation, timing),
            WaitFixed(timing.field_gap),
            SendField("username"),
            WaitFixed(timing.lookup_wait),
            WaitFixed(timing.field_gap),
            *_send(choice, timing.confirm_wait, operation.value),
            WaitFixed(timing.field_gap),
            *_send(ENTER, timing.enter_wait, "continue"),
            Classify(SUCCESS_PATTERNS),
        ),
    )


def _list_connections(timing: MenuTiming) -> MenuScript:
    return MenuScript(
        operation=MenuOperation.LIST_CONNECTIONS.value,
        steps=(
            *_navigate(MenuOperation.LIST_CONNECTIONS, timing),
            WaitFixed(timing.monitor_wait),
            Capture("connections"),
        ),
    )


def _purge_expired(timing: MenuTiming) -> MenuScript:
    return MenuScript(
        operation=MenuOperation.PURGE_EXPIRED.value,
        steps=(
            *_navigate(MenuOperation.PURGE_EXPIRED, timing),
            WaitFixed(timing.purge_wait),
            *_send(ENTER, timing.enter_wait, "continue"),
            Classify(SUCCESS_PATTERNS),
        ),
    )


def build_script(operation: MenuOperation, timing: MenuTiming | None = None) -> MenuScript:
    timing = timing or MenuTiming()
    if operation == MenuOperation.CREATE:
        return _create(timing)
    if operation == MenuOperation.REMOVE:
        return _remove(timing)
    if operation == MenuOperation.RENEW:
        return _renew(timing)
    if operation == MenuOperation.BLOCK:
        return _toggle_block(operation, BLOCK_CHOICE, timing)
    if operation == MenuOperation.UNBLOCK:
        return _toggle_block(operation, UNBLOCK_CHOICE, timing)
    if operation == MenuOperation.LIST_CONNECTIONS:
        return _list_connections(timing)
    if operation == MenuOperation.PURGE_EXPIRED:
        return _purge_expired(timing)
    raise SSHFleetError(
        f"Unsupported menu operation: {operation}",
        code=ExitCode.VALIDATION_ERROR,
        hint="Use one of: " + ", ".join(item.value for item in MenuOperation),
    )
