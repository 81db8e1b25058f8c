"""Presence and version checks for the menu program."""

from __future__ import annotations

import logging as py_logging
import shlex
from dataclasses import dataclass

from sshfleet import constants
from sshfleet.transport import RemoteTarget, SSHConnector

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class MenuInstallation:
    installed: bool
    version: str = ""


def is_menu_installed(connector: SSHConnector, target: RemoteTarget) -> bool:
    command = f"test -d {shlex.quote(constants.MENU_INSTALL_DIR)} && echo installed || echo not_installed"
    result = connector.run_once(target, command)
    return result.stdout.strip() == "installed"


def menu_version(connector: SSHConnector, target: RemoteTarget) -> str:
    result = connector.run_once(target, f"cat {shlex.quote(constants.MENU_VERSION_FILE)}")
    if not result.ok:
        return ""
    return result.stdout.strip()


def detect_menu(connector: SSHConnector, target: RemoteTarget) -> MenuInstallation:
    if not is_menu_installed(connector, target):
        logger.info("menu-detect host=%s installed=false", target.label)
        return MenuInstallation(installed=False)
    version = menu_version(connector, target)
    logger.info("menu-detect host=%s installed=true version=%s", target.label, version or "-")
    return MenuInstallation(installed=True, version=version)
