"""Automation of the ADMRufu interactive account menu."""

from .classifier import (
    CREATE_SUCCESS_PATTERNS,
    ERROR_PATTERNS,
    SUCCESS_PATTERNS,
    Classification,
    classify_output,
)
from .detection import MenuInstallation, detect_menu, is_menu_installed, menu_version
from .engine import MenuEngine
from .script import (
    Capture,
    Classify,
    MenuScript,
    SendField,
    SendInterrupt,
    SendLiteral,
    WaitFixed,
    WaitForPattern,
)
from .scripts import MenuOperation, MenuRequest, build_script

__all__ = [
    "build_script",
    "Capture",
    "Classification",
    "Classify",
    "classify_output",
    "CREATE_SUCCESS_PATTERNS",
    "detect_menu",
    "ERROR_PATTERNS",
    "is_menu_installed",
    "MenuEngine",
    "MenuInstallation",
    "MenuOperation",
    "MenuRequest",
    "MenuScript",
    "menu_version",
    "SendField",
    "SendInterrupt",
    "SendLiteral",
    "SUCCESS_PATTERNS",
    "WaitFixed",
    "WaitForPattern",
]
