"""Interactive terminal session package."""

from .models import StepResult
from .session import TerminalSession

__all__ = [
    "StepResult",
    "TerminalSession",
]
