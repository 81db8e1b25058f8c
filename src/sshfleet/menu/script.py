"""Typed steps for scripted menu dialogues."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from sshfleet.errors import ExitCode, SSHFleetError


@dataclass(frozen=True)
class SendLiteral:
    text: str
    label: str = ""


@dataclass(frozen=True)
class SendField:
    name: str
    secret: bool = False


@dataclass(frozen=True)
class SendInterrupt:
    pass


@dataclass(frozen=True)
class WaitFixed:
    seconds: float


@dataclass(frozen=True)
class WaitForPattern:
    pattern: str
    timeout: float


@dataclass(frozen=True)
class Classify:
    success_patterns: tuple[str, ...]
    parse_created: bool = False


@dataclass(frozen=True)
class Capture:
    """Finish with the captured screen as payload instead of a keyword verdict."""

    parser: str = "connections"


Step = Union[SendLiteral, SendField, SendInterrupt, WaitFixed, WaitForPattern, Classify, Capture]
TerminalStep = (Classify, Capture)


@dataclass(frozen=True)
class MenuScript:
    operation: str
    steps: tuple[Step, ...]
    acknowledge: tuple[Step, ...] = ()

    def __post_init__(self) -> None:
        if not self.steps or not isinstance(self.steps[-1], TerminalStep):
            raise SSHFleetError(
                f"Menu script for {self.operation} must end with a classify or capture step.",
                code=ExitCode.VALIDATION_ERROR,
            )
        for step in self.steps[:-1] + self.acknowledge:
            if isinstance(step, TerminalStep):
                raise SSHFleetError(
                    f"Menu script for {self.operation} has a verdict step before the end.",
                    code=ExitCode.VALIDATION_ERROR,
                )

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps if isinstance(step, SendField))

    @property
    def secret_fields(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps if isinstance(step, SendField) and step.secret)

    @property
    def planned_wait(self) -> float:
        """Upper bound of time spent waiting in the main steps."""
        total = 0.0
        for step in self.steps:
            if isinstance(step, WaitFixed):
                total += step.seconds
            elif isinstance(step, WaitForPattern):
                total += step.timeout
        return total
