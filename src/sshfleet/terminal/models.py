"""Terminal session step models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StepResult:
    """Output appended to the session buffer during one wait."""

    text: str
    elapsed: float
    matched: bool
    offset: int
    pattern: str | None = None

    @property
    def timed_out(self) -> bool:
        return self.pattern is not None and not self.matched
