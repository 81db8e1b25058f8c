"""Fan-out of one account operation across several hosts."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from typing_extensions import TypedDict

from sshfleet import constants
from sshfleet.errors import ExitCode
from sshfleet.models import OperationOutcome, OperationStatus
from sshfleet.transport import RemoteTarget

logger = py_logging.getLogger(__name__)

FleetAction = Callable[[RemoteTarget], OperationOutcome]


class FailureSummary(TypedDict):
    target: str
    error_kind: str | None
    detail: str


@dataclass
class FleetResult:
    operation: str
    outcomes: list[OperationOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return any(outcome.success for outcome in self.outcomes)

    @property
    def failures(self) -> list[OperationOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    @property
    def status(self) -> str:
        if not self.outcomes:
            return "empty"
        if not self.failures:
            return OperationStatus.SUCCESS.value
        if self.success:
            return "partial-failure"
        if all(outcome.status == OperationStatus.NO_CONFIRMATION for outcome in self.outcomes):
            return OperationStatus.NO_CONFIRMATION.value
        return OperationStatus.FAILED.value

    @property
    def exit_code(self) -> ExitCode:
        status = self.status
        if status in {OperationStatus.SUCCESS.value, "empty"}:
            return ExitCode.SUCCESS
        if status == "partial-failure":
            return ExitCode.PARTIAL_FAILURE
        if status == OperationStatus.NO_CONFIRMATION.value:
            return ExitCode.NO_CONFIRMATION
        return ExitCode.OPERATION_FAILED

    def failure_summary(self) -> list[FailureSummary]:
        return [
            FailureSummary(
                target=outcome.target,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                detail=outcome.detail,
            )
            for outcome in self.failures
        ]

    def to_dict(self, *, include_output: bool = False) -> dict[str, object]:
        return {
            "operation": self.operation,
            "status": self.status,
            "success": self.success,
            "targets": [outcome.to_dict(include_output=include_output) for outcome in self.outcomes],
            "failures": self.failure_summary(),
        }


def _run_one(operation: str, target: RemoteTarget, action: FleetAction) -> OperationOutcome:
    try:
        return action(target)
    except Exception as exc:
        logger.error("fleet-target-failed operation=%s host=%s error=%s", operation, target.label, exc)
        return OperationOutcome.from_error(operation, target.label, exc)


def run_across(
    operation: str,
    targets: Sequence[RemoteTarget],
    action: FleetAction,
    *,
    max_workers: int = constants.DEFAULT_FLEET_WORKERS,
) -> FleetResult:
    """Run ``action`` once per target, each on its own worker thread.

    Targets share nothing; a failure on one host never stops the others and
    is reported as that host's outcome.
    """
    result = FleetResult(operation=operation)
    if not targets:
        return result

    workers = max(1, min(max_workers, len(targets)))
    logger.info("fleet-start operation=%s targets=%s workers=%s", operation, len(targets), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sshfleet") as pool:
        futures = [pool.submit(_run_one, operation, target, action) for target in targets]
        result.outcomes = [future.result() for future in futures]

    logger.info(
        "fleet-done operation=%s status=%s failed=%s",
        operation,
        result.status,
        len(result.failures),
    )
    return result
