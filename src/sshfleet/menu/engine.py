"""Scripted driver for the remote account menu."""

from __future__ import annotations

import logging as py_logging
import re
from collections.abc import Iterable
from contextlib import suppress

from sshfleet.config import MenuSettings
from sshfleet.errors import ExitCode, MenuUnreachableError, SSHFleetError
from sshfleet.menu.classifier import classify_output
from sshfleet.menu.script import (
    Capture,
    Classify,
    MenuScript,
    SendField,
    SendInterrupt,
    SendLiteral,
    Step,
    WaitFixed,
    WaitForPattern,
)
from sshfleet.menu.scripts import EXIT_OPTION, MenuRequest, build_script
from sshfleet.models import OperationOutcome, OperationStatus, ProvisionPath
from sshfleet.parsing import parse_connection_monitor, parse_created_account
from sshfleet.security import sanitize_terminal_log_text, strip_ansi
from sshfleet.terminal import TerminalSession
from sshfleet.transport import RemoteTarget, SSHConnector

logger = py_logging.getLogger(__name__)


class MenuEngine:
    """Runs one menu script per call on a dedicated interactive session."""

    def __init__(self, connector: SSHConnector, settings: MenuSettings | None = None) -> None:
        self.connector = connector
        self.settings = settings or MenuSettings()
        self._banner = re.compile("|".join(f"(?:{pattern})" for pattern in self.settings.banner_patterns))

    def run(self, target: RemoteTarget, request: MenuRequest) -> OperationOutcome:
        script = build_script(request.operation, self.settings.timing)
        missing = [name for name in script.fields if not str(request.fields.get(name, "")).strip()]
        if missing:
            raise SSHFleetError(
                f"Missing values for {script.operation}: {', '.join(missing)}",
                code=ExitCode.VALIDATION_ERROR,
            )

        logger.info("menu-run host=%s operation=%s", target.label, script.operation)
        with self.connector.open_interactive(target) as session:
            session.redact(*(str(request.fields[name]) for name in script.secret_fields))
            try:
                start = self._launch(session)
                outcome = self._execute(session, script, request, target, start)
                if outcome.success and script.acknowledge:
                    self._run_steps(session, script.acknowledge, request)
            finally:
                if session.alive:
                    with suppress(SSHFleetError):
                        self._exit_menu(session)

        logger.info(
            "menu-run-done host=%s operation=%s status=%s detail=%s",
            target.label,
            script.operation,
            outcome.status.value,
            outcome.detail,
        )
        return outcome

    def _launch(self, session: TerminalSession) -> int:
        """Start the menu program and return the buffer offset it started at."""
        timing = self.settings.timing
        session.send("clear")
        session.await_output(timing.clear_wait)
        start = session.offset
        for command in self.settings.commands:
            session.send(command)
            step = session.await_output(timing.launch_timeout, self._banner)
            if step.matched:
                logger.debug("menu-launched host=%s command=%s elapsed=%.2f", session.label, command, step.elapsed)
                return start
            logger.debug("menu-launch-miss host=%s command=%s", session.label, command)

        raise MenuUnreachableError(
            f"Menu did not start on {session.label}.",
            hint="Verify ADMRufu is installed and reachable via: " + ", ".join(self.settings.commands),
            attempts=list(self.settings.commands),
        )

    def _run_steps(self, session: TerminalSession, steps: tuple[Step, ...], request: MenuRequest) -> None:
        for step in steps:
            if isinstance(step, SendLiteral):
                session.send(step.text)
            elif isinstance(step, SendField):
                session.send(str(request.fields[step.name]))
            elif isinstance(step, SendInterrupt):
                session.interrupt()
            elif isinstance(step, WaitFixed):
                session.await_output(step.seconds)
            elif isinstance(step, WaitForPattern):
                result = session.await_output(step.timeout, step.pattern)
                if result.timed_out:
                    logger.warning("menu-prompt-missing host=%s pattern=%s", session.label, step.pattern)

    def _execute(
        self,
        session: TerminalSession,
        script: MenuScript,
        request: MenuRequest,
        target: RemoteTarget,
        start: int,
    ) -> OperationOutcome:
        self._run_steps(session, script.steps[:-1], request)
        final = script.steps[-1]
        captured = session.output[start:]

        if isinstance(final, Capture):
            records = parse_connection_monitor(captured)
            return OperationOutcome.succeeded(
                script.operation,
                target.label,
                raw_output=captured,
                payload=records,
                path=ProvisionPath.MENU,
            )

        if not isinstance(final, Classify):
            raise SSHFleetError(
                f"Script for {script.operation} must end with a classify or capture step.",
                code=ExitCode.RUNTIME_ERROR,
            )
        cleaned = strip_ansi(captured).replace("\r", "")
        visible = _mask_echo(cleaned, request.fields.values())
        verdict = classify_output(visible, final.success_patterns)
        detail = _original_line(cleaned, visible, verdict.matched_line)
        if verdict.verdict == OperationStatus.FAILED:
            logger.error(
                "menu-operation-failed host=%s operation=%s line=%s",
                target.label,
                script.operation,
                sanitize_terminal_log_text(
                    detail,
                    sensitive=[str(request.fields[name]) for name in script.secret_fields],
                ),
            )
            return OperationOutcome.failed(
                script.operation,
                target.label,
                detail or "The menu reported an error.",
                raw_output=captured,
                path=ProvisionPath.MENU,
            )
        if verdict.verdict == OperationStatus.NO_CONFIRMATION:
            logger.warning("menu-no-confirmation host=%s operation=%s", target.label, script.operation)
            return OperationOutcome.unconfirmed(
                script.operation,
                target.label,
                raw_output=captured,
                path=ProvisionPath.MENU,
            )

        payload = parse_created_account(captured) if final.parse_created else None
        return OperationOutcome.succeeded(
            script.operation,
            target.label,
            raw_output=captured,
            payload=payload,
            path=ProvisionPath.MENU,
        )

    def _exit_menu(self, session: TerminalSession) -> None:
        timing = self.settings.timing
        session.send(EXIT_OPTION)
        session.await_output(timing.exit_wait)
        session.interrupt()
        session.await_output(timing.interrupt_wait)


def _mask_echo(text: str, values: Iterable[str]) -> str:
    """Blank out the terminal's echo of typed field values.

    Only whole whitespace-delimited tokens are replaced, so a value that is
    part of a longer menu word leaves that word intact.
    """
    masked = text
    for value in sorted({value for value in values if value.strip()}, key=len, reverse=True):
        masked = re.sub(rf"(?<!\S){re.escape(value)}(?!\S)", "***", masked)
    return masked


def _original_line(cleaned: str, masked: str, matched: str) -> str:
    if not matched:
        return ""
    for original, line in zip(reversed(cleaned.splitlines()), reversed(masked.splitlines())):
        if line.strip() == matched:
            return original.strip()
    return matched
