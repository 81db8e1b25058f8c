"""Interactive SSH shell channel with an append-only output buffer."""

from __future__ import annotations

import codecs
import logging as py_logging
import re
import time
from collections.abc import Callable
from contextlib import suppress

import paramiko

from sshfleet import constants
from sshfleet.errors import ConnectionFailureKind, ExitCode, SSHConnectionError, SSHFleetError
from sshfleet.security import sanitize_terminal_log_text, strip_ansi
from sshfleet.terminal.models import StepResult

logger = py_logging.getLogger(__name__)

PatternLike = str | re.Pattern[str]


class TerminalSession:
    """One interactive shell, owned by exactly one automation call.

    The buffer only grows. Each wait records the buffer length at entry and
    returns what was appended after it, while patterns are matched against
    the whole buffer so a prompt split across reads is still recognized.
    """

    def __init__(
        self,
        channel: paramiko.Channel,
        *,
        client: paramiko.SSHClient | None = None,
        label: str = "",
        poll_interval: float = constants.SHELL_POLL_INTERVAL_SECONDS,
        read_chunk: int = constants.SHELL_READ_CHUNK_BYTES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._channel = channel
        self._client = client
        self.label = label
        self._poll_interval = poll_interval
        self._read_chunk = read_chunk
        self._clock = clock
        self._sleep = sleep
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._output = ""
        self._sensitive: set[str] = set()
        self._closed = False
        self._eof = False
        self.created_at = time.time()

    def __enter__(self) -> TerminalSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def output(self) -> str:
        return self._output

    @property
    def offset(self) -> int:
        return len(self._output)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def alive(self) -> bool:
        if self._closed or self._eof:
            return False
        return not bool(getattr(self._channel, "closed", False))

    def redact(self, *values: str) -> None:
        """Register values that must never appear in logged terminal text."""
        self._sensitive.update(value for value in values if value)

    def write(self, payload: str) -> None:
        if self._closed:
            raise SSHFleetError(
                f"Terminal session already closed: {self.label}",
                code=ExitCode.RUNTIME_ERROR,
                hint="Open a new interactive session.",
            )
        try:
            self._channel.sendall(payload.encode("utf-8"))
        except (OSError, EOFError, paramiko.SSHException) as exc:
            self._eof = True
            raise SSHConnectionError(
                f"Failed to write to terminal {self.label}.",
                kind=ConnectionFailureKind.CHANNEL,
                hint=str(exc) or "The remote shell closed the channel.",
            ) from exc

    def send(self, text: str) -> None:
        logger.debug(
            "terminal-send host=%s text=%s",
            self.label,
            sanitize_terminal_log_text(text, sensitive=self._sensitive) or "<enter>",
        )
        self.write(f"{text}\n")

    def interrupt(self) -> None:
        # Ctrl+C passthrough for interactive shells.
        self.write("\x03")

    def await_output(self, timeout: float, pattern: PatternLike | None = None) -> StepResult:
        """Wait until ``pattern`` matches the buffer or ``timeout`` seconds pass.

        Without a pattern this is a fixed delay that still collects output.
        Reaching the timeout without a match is a normal return.
        """
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        start = self._clock()
        deadline = start + max(0.0, timeout)
        offset = len(self._output)
        matched = False

        while True:
            self._pump()
            if compiled is not None and compiled.search(strip_ansi(self._output)):
                matched = True
                break
            now = self._clock()
            if now >= deadline or not self.alive:
                break
            self._sleep(min(self._poll_interval, deadline - now))

        elapsed = self._clock() - start
        text = self._output[offset:]
        logger.debug(
            "terminal-await host=%s pattern=%s matched=%s elapsed=%.2f new=%s",
            self.label,
            compiled.pattern if compiled is not None else "-",
            matched,
            elapsed,
            sanitize_terminal_log_text(text, sensitive=self._sensitive),
        )
        return StepResult(
            text=text,
            elapsed=elapsed,
            matched=matched,
            offset=offset,
            pattern=compiled.pattern if compiled is not None else None,
        )

    def close(self, *, graceful: bool = True) -> None:
        if self._closed:
            return
        if graceful and self.alive:
            with suppress(Exception):
                self._channel.sendall(b"exit\n")
        self._closed = True
        with suppress(Exception):
            self._channel.close()
        if self._client is not None:
            with suppress(Exception):
                self._client.close()
        logger.debug(
            "terminal-closed host=%s lifetime=%.1fs buffered=%s",
            self.label,
            time.time() - self.created_at,
            len(self._output),
        )

    def _pump(self) -> None:
        if self._closed or self._eof:
            return
        try:
            while self._channel.recv_ready():
                chunk = self._channel.recv(self._read_chunk)
                if not chunk:
                    self._eof = True
                    break
                self._output += self._decoder.decode(chunk)
            if not self._eof and getattr(self._channel, "eof_received", False) and not self._channel.recv_ready():
                self._eof = True
        except (OSError, EOFError, paramiko.SSHException) as exc:
            logger.warning("terminal-read-failed host=%s error=%s", self.label, exc)
            self._eof = True
        if self._eof:
            self._output += self._decoder.decode(b"", final=True)
