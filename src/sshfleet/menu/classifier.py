"""Keyword classification of captured menu output."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sshfleet.models import OperationStatus
from sshfleet.security import strip_ansi

ERROR_PATTERNS: tuple[str, ...] = (
    r"error",
    r"fall[oó]",
    r"fail",
    r"no existe",
    r"n[aã]o existe",
    r"ya existe",
    r"j[aá] existe",
    r"inv[aá]lido",
    r"incorrecto",
    r"already exists",
    r"does not exist",
)

SUCCESS_PATTERNS: tuple[str, ...] = (
    r"exitosamente",
    r"creado correctamente",
    r"success",
    r"completado",
    r"criado",
    r"renovado",
    r"removido",
    r"bloqueado",
    r"desbloqueado",
)

CREATE_SUCCESS_PATTERNS: tuple[str, ...] = (
    r"USUARIO GENERADO CON EXITO",
    r"TOKEN",
    r"IP DEL SERVIDOR",
    r"criado com sucesso",
    r"created successfully",
)


@dataclass(frozen=True)
class Classification:
    verdict: OperationStatus
    matched_line: str = ""
    success_hits: tuple[str, ...] = ()
    error_hits: tuple[str, ...] = ()


def _compile(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


def _hits(compiled: Sequence[re.Pattern[str]], text: str) -> tuple[str, ...]:
    return tuple(pattern.pattern for pattern in compiled if pattern.search(text))


def _last_matching_line(compiled: Sequence[re.Pattern[str]], text: str) -> str:
    for line in reversed(text.splitlines()):
        if any(pattern.search(line) for pattern in compiled):
            return line.strip()
    return ""


def classify_output(
    text: str,
    success_patterns: Iterable[str] = SUCCESS_PATTERNS,
    error_patterns: Iterable[str] = ERROR_PATTERNS,
) -> Classification:
    """Resolve captured output to success, failed or no-confirmation.

    Both pattern sets are checked independently. Any error hit makes the
    verdict ``failed`` even when success keywords are also present.
    """
    cleaned = strip_ansi(text).replace("\r", "")
    errors = _compile(error_patterns)
    successes = _compile(success_patterns)
    error_hits = _hits(errors, cleaned)
    success_hits = _hits(successes, cleaned)

    if error_hits:
        return Classification(
            verdict=OperationStatus.FAILED,
            matched_line=_last_matching_line(errors, cleaned),
            success_hits=success_hits,
            error_hits=error_hits,
        )
    if success_hits:
        return Classification(verdict=OperationStatus.SUCCESS, success_hits=success_hits)
    return Classification(verdict=OperationStatus.NO_CONFIRMATION)
