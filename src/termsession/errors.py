"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    TRANSPORT_ERROR = 5
    VALIDATION_ERROR = 6
    INVALID_STATE = 7


@dataclass
class TermSessionError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class InvalidStateError(TermSessionError):
    """Logic fault raised for operations that do not fit the current state."""

    code: ExitCode = ExitCode.INVALID_STATE


@dataclass
class BackendError(TermSessionError):
    """Process backend or streaming connection failure."""

    code: ExitCode = ExitCode.TRANSPORT_ERROR


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
