"""Terminal session domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

KEY_CODE_BACKSPACE = 8
KEY_CODE_ENTER = 13


class ConnectionState(str, Enum):
    PROVISIONING = "provisioning"
    CONNECTED = "connected"
    FAILED = "failed"
    LOCAL_FALLBACK = "local-fallback"


@dataclass(frozen=True)
class TerminalSize:
    cols: int
    rows: int


@dataclass(frozen=True)
class KeyEvent:
    key: str
    key_code: int = 0
    alt: bool = False
    ctrl: bool = False
    meta: bool = False

    @property
    def printable(self) -> bool:
        return not (self.alt or self.ctrl or self.meta)

    @classmethod
    def from_char(cls, char: str) -> KeyEvent:
        if char in ("\r", "\n"):
            return cls(key="\r", key_code=KEY_CODE_ENTER)
        if char in ("\b", "\x7f"):
            return cls(key="\x7f", key_code=KEY_CODE_BACKSPACE)
        if char and ord(char[0]) < 32:
            return cls(key=char, key_code=ord(char[0]) + 64, ctrl=True)
        return cls(key=char, key_code=ord(char[0]) if char else 0)


@dataclass
class SessionRecord:
    process_id: str = ""
    socket_url: str = ""
    connection_state: ConnectionState = ConnectionState.PROVISIONING
