"""Local line-echo emulation used when no remote process is reachable."""

from __future__ import annotations

import logging as py_logging

from termsession.errors import InvalidStateError
from termsession.terminal.models import KEY_CODE_BACKSPACE, KEY_CODE_ENTER, KeyEvent
from termsession.terminal.surface import TerminalSurface

logger = py_logging.getLogger(__name__)

PROMPT = "\r\n$ "
PROMPT_GUARD_COLUMN = 2
WELCOME_BANNER = (
    "Welcome to termsession",
    "This is a local terminal emulation, without a real terminal in the back-end.",
    "Type some keys and commands to play around.",
    "",
)


class LocalEcho:
    def __init__(self, terminal: TerminalSurface) -> None:
        self._terminal = terminal
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if self._installed:
            raise InvalidStateError(
                "Local echo is already installed.",
                hint="Install the fallback emulation once per terminal.",
            )
        self._installed = True
        for line in WELCOME_BANNER:
            self._terminal.writeln(line)
        self.prompt()
        self._terminal.register(self._terminal.on_key(self.handle_key))
        logger.debug("Local echo installed")

    def prompt(self) -> None:
        self._terminal.write(PROMPT)

    def handle_key(self, event: KeyEvent) -> None:
        if event.key_code == KEY_CODE_ENTER:
            self.prompt()
        elif event.key_code == KEY_CODE_BACKSPACE:
            if self._terminal.cursor_x > PROMPT_GUARD_COLUMN:
                self._terminal.write("\b \b")
        elif event.printable:
            self._terminal.write(event.key)
