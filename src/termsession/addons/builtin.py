"""Capability addons that can be loaded into a terminal surface."""

from __future__ import annotations

import asyncio
import logging as py_logging
import math
import re
from collections.abc import Callable
from typing import Any

import aiohttp
from typing_extensions import TypedDict

from termsession.errors import InvalidStateError
from termsession.presentation import Element
from termsession.terminal.disposables import DisposableStore
from termsession.terminal.surface import TerminalSurface

logger = py_logging.getLogger(__name__)

MINIMUM_COLS = 2
MINIMUM_ROWS = 1
_URL_PATTERN = re.compile(r"https?://[^\s\"'<>()\[\]{}]+")


class SearchOptions(TypedDict, total=False):
    regex: bool
    whole_word: bool
    case_sensitive: bool
    incremental: bool


class AddonBase:
    def __init__(self) -> None:
        self._terminal: TerminalSurface | None = None
        self._store = DisposableStore()

    @property
    def terminal(self) -> TerminalSurface:
        if self._terminal is None:
            raise InvalidStateError(
                f"{type(self).__name__} is not attached to a terminal.",
                hint="Load the addon into a terminal before using it.",
            )
        return self._terminal

    def activate(self, terminal: TerminalSurface) -> None:
        self._terminal = terminal

    def dispose(self) -> None:
        self._store.dispose()
        self._terminal = None


class AttachAddon(AddonBase):
    """Bridges terminal input and output to a websocket byte stream."""

    def __init__(
        self,
        socket: aiohttp.ClientWebSocketResponse,
        *,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        super().__init__()
        self.socket = socket
        self._on_close = on_close
        self._reader: asyncio.Task[Any] | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._disposed = False

    def activate(self, terminal: TerminalSurface) -> None:
        super().activate(terminal)
        self._store.add(terminal.on_data(self._send))
        self._reader = asyncio.get_running_loop().create_task(self._pump())

    def _send(self, data: str) -> None:
        if self.socket.closed:
            return
        self._track(asyncio.get_running_loop().create_task(self.socket.send_str(data)))

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Socket write failed: %s", task.exception())

    async def _pump(self) -> None:
        try:
            async for message in self.socket:
                if self._terminal is None:
                    break
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._terminal.write(message.data)
                elif message.type == aiohttp.WSMsgType.BINARY:
                    self._terminal.write(message.data.decode("utf-8", errors="replace"))
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.debug("Socket reported error: %s", self.socket.exception())
                    break
        except aiohttp.ClientError as exc:
            logger.debug("Socket read failed: %s", exc)
        finally:
            if not self._disposed and self._on_close is not None:
                self._on_close()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
        super().dispose()
        if not self.socket.closed:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running loop; socket close skipped")
            else:
                self._track(loop.create_task(self.socket.close()))


class FitAddon(AddonBase):
    def propose_dimensions(self) -> tuple[int, int] | None:
        terminal = self.terminal
        element = terminal.element
        if element is None or element.parent is None:
            return None
        parent_width = _px(element.parent.style.get("width"))
        parent_height = _px(element.parent.style.get("height"))
        if parent_width is None or parent_height is None:
            return None
        padding = _px(element.style.get("padding")) or 0.0
        dims = terminal.dimensions
        available_width = parent_width - 2 * padding - dims.scrollbar_width
        available_height = parent_height - 2 * padding
        cols = max(MINIMUM_COLS, math.floor(available_width / dims.actual_cell_width))
        rows = max(MINIMUM_ROWS, math.floor(available_height / dims.actual_cell_height))
        return cols, rows

    def fit(self) -> None:
        proposed = self.propose_dimensions()
        if proposed is None:
            return
        cols, rows = proposed
        if (cols, rows) != (self.terminal.cols, self.terminal.rows):
            self.terminal.resize(cols, rows)


class SearchAddon(AddonBase):
    def __init__(self) -> None:
        super().__init__()
        self._last: tuple[int, int, int] | None = None

    def find_next(self, term: str, options: SearchOptions | None = None) -> bool:
        return self._find(term, options or {}, forward=True)

    def find_previous(self, term: str, options: SearchOptions | None = None) -> bool:
        return self._find(term, options or {}, forward=False)

    def _find(self, term: str, options: SearchOptions, *, forward: bool) -> bool:
        matches = self._matches(term, options)
        if not matches:
            self._last = None
            return False
        incremental = options.get("incremental", False)
        chosen = matches[0] if forward else matches[-1]
        if self._last is not None:
            origin = self._last[:2]
            if forward:
                ahead = [m for m in matches if (m[:2] >= origin if incremental else m[:2] > origin)]
                chosen = ahead[0] if ahead else matches[0]
            else:
                behind = [m for m in matches if (m[:2] <= origin if incremental else m[:2] < origin)]
                chosen = behind[-1] if behind else matches[-1]
        self._last = chosen
        self.terminal.select(*chosen)
        return True

    def _matches(self, term: str, options: SearchOptions) -> list[tuple[int, int, int]]:
        if not term:
            return []
        source = term if options.get("regex", False) else re.escape(term)
        if options.get("whole_word", False):
            source = rf"\b(?:{source})\b"
        flags = 0 if options.get("case_sensitive", False) else re.IGNORECASE
        try:
            pattern = re.compile(source, flags)
        except re.error as exc:
            logger.debug("Invalid search pattern %r: %s", term, exc)
            return []
        found: list[tuple[int, int, int]] = []
        for row, line in enumerate(self.terminal.buffer_lines()):
            for match in pattern.finditer(line):
                if match.end() > match.start():
                    found.append((row, match.start(), match.end() - match.start()))
        return found


class WebLinksAddon(AddonBase):
    def __init__(self, handler: Callable[[str], None] | None = None) -> None:
        super().__init__()
        self._handler = handler or _log_link

    def links(self) -> list[tuple[int, str]]:
        return [
            (row, match.group(0))
            for row, line in enumerate(self.terminal.buffer_lines())
            for match in _URL_PATTERN.finditer(line)
        ]

    def open_link(self, url: str) -> None:
        self._handler(url)


class WebglAddon(AddonBase):
    def __init__(self) -> None:
        super().__init__()
        self.texture_atlas = Element("texture-atlas", text="webgl texture atlas")
        self.texture_atlas.classes.add("canvas")


class Unicode11Addon(AddonBase):
    VERSION = "11"

    def __init__(self) -> None:
        super().__init__()
        self._previous: str | None = None

    def activate(self, terminal: TerminalSurface) -> None:
        super().activate(terminal)
        if hasattr(terminal, "unicode_version"):
            self._previous = terminal.unicode_version  # type: ignore[attr-defined]
            terminal.unicode_version = self.VERSION  # type: ignore[attr-defined]

    def dispose(self) -> None:
        if self._terminal is not None and self._previous is not None:
            self._terminal.unicode_version = self._previous  # type: ignore[attr-defined]
        super().dispose()


def _log_link(url: str) -> None:
    logger.info("Link activated url=%s", url)


def _px(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value.strip().removesuffix("px"))
    except ValueError:
        return None
