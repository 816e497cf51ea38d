"""Narrow terminal surface contract and a headless engine implementing it."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TextIO

from termsession.errors import ExitCode, InvalidStateError, TermSessionError
from termsession.presentation import Element
from termsession.terminal.disposables import Disposable, DisposableHandle, DisposableStore, EventEmitter
from termsession.terminal.models import KeyEvent, TerminalSize

logger = py_logging.getLogger(__name__)

DEFAULT_OPTIONS: dict[str, object] = {
    "allowTransparency": False,
    "bellSound": "data:audio/wav;base64,",
    "bellStyle": "none",
    "cancelEvents": False,
    "cols": 80,
    "convertEol": False,
    "cursorBlink": False,
    "cursorStyle": "block",
    "disableStdin": False,
    "drawBoldTextInBrightColors": True,
    "fastScrollModifier": "alt",
    "fastScrollSensitivity": 5,
    "fontFamily": "courier-new, courier, monospace",
    "fontSize": 15,
    "fontWeight": "normal",
    "fontWeightBold": "bold",
    "letterSpacing": 0,
    "lineHeight": 1.0,
    "logLevel": "info",
    "macOptionClickForcesSelection": False,
    "macOptionIsMeta": False,
    "minimumContrastRatio": 1,
    "rendererType": "canvas",
    "rightClickSelectsWord": False,
    "rows": 24,
    "screenKeys": False,
    "screenReaderMode": False,
    "scrollSensitivity": 1,
    "scrollback": 1000,
    "tabStopWidth": 8,
    "termName": "xterm",
    "theme": {},
    "useFlowControl": False,
    "windowsMode": False,
    "wordSeparator": " ()[]{}',\"`",
}


@dataclass(frozen=True)
class RenderDimensions:
    actual_cell_width: float = 9.0
    actual_cell_height: float = 17.0
    scrollbar_width: float = 15.0


class Addon(Protocol):
    def activate(self, terminal: TerminalSurface) -> None: ...

    def dispose(self) -> None: ...


class TerminalSurface(Protocol):
    initialized: bool

    @property
    def cols(self) -> int: ...

    @property
    def rows(self) -> int: ...

    @property
    def disposed(self) -> bool: ...

    @property
    def element(self) -> Element | None: ...

    @property
    def dimensions(self) -> RenderDimensions: ...

    @property
    def cursor_x(self) -> int: ...

    def option_names(self) -> list[str]: ...

    def get_option(self, name: str) -> object: ...

    def set_option(self, name: str, value: object) -> None: ...

    def open(self, container: Element) -> None: ...

    def focus(self) -> None: ...

    def write(self, data: str) -> None: ...

    def writeln(self, data: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def load_addon(self, addon: Addon) -> None: ...

    def unload_addon(self, addon: Addon) -> None: ...

    def register(self, item: Disposable | Callable[[], None]) -> DisposableHandle: ...

    def on_resize(self, listener: Callable[[TerminalSize], None]) -> DisposableHandle: ...

    def on_key(self, listener: Callable[[KeyEvent], None]) -> DisposableHandle: ...

    def on_data(self, listener: Callable[[str], None]) -> DisposableHandle: ...

    def buffer_lines(self) -> list[str]: ...

    def select(self, row: int, col: int, length: int) -> None: ...

    def dispose(self) -> None: ...


SurfaceFactory = Callable[[dict[str, object]], TerminalSurface]


class HeadlessTerminal:
    """In-memory surface tracking options, geometry and a plain text buffer.

    Escape sequences are passed through to the output stream untouched; the
    buffer only follows printable characters, carriage returns, line feeds and
    backspaces, which is enough for cursor-column decisions and text search.
    """

    def __init__(
        self,
        options: dict[str, object] | None = None,
        *,
        stream: TextIO | None = None,
        dimensions: RenderDimensions | None = None,
    ) -> None:
        self._options = dict(DEFAULT_OPTIONS)
        for name, value in (options or {}).items():
            self._require_option(name)
            self._options[name] = value
        self.initialized = False
        self.focused = False
        self.selection: tuple[int, int, int] | None = None
        self.unicode_version = "6"
        self._stream = stream
        self._dimensions = dimensions or RenderDimensions()
        self._element: Element | None = None
        self._disposed = False
        self._store = DisposableStore()
        self._addons: list[Addon] = []
        self._resize_events: EventEmitter[TerminalSize] = EventEmitter()
        self._key_events: EventEmitter[KeyEvent] = EventEmitter()
        self._data_events: EventEmitter[str] = EventEmitter()
        self._lines: list[str] = [""]
        self._cursor_x = 0
        self._cursor_y = 0

    @property
    def cols(self) -> int:
        return int(self._options["cols"])  # type: ignore[call-overload]

    @property
    def rows(self) -> int:
        return int(self._options["rows"])  # type: ignore[call-overload]

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def element(self) -> Element | None:
        return self._element

    @property
    def dimensions(self) -> RenderDimensions:
        return self._dimensions

    @property
    def cursor_x(self) -> int:
        return self._cursor_x

    @property
    def loaded_addons(self) -> tuple[Addon, ...]:
        return tuple(self._addons)

    @property
    def key_listener_count(self) -> int:
        return self._key_events.listener_count

    def option_names(self) -> list[str]:
        return sorted(self._options)

    def get_option(self, name: str) -> object:
        self._require_option(name)
        return self._options[name]

    def set_option(self, name: str, value: object) -> None:
        self._require_option(name)
        if name == "cols":
            self.resize(int(value), self.rows)  # type: ignore[call-overload]
            return
        if name == "rows":
            self.resize(self.cols, int(value))  # type: ignore[call-overload]
            return
        self._options[name] = value
        logger.debug("Terminal option set name=%s value=%r", name, value)

    def open(self, container: Element) -> None:
        self._ensure_alive()
        self._element = Element(text="terminal")
        self._element.classes.add("terminal")
        container.append_child(self._element)

    def focus(self) -> None:
        self.focused = True

    def write(self, data: str) -> None:
        if self._disposed:
            logger.debug("Dropping write to disposed terminal (%s chars)", len(data))
            return
        if self._stream is not None:
            self._stream.write(data)
            self._stream.flush()
        for char in data:
            self._put(char)

    def writeln(self, data: str) -> None:
        self.write(data + "\r\n")

    def resize(self, cols: int, rows: int) -> None:
        self._ensure_alive()
        if cols <= 0 or rows <= 0:
            raise TermSessionError(
                f"Invalid terminal size: {cols}x{rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )
        if cols == self.cols and rows == self.rows:
            return
        self._options["cols"] = cols
        self._options["rows"] = rows
        self._cursor_x = min(self._cursor_x, cols - 1)
        self._resize_events.fire(TerminalSize(cols=cols, rows=rows))

    def load_addon(self, addon: Addon) -> None:
        self._ensure_alive()
        addon.activate(self)
        self._addons.append(addon)

    def unload_addon(self, addon: Addon) -> None:
        if addon in self._addons:
            self._addons.remove(addon)
        addon.dispose()

    def register(self, item: Disposable | Callable[[], None]) -> DisposableHandle:
        return self._store.add(item)

    def on_resize(self, listener: Callable[[TerminalSize], None]) -> DisposableHandle:
        return self._resize_events.subscribe(listener)

    def on_key(self, listener: Callable[[KeyEvent], None]) -> DisposableHandle:
        return self._key_events.subscribe(listener)

    def on_data(self, listener: Callable[[str], None]) -> DisposableHandle:
        return self._data_events.subscribe(listener)

    def feed_key(self, event: KeyEvent) -> None:
        if self._disposed:
            return
        self._key_events.fire(event)
        if not self._options.get("disableStdin"):
            self._data_events.fire(event.key)

    def buffer_lines(self) -> list[str]:
        return list(self._lines)

    def select(self, row: int, col: int, length: int) -> None:
        self.selection = (row, col, length)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._store.dispose()
        for addon in reversed(self._addons):
            addon.dispose()
        self._addons.clear()
        for emitter in (self._resize_events, self._key_events, self._data_events):
            emitter.clear()
        if self._element is not None and self._element.parent is not None:
            self._element.parent.remove_child(self._element)
        self._element = None

    def _put(self, char: str) -> None:
        if char == "\r":
            self._cursor_x = 0
        elif char == "\n":
            self._cursor_y += 1
            if self._cursor_y >= len(self._lines):
                self._lines.append("")
            self._trim_scrollback()
        elif char == "\b":
            self._cursor_x = max(0, self._cursor_x - 1)
        elif ord(char) < 32 or char == "\x7f":
            return
        else:
            if self._cursor_x >= self.cols:
                self._put("\r")
                self._put("\n")
            line = self._lines[self._cursor_y].ljust(self._cursor_x)
            self._lines[self._cursor_y] = line[: self._cursor_x] + char + line[self._cursor_x + 1 :]
            self._cursor_x += 1

    def _trim_scrollback(self) -> None:
        limit = self.rows + int(self._options["scrollback"])  # type: ignore[call-overload]
        overflow = len(self._lines) - limit
        if overflow > 0:
            del self._lines[:overflow]
            self._cursor_y -= overflow

    def _require_option(self, name: str) -> None:
        if name not in self._options:
            raise TermSessionError(
                f"No option with key \"{name}\"",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use one of the terminal's declared option names.",
            )

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise InvalidStateError(
                "Terminal has been disposed.",
                hint="Create a new terminal instead of reusing a disposed one.",
            )
