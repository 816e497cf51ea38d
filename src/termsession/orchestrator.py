"""Terminal session lifecycle: create, wire components, dispose and recreate."""

from __future__ import annotations

import asyncio
import logging as py_logging
import platform
from dataclasses import dataclass

from termsession.addons.builtin import FitAddon, SearchAddon, SearchOptions
from termsession.addons.registry import AddonRegistry
from termsession.config import AppConfig
from termsession.errors import InvalidStateError, TermSessionError
from termsession.options import ConfigurationIntrospector
from termsession.presentation import (
    ADDONS_CONTAINER_ID,
    CASE_SENSITIVE_ID,
    DISPOSE_BUTTON_ID,
    FIND_NEXT_ID,
    FIND_PREVIOUS_ID,
    OPTIONS_CONTAINER_ID,
    PADDING_ID,
    REGEX_ID,
    TERMINAL_CONTAINER_ID,
    WHOLE_WORD_ID,
    Checkbox,
    Document,
    Element,
    KeyboardEvent,
    ValueInput,
    add_dom_listener,
)
from termsession.terminal.models import SessionRecord
from termsession.terminal.surface import HeadlessTerminal, SurfaceFactory, TerminalSurface
from termsession.transport import ProcessBackend, SessionTransport, TransportState

logger = py_logging.getLogger(__name__)

WINDOWS_PLATFORMS = frozenset({"Windows", "Win16", "Win32", "WinCE"})
STARTUP_ADDONS = ("web-links", "search", "fit", "unicode11")
DISPOSE_LABEL = "Dispose terminal"
RECREATE_LABEL = "Recreate Terminal"


def detect_windows_mode(platform_name: str | None = None, *, override: str = "auto") -> bool:
    if override == "on":
        return True
    if override == "off":
        return False
    name = platform.system() if platform_name is None else platform_name
    return name in WINDOWS_PLATFORMS


@dataclass
class TerminalSession:
    terminal: TerminalSurface
    registry: AddonRegistry
    transport: SessionTransport
    introspector: ConfigurationIntrospector

    @property
    def record(self) -> SessionRecord:
        return self.transport.record


class SessionOrchestrator:
    def __init__(
        self,
        document: Document,
        backend: ProcessBackend,
        *,
        config: AppConfig | None = None,
        surface_factory: SurfaceFactory | None = None,
        platform_name: str | None = None,
    ) -> None:
        self.document = document
        self.config = config or AppConfig()
        self._backend = backend
        self._surface_factory: SurfaceFactory = surface_factory or HeadlessTerminal
        self._platform_name = platform_name
        self._session: TerminalSession | None = None
        self.establishing: asyncio.Task[TransportState | None] | None = None

    @property
    def session(self) -> TerminalSession | None:
        return self._session

    @property
    def term(self) -> TerminalSurface | None:
        return self._session.terminal if self._session is not None else None

    def start(self) -> TerminalSession:
        button = self.document.get_element(DISPOSE_BUTTON_ID)
        button.add_event_listener("click", lambda _event: self.toggle())
        session = self.create()
        button.text = DISPOSE_LABEL
        return session

    def create(self) -> TerminalSession:
        """Build a fresh terminal surface and schedule provisioning.

        Must run inside the event loop: introspection and provisioning are
        deferred to the next loop iteration, once layout has settled.
        """
        if self._session is not None:
            raise InvalidStateError(
                "A terminal session is already active.",
                hint="Dispose the current terminal before creating a new one.",
            )
        loop = asyncio.get_running_loop()
        container = self.document.get_element(TERMINAL_CONTAINER_ID)
        container.clear_children()

        windows_mode = detect_windows_mode(self._platform_name, override=self.config.windows_mode)
        terminal = self._surface_factory({"windowsMode": windows_mode})
        registry = AddonRegistry(terminal, self.document)
        for name in STARTUP_ADDONS:
            registry.load(name)

        addons_container = self.document.get_element(ADDONS_CONTAINER_ID)
        transport = SessionTransport(
            terminal,
            registry,
            self._backend,
            on_ready=lambda: registry.render_controls(addons_container),
        )
        introspector = ConfigurationIntrospector(
            terminal,
            on_geometry_change=lambda: self._update_terminal_size(terminal, registry),
            strict=self.config.strict_options,
        )
        if self.config.strict_options:
            try:
                introspector.validate()
            except TermSessionError:
                terminal.dispose()
                raise
        session = TerminalSession(
            terminal=terminal,
            registry=registry,
            transport=transport,
            introspector=introspector,
        )
        self._session = session
        logger.info("Terminal created windows_mode=%s", windows_mode)

        terminal.open(container)
        self._fit(registry)
        terminal.focus()

        padding = self.document.get_element(PADDING_ID)
        find_next = self.document.get_element(FIND_NEXT_ID)
        find_previous = self.document.get_element(FIND_PREVIOUS_ID)
        add_dom_listener(terminal, padding, "change", lambda _event: self._set_padding(session))
        add_dom_listener(
            terminal,
            find_next,
            "keyup",
            lambda event: self._search(session, find_next, event, forward=True),
        )
        add_dom_listener(
            terminal,
            find_previous,
            "keyup",
            lambda event: self._search(session, find_previous, event, forward=False),
        )

        establishing = loop.create_task(self._after_layout(session))
        establishing.add_done_callback(_report_startup_failure)
        self.establishing = establishing
        return session

    def dispose(self) -> None:
        session = self._session
        if session is None:
            logger.debug("Dispose requested without an active terminal")
            return
        self._session = None
        self.establishing = None
        session.terminal.dispose()
        logger.info("Terminal disposed process_id=%s", session.record.process_id or "-")

    def toggle(self) -> None:
        button = self.document.get_element(DISPOSE_BUTTON_ID)
        if self._session is not None:
            self.dispose()
            button.text = RECREATE_LABEL
        else:
            self.create()
            button.text = DISPOSE_LABEL

    async def _after_layout(self, session: TerminalSession) -> TransportState | None:
        if session is not self._session or session.terminal.disposed:
            logger.debug("Skipping deferred startup for a replaced terminal")
            return None
        session.introspector.render(self.document.get_element(OPTIONS_CONTAINER_ID))
        padding = self.document.get_element(PADDING_ID)
        if isinstance(padding, ValueInput):
            padding.value = 0
        self._update_terminal_size(session.terminal, session.registry)
        return await session.transport.establish()

    def _update_terminal_size(self, terminal: TerminalSurface, registry: AddonRegistry) -> None:
        if terminal.disposed:
            return
        container = self.document.get_element(TERMINAL_CONTAINER_ID)
        dims = terminal.dimensions
        container.style["width"] = f"{terminal.cols * dims.actual_cell_width + dims.scrollbar_width}px"
        container.style["height"] = f"{terminal.rows * dims.actual_cell_height}px"
        self._fit(registry)

    def _set_padding(self, session: TerminalSession) -> None:
        padding = self.document.get_element(PADDING_ID)
        element = session.terminal.element
        if element is None or not isinstance(padding, ValueInput):
            return
        try:
            pixels = int(float(padding.value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid padding value %r", padding.value)
            return
        element.style["padding"] = f"{pixels}px"
        self._fit(session.registry)

    def _search(self, session: TerminalSession, source: Element, event: object, *, forward: bool) -> None:
        addon = session.registry.get("search")
        if not isinstance(addon, SearchAddon):
            logger.debug("Search addon not loaded; ignoring query")
            return
        key = event.key if isinstance(event, KeyboardEvent) else ""
        term = str(getattr(source, "value", "") or "")
        options = self._search_options(key)
        if forward:
            addon.find_next(term, options)
        else:
            addon.find_previous(term, options)

    def _search_options(self, key: str) -> SearchOptions:
        return SearchOptions(
            regex=self._checked(REGEX_ID),
            whole_word=self._checked(WHOLE_WORD_ID),
            case_sensitive=self._checked(CASE_SENSITIVE_ID),
            incremental=key != "Enter",
        )

    def _checked(self, element_id: str) -> bool:
        element = self.document.get_element(element_id)
        return isinstance(element, Checkbox) and element.checked

    def _fit(self, registry: AddonRegistry) -> None:
        addon = registry.get("fit")
        if isinstance(addon, FitAddon):
            addon.fit()


def _report_startup_failure(task: asyncio.Task[TransportState | None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Deferred terminal startup failed: %s", exc, exc_info=exc)
