from __future__ import annotations

import logging

import pytest

from conftest import FakeBackend, settle
from termsession.addons import AttachAddon
from termsession.config import AppConfig
from termsession.errors import InvalidStateError, TermSessionError
from termsession.orchestrator import (
    DISPOSE_LABEL,
    RECREATE_LABEL,
    STARTUP_ADDONS,
    SessionOrchestrator,
    detect_windows_mode,
)
from termsession.presentation import (
    ADDONS_CONTAINER_ID,
    CASE_SENSITIVE_ID,
    DISPOSE_BUTTON_ID,
    FIND_NEXT_ID,
    FIND_PREVIOUS_ID,
    OPTIONS_CONTAINER_ID,
    PADDING_ID,
    TERMINAL_CONTAINER_ID,
    Button,
    Checkbox,
    Document,
    NumberInput,
    TextInput,
    build_document,
)
from termsession.terminal import HeadlessTerminal
from termsession.transport import TransportState

pytestmark = pytest.mark.critical_regression


def _orchestrator(
    backend: FakeBackend | None = None,
    **kwargs: object,
) -> tuple[Document, FakeBackend, SessionOrchestrator]:
    document = build_document()
    backend = backend or FakeBackend()
    kwargs.setdefault("platform_name", "Linux")
    orchestrator = SessionOrchestrator(document, backend, **kwargs)  # type: ignore[arg-type]
    return document, backend, orchestrator


@pytest.mark.parametrize(
    ("platform_name", "override", "expected"),
    [
        ("Win32", "auto", True),
        ("Windows", "auto", True),
        ("Linux", "auto", False),
        ("Darwin", "on", True),
        ("Win32", "off", False),
    ],
)
def test_detect_windows_mode(platform_name: str, override: str, expected: bool) -> None:
    assert detect_windows_mode(platform_name, override=override) is expected


@pytest.mark.asyncio
async def test_start_loads_startup_addons_and_opens_terminal() -> None:
    document, _, orchestrator = _orchestrator()

    session = orchestrator.start()

    terminal = session.terminal
    assert isinstance(terminal, HeadlessTerminal)
    assert orchestrator.term is terminal
    assert {name for name, loaded in session.registry.snapshot().items() if loaded} == set(STARTUP_ADDONS)
    assert terminal.focused is True
    assert terminal.element is not None
    assert terminal.element.parent is document.get_element(TERMINAL_CONTAINER_ID)
    assert terminal.get_option("windowsMode") is False
    assert document.get_element(DISPOSE_BUTTON_ID).text == DISPOSE_LABEL
    await orchestrator.establishing


@pytest.mark.asyncio
async def test_windows_platform_enables_windows_mode() -> None:
    _, _, orchestrator = _orchestrator(platform_name="Win32")

    session = orchestrator.create()
    await orchestrator.establishing

    assert session.terminal.get_option("windowsMode") is True


@pytest.mark.asyncio
async def test_config_override_forces_windows_mode() -> None:
    _, _, orchestrator = _orchestrator(config=AppConfig(windows_mode="on"))

    session = orchestrator.create()
    await orchestrator.establishing

    assert session.terminal.get_option("windowsMode") is True


@pytest.mark.asyncio
async def test_deferred_startup_renders_controls_and_attaches() -> None:
    document, backend, orchestrator = _orchestrator()
    session = orchestrator.start()

    state = await orchestrator.establishing

    assert state == TransportState.REMOTE_ATTACHED
    assert isinstance(session.registry.get("attach"), AttachAddon)
    assert len(document.get_element(OPTIONS_CONTAINER_ID).children) == 3
    assert "cursorBlink" in session.introspector.controls
    assert len(document.get_element(ADDONS_CONTAINER_ID).children) == 6
    container = document.get_element(TERMINAL_CONTAINER_ID)
    assert container.style == {"width": "735.0px", "height": "408.0px"}
    assert (session.terminal.cols, session.terminal.rows) == (80, 24)
    assert session.record.process_id == "7"
    assert backend.provision_calls == [(80, 24)]


@pytest.mark.asyncio
async def test_fallback_session_still_renders_addon_controls() -> None:
    document, _, orchestrator = _orchestrator(FakeBackend(fail_connect=True))
    orchestrator.start()

    state = await orchestrator.establishing

    assert state == TransportState.LOCAL_FALLBACK
    controls = document.get_element(ADDONS_CONTAINER_ID).children
    assert len(controls) == 6


@pytest.mark.asyncio
async def test_create_while_active_is_rejected() -> None:
    _, _, orchestrator = _orchestrator()
    orchestrator.create()

    with pytest.raises(InvalidStateError):
        orchestrator.create()
    await orchestrator.establishing


@pytest.mark.asyncio
async def test_toggle_disposes_then_recreates() -> None:
    document, backend, orchestrator = _orchestrator()
    button = document.get_element(DISPOSE_BUTTON_ID)
    assert isinstance(button, Button)
    first = orchestrator.start()
    await orchestrator.establishing

    button.click()
    await settle()

    assert orchestrator.session is None
    assert first.terminal.disposed is True
    assert first.transport.state == TransportState.DISPOSED
    assert backend.sockets[0].closed is True
    assert document.get_element(TERMINAL_CONTAINER_ID).children == []
    assert button.text == RECREATE_LABEL

    button.click()
    second = orchestrator.session
    await orchestrator.establishing

    assert second is not None and second is not first
    assert button.text == DISPOSE_LABEL
    assert len(backend.provision_calls) == 2
    assert second.record.connection_state.value == "connected"


@pytest.mark.asyncio
async def test_dispose_before_deferred_startup_skips_provisioning() -> None:
    _, backend, orchestrator = _orchestrator()
    orchestrator.create()
    pending = orchestrator.establishing

    orchestrator.dispose()
    result = await pending

    assert result is None
    assert backend.provision_calls == []


def test_dispose_without_session_is_a_no_op() -> None:
    _, _, orchestrator = _orchestrator()

    orchestrator.dispose()

    assert orchestrator.session is None


@pytest.mark.asyncio
async def test_dispose_detaches_search_and_padding_listeners() -> None:
    document, _, orchestrator = _orchestrator()
    orchestrator.create()
    await orchestrator.establishing

    orchestrator.dispose()

    assert document.get_element(FIND_NEXT_ID).listener_count("keyup") == 0
    assert document.get_element(FIND_PREVIOUS_ID).listener_count("keyup") == 0
    assert document.get_element(PADDING_ID).listener_count("change") == 0


async def _remote_with_text(text: str) -> tuple[Document, SessionOrchestrator]:
    document, backend, orchestrator = _orchestrator()
    orchestrator.create()
    await orchestrator.establishing
    backend.sockets[0].push(text)
    await settle()
    return document, orchestrator


@pytest.mark.asyncio
async def test_search_keyup_is_incremental_until_enter() -> None:
    document, orchestrator = await _remote_with_text("hello world hello")
    terminal = orchestrator.term
    assert isinstance(terminal, HeadlessTerminal)
    find_next = document.get_element(FIND_NEXT_ID)
    assert isinstance(find_next, TextInput)

    find_next.keyup("o", value="hello")
    assert terminal.selection == (0, 0, 5)
    find_next.keyup("o")
    assert terminal.selection == (0, 0, 5)
    find_next.keyup("Enter")
    assert terminal.selection == (0, 12, 5)

    find_previous = document.get_element(FIND_PREVIOUS_ID)
    assert isinstance(find_previous, TextInput)
    find_previous.keyup("Enter", value="hello")
    assert terminal.selection == (0, 0, 5)


@pytest.mark.asyncio
async def test_search_honors_case_sensitive_checkbox() -> None:
    document, orchestrator = await _remote_with_text("hello")
    terminal = orchestrator.term
    assert isinstance(terminal, HeadlessTerminal)
    case_sensitive = document.get_element(CASE_SENSITIVE_ID)
    assert isinstance(case_sensitive, Checkbox)
    case_sensitive.change(True)

    document.get_element(FIND_NEXT_ID).keyup("Enter", value="HELLO")  # type: ignore[attr-defined]

    assert terminal.selection is None


@pytest.mark.asyncio
async def test_search_is_ignored_once_addon_unloaded() -> None:
    document, orchestrator = await _remote_with_text("hello")
    session = orchestrator.session
    assert session is not None
    search_box = next(
        node for node in document.get_element(ADDONS_CONTAINER_ID).walk() if node.element_id == "addon-search"
    )
    assert isinstance(search_box, Checkbox)

    search_box.change(False)
    document.get_element(FIND_NEXT_ID).keyup("Enter", value="hello")  # type: ignore[attr-defined]

    assert session.registry.get("search") is None
    assert session.terminal.selection is None  # type: ignore[attr-defined]


@pytest.mark.asyncio
async def test_padding_change_refits_and_notifies_backend() -> None:
    document, backend, orchestrator = _orchestrator()
    session = orchestrator.create()
    await orchestrator.establishing
    padding = document.get_element(PADDING_ID)
    assert isinstance(padding, NumberInput)

    padding.change(9)
    await settle()

    assert session.terminal.element is not None
    assert session.terminal.element.style["padding"] == "9px"
    assert (session.terminal.cols, session.terminal.rows) == (78, 22)
    assert backend.size_calls == [("7", 78, 22)]


@pytest.mark.asyncio
async def test_invalid_padding_is_ignored() -> None:
    document, _, orchestrator = _orchestrator()
    session = orchestrator.create()
    await orchestrator.establishing

    document.get_element(PADDING_ID).change("wide")  # type: ignore[attr-defined]

    assert session.terminal.element is not None
    assert "padding" not in session.terminal.element.style
    assert (session.terminal.cols, session.terminal.rows) == (80, 24)


@pytest.mark.asyncio
async def test_option_geometry_change_resizes_container() -> None:
    document, backend, orchestrator = _orchestrator()
    session = orchestrator.create()
    await orchestrator.establishing

    session.introspector.controls["cols"].change("100")  # type: ignore[attr-defined]
    await settle()

    container = document.get_element(TERMINAL_CONTAINER_ID)
    assert container.style["width"] == "915.0px"
    assert session.terminal.cols == 100
    assert backend.size_calls == [("7", 100, 24)]


class _DriftingTerminal(HeadlessTerminal):
    def option_names(self) -> list[str]:
        return sorted([*super().option_names(), "ligatures"])


@pytest.mark.asyncio
async def test_strict_options_reject_drifting_engine() -> None:
    created: list[HeadlessTerminal] = []

    def factory(options: dict[str, object]) -> HeadlessTerminal:
        terminal = _DriftingTerminal(options)
        created.append(terminal)
        return terminal

    document, backend, orchestrator = _orchestrator(
        config=AppConfig(strict_options=True),
        surface_factory=factory,
    )

    with pytest.raises(TermSessionError):
        orchestrator.create()

    assert orchestrator.session is None
    assert created[0].disposed is True
    assert document.get_element(TERMINAL_CONTAINER_ID).children == []
    assert backend.provision_calls == []


@pytest.mark.asyncio
async def test_dispose_forgets_pending_startup_task() -> None:
    _, _, orchestrator = _orchestrator()
    orchestrator.create()
    pending = orchestrator.establishing

    orchestrator.dispose()

    assert orchestrator.establishing is None
    assert pending is not None
    assert await pending is None


class _BrokenBackend(FakeBackend):
    async def provision(self, cols: int, rows: int) -> str:
        self.provision_calls.append((cols, rows))
        raise RuntimeError("backend client crashed")


@pytest.mark.asyncio
async def test_unexpected_startup_failure_after_recreate_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    document, backend, orchestrator = _orchestrator(_BrokenBackend())
    button = document.get_element(DISPOSE_BUTTON_ID)
    assert isinstance(button, Button)
    orchestrator.start()
    button.click()

    with caplog.at_level(logging.ERROR, logger="termsession"):
        button.click()
        await settle()

    assert orchestrator.establishing is not None
    assert orchestrator.establishing.done()
    assert len(backend.provision_calls) == 1
    assert "Deferred terminal startup failed: backend client crashed" in caplog.text
