"""Remote process provisioning and the remote/local connection state machine."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Union
from urllib.parse import quote, urlsplit

import aiohttp

from termsession.addons.registry import AddonRegistry
from termsession.errors import BackendError, InvalidStateError
from termsession.terminal.fallback import LocalEcho
from termsession.terminal.models import ConnectionState, SessionRecord, TerminalSize
from termsession.terminal.surface import TerminalSurface

logger = py_logging.getLogger(__name__)

REMOTE_ATTACH_ADDON = "attach"


class TransportState(str, Enum):
    IDLE = "idle"
    PROVISIONING = "provisioning"
    REMOTE_ATTACHED = "remote-attached"
    LOCAL_FALLBACK = "local-fallback"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class Provisioned:
    process_id: str
    socket_url: str


@dataclass(frozen=True)
class ProvisionFailed:
    reason: str


@dataclass(frozen=True)
class SocketOpened:
    socket: aiohttp.ClientWebSocketResponse


@dataclass(frozen=True)
class SocketClosed:
    reason: str = ""


@dataclass(frozen=True)
class SocketErrored:
    reason: str = ""


@dataclass(frozen=True)
class Dispose:
    pass


TransportMessage = Union[Provisioned, ProvisionFailed, SocketOpened, SocketClosed, SocketErrored, Dispose]


@dataclass(frozen=True)
class TransportEvent:
    state: TransportState
    message: str


class ProcessBackend(Protocol):
    async def provision(self, cols: int, rows: int) -> str: ...

    async def notify_size(self, process_id: str, cols: int, rows: int) -> None: ...

    def socket_url(self, process_id: str) -> str: ...

    async def connect(self, process_id: str) -> aiohttp.ClientWebSocketResponse: ...


class HttpProcessBackend:
    """Process backend reached over HTTP for provisioning and websocket for I/O."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> HttpProcessBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True
        return self._session

    async def provision(self, cols: int, rows: int) -> str:
        url = f"{self.base_url}/terminals"
        try:
            async with self._client().post(url, params={"cols": cols, "rows": rows}) as response:
                body = await response.read()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise BackendError(
                "Process provisioning request failed.",
                hint=str(exc) or "Check that the process backend is reachable.",
            ) from exc
        if status >= 400:
            raise BackendError(
                f"Process provisioning rejected with HTTP {status}.",
                hint="Inspect the process backend logs.",
            )
        try:
            process_id = body.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise BackendError(
                "Process backend returned a process id that is not UTF-8 text.",
                hint="Inspect the process backend logs.",
            ) from exc
        if not process_id:
            raise BackendError(
                "Process backend returned an empty process id.",
                hint="Inspect the process backend logs.",
            )
        return process_id

    async def notify_size(self, process_id: str, cols: int, rows: int) -> None:
        url = f"{self.base_url}/terminals/{quote(process_id, safe='')}/size"
        try:
            async with self._client().post(url, params={"cols": cols, "rows": rows}) as response:
                await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise BackendError(
                f"Size notification failed for process {process_id}.",
                hint=str(exc),
            ) from exc

    def socket_url(self, process_id: str) -> str:
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return f"{scheme}://{parts.netloc}{parts.path}/terminals/{quote(process_id, safe='')}"

    async def connect(self, process_id: str) -> aiohttp.ClientWebSocketResponse:
        try:
            return await self._client().ws_connect(self.socket_url(process_id))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise BackendError(
                f"Connection to process {process_id} failed.",
                hint=str(exc) or "Check the websocket endpoint.",
            ) from exc


class SessionTransport:
    def __init__(
        self,
        terminal: TerminalSurface,
        registry: AddonRegistry,
        backend: ProcessBackend,
        *,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        self._terminal = terminal
        self._registry = registry
        self._backend = backend
        self._on_ready = on_ready
        self._state = TransportState.IDLE
        self._fallback: LocalEcho | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._events: list[TransportEvent] = []
        self.record = SessionRecord()
        terminal.register(terminal.on_resize(self.handle_resize))
        terminal.register(self.dispose)

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def fallback(self) -> LocalEcho | None:
        return self._fallback

    def list_events(self) -> list[TransportEvent]:
        return list(self._events)

    async def establish(self) -> TransportState:
        if self._state != TransportState.IDLE:
            raise InvalidStateError(
                f"Transport already started (state={self._state.value}).",
                hint="Recreate the terminal to provision a new process.",
            )
        self._set_state(TransportState.PROVISIONING, "Requesting a remote process.")
        self.record.connection_state = ConnectionState.PROVISIONING
        cols, rows = self._terminal.cols, self._terminal.rows
        try:
            process_id = await self._backend.provision(cols, rows)
        except BackendError as exc:
            self.dispatch(ProvisionFailed(exc.message))
            return self._state
        self.dispatch(Provisioned(process_id, self._backend.socket_url(process_id)))
        if self._state == TransportState.DISPOSED:
            return self._state
        try:
            socket = await self._backend.connect(process_id)
        except BackendError as exc:
            self.dispatch(SocketErrored(exc.message))
            return self._state
        self.dispatch(SocketOpened(socket))
        return self._state

    def dispatch(self, message: TransportMessage) -> None:
        if self._state == TransportState.DISPOSED:
            if isinstance(message, SocketOpened):
                self._discard_socket(message.socket)
            logger.debug("Ignoring %s for disposed transport", type(message).__name__)
            return
        if isinstance(message, Dispose):
            self._set_state(TransportState.DISPOSED, "Transport disposed.")
            return
        if self._state == TransportState.IDLE:
            raise InvalidStateError(
                f"Unexpected {type(message).__name__} before provisioning.",
                hint="Call establish() first.",
            )
        if isinstance(message, Provisioned):
            self.record.process_id = message.process_id
            self.record.socket_url = message.socket_url
            self._record_event(f"Provisioned process {message.process_id}.")
        elif isinstance(message, SocketOpened):
            self._enter_remote(message.socket)
        elif isinstance(message, ProvisionFailed):
            self.record.connection_state = ConnectionState.FAILED
            self._enter_fallback(message.reason)
        elif isinstance(message, (SocketClosed, SocketErrored)):
            self._enter_fallback(message.reason or type(message).__name__)

    def dispose(self) -> None:
        self.dispatch(Dispose())

    def handle_resize(self, size: TerminalSize) -> None:
        process_id = self.record.process_id
        if not process_id or self._state == TransportState.DISPOSED:
            return
        self._track(asyncio.get_running_loop().create_task(self._notify_size(process_id, size)))

    async def _notify_size(self, process_id: str, size: TerminalSize) -> None:
        try:
            await self._backend.notify_size(process_id, size.cols, size.rows)
        except BackendError as exc:
            logger.debug("Ignoring size notification failure: %s", exc)

    def _enter_remote(self, socket: aiohttp.ClientWebSocketResponse) -> None:
        if self._terminal.initialized:
            logger.debug("Terminal already claimed; discarding late socket")
            self._discard_socket(socket)
            return
        self._registry.load(
            REMOTE_ATTACH_ADDON,
            socket,
            on_close=lambda: self.dispatch(SocketClosed("Remote stream ended.")),
        )
        self._terminal.initialized = True
        self.record.connection_state = ConnectionState.CONNECTED
        self._set_state(TransportState.REMOTE_ATTACHED, f"Attached to {self.record.socket_url}.")
        self._ready()

    def _enter_fallback(self, reason: str) -> None:
        if self._terminal.initialized:
            self._record_event(f"Ignoring connection loss after claim: {reason}")
            return
        self._terminal.initialized = True
        self._fallback = LocalEcho(self._terminal)
        self._fallback.install()
        self.record.connection_state = ConnectionState.LOCAL_FALLBACK
        self._set_state(TransportState.LOCAL_FALLBACK, f"Using local emulation: {reason}")
        self._ready()

    def _ready(self) -> None:
        if self._on_ready is not None:
            self._on_ready()

    def _discard_socket(self, socket: aiohttp.ClientWebSocketResponse) -> None:
        if socket.closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; orphaned socket left to the garbage collector")
            return
        self._track(loop.create_task(socket.close()))

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _set_state(self, state: TransportState, message: str) -> None:
        self._state = state
        self._record_event(message)

    def _record_event(self, message: str) -> None:
        self._events.append(TransportEvent(state=self._state, message=message))
        logger.info("session-event state=%s message=%s", self._state.value, message)
