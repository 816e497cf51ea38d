from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Iterator
from pathlib import Path

import aiohttp
import pytest

from termsession.errors import BackendError
from termsession.logging import LIBRARY_LOGGERS

_INTEGRATION_TEST_FILES = {
    "test_http_backend.py",
    "test_cli_entrypoint_e2e.py",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        if path.name in _INTEGRATION_TEST_FILES:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    yield
    for name in ("termsession", *LIBRARY_LOGGERS):
        logger = py_logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(py_logging.NOTSET)
        logger.propagate = True


class FakeSocket:
    """Stands in for aiohttp.ClientWebSocketResponse."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue[aiohttp.WSMessage | None] = asyncio.Queue()

    def push(self, text: str) -> None:
        self._inbox.put_nowait(aiohttp.WSMessage(aiohttp.WSMsgType.TEXT, text, None))

    def end(self) -> None:
        self._inbox.put_nowait(None)

    async def send_str(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> bool:
        if self.closed:
            return False
        self.closed = True
        self._inbox.put_nowait(None)
        return True

    def exception(self) -> BaseException | None:
        return None

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> aiohttp.WSMessage:
        message = await self._inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeBackend:
    def __init__(
        self,
        *,
        process_id: str = "7",
        fail_provision: bool = False,
        fail_connect: bool = False,
        fail_size: bool = False,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.process_id = process_id
        self.fail_provision = fail_provision
        self.fail_connect = fail_connect
        self.fail_size = fail_size
        self.gate = gate
        self.provision_calls: list[tuple[int, int]] = []
        self.size_calls: list[tuple[str, int, int]] = []
        self.connect_calls: list[str] = []
        self.sockets: list[FakeSocket] = []

    async def provision(self, cols: int, rows: int) -> str:
        self.provision_calls.append((cols, rows))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_provision:
            raise BackendError("Process provisioning request failed.")
        return self.process_id

    async def notify_size(self, process_id: str, cols: int, rows: int) -> None:
        self.size_calls.append((process_id, cols, rows))
        if self.fail_size:
            raise BackendError("Size notification failed.")

    def socket_url(self, process_id: str) -> str:
        return f"ws://backend.test/terminals/{process_id}"

    async def connect(self, process_id: str) -> FakeSocket:
        self.connect_calls.append(process_id)
        if self.fail_connect:
            raise BackendError("Connection failed.")
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket


async def settle(ticks: int = 10) -> None:
    for _ in range(ticks):
        await asyncio.sleep(0)
