"""Scoped release of listeners and connections coordinated by a surface."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from contextlib import ExitStack
from typing import Generic, Protocol, TypeVar

logger = py_logging.getLogger(__name__)

T = TypeVar("T")


class Disposable(Protocol):
    def dispose(self) -> None: ...


class DisposableHandle:
    def __init__(self, release: Callable[[], None]) -> None:
        self._release: Callable[[], None] | None = release

    @property
    def disposed(self) -> bool:
        return self._release is None

    def dispose(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()


class DisposableStore:
    """Aggregate of release callbacks, unwound in reverse registration order."""

    def __init__(self) -> None:
        self._stack = ExitStack()
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add(self, item: Disposable | Callable[[], None]) -> DisposableHandle:
        release = item.dispose if hasattr(item, "dispose") else item
        handle = DisposableHandle(release)  # type: ignore[arg-type]
        if self._disposed:
            logger.debug("Disposable registered after disposal; releasing immediately")
            handle.dispose()
            return handle
        self._stack.callback(handle.dispose)
        return handle

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._stack.close()

    def __enter__(self) -> DisposableStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class EventEmitter(Generic[T]):
    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[T], None]) -> DisposableHandle:
        self._listeners.append(listener)

        def release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return DisposableHandle(release)

    def fire(self, payload: T) -> None:
        for listener in list(self._listeners):
            listener(payload)

    def clear(self) -> None:
        self._listeners.clear()
