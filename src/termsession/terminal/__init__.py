"""Terminal surface domain package."""

from .disposables import Disposable, DisposableHandle, DisposableStore, EventEmitter
from .fallback import PROMPT, WELCOME_BANNER, LocalEcho
from .models import ConnectionState, KeyEvent, SessionRecord, TerminalSize
from .surface import DEFAULT_OPTIONS, Addon, HeadlessTerminal, RenderDimensions, SurfaceFactory, TerminalSurface

__all__ = [
    "Addon",
    "ConnectionState",
    "DEFAULT_OPTIONS",
    "Disposable",
    "DisposableHandle",
    "DisposableStore",
    "EventEmitter",
    "HeadlessTerminal",
    "KeyEvent",
    "LocalEcho",
    "PROMPT",
    "RenderDimensions",
    "SessionRecord",
    "SurfaceFactory",
    "TerminalSize",
    "TerminalSurface",
    "WELCOME_BANNER",
]
