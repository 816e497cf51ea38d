"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Sequence
from contextlib import AsyncExitStack
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from .config import AppConfig, load_config
from .errors import ExitCode, TermSessionError, user_facing_error
from .logging import configure_logging, default_log_path
from .orchestrator import SessionOrchestrator
from .presentation import build_document
from .terminal.models import KeyEvent
from .terminal.surface import HeadlessTerminal
from .transport import HttpProcessBackend, ProcessBackend

_VALID_WINDOWS_MODES = ("auto", "on", "off")
_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _backend_url_type(value: str) -> str:
    stripped = value.strip()
    if not stripped.startswith(("http://", "https://")):
        raise argparse.ArgumentTypeError("--backend-url must start with http:// or https://")
    return stripped


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termsession")
    parser.add_argument("--backend-url", type=_backend_url_type, default=None)
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--windows-mode", choices=_VALID_WINDOWS_MODES, default=None)
    parser.add_argument(
        "--strict-options",
        action="store_true",
        help="Fail when the terminal option set drifts from the known schema",
    )
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def resolve_config(namespace: argparse.Namespace) -> AppConfig:
    config = load_config(namespace.config)
    try:
        if namespace.backend_url is not None:
            config.backend_url = namespace.backend_url
        if namespace.windows_mode is not None:
            config.windows_mode = namespace.windows_mode
        if namespace.strict_options:
            config.strict_options = True
        if namespace.log_level is not None:
            config.log_level = namespace.log_level
    except ValidationError as exc:
        raise TermSessionError(
            "Invalid configuration override.",
            code=ExitCode.CONFIG_ERROR,
            hint=str(exc.errors()[0].get("msg", "")),
        ) from exc
    return config


async def run_session(
    config: AppConfig,
    *,
    stdin: TextIO,
    stdout: TextIO,
    backend: ProcessBackend | None = None,
    platform_name: str | None = None,
) -> int:
    logger = py_logging.getLogger(__name__)
    async with AsyncExitStack() as stack:
        if backend is None:
            backend = await stack.enter_async_context(
                HttpProcessBackend(config.backend_url, timeout=config.request_timeout_seconds)
            )
        orchestrator = SessionOrchestrator(
            build_document(),
            backend,
            config=config,
            surface_factory=lambda options: HeadlessTerminal(options, stream=stdout),
            platform_name=platform_name,
        )
        orchestrator.start()
        stack.callback(orchestrator.dispose)
        if orchestrator.establishing is not None:
            state = await orchestrator.establishing
            logger.debug("Session established state=%s", state.value if state else "-")

        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            terminal = orchestrator.term
            if not isinstance(terminal, HeadlessTerminal):
                break
            for char in line:
                terminal.feed_key(KeyEvent.from_char(char))
            await asyncio.sleep(0)
    return int(ExitCode.SUCCESS)


def main(argv: Sequence[str] | None = None) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()

    try:
        config = resolve_config(namespace)
        logger = configure_logging(level=config.log_level, log_file=log_path)
        logger.debug("Starting session backend=%s", config.backend_url)
        return asyncio.run(run_session(config, stdin=sys.stdin, stdout=sys.stdout))
    except TermSessionError as exc:
        logger.error(
            "Handled TermSessionError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except KeyboardInterrupt:
        logger.info("Interrupted; session closed")
        return int(ExitCode.SUCCESS)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
