from __future__ import annotations

import io
from pathlib import Path

import pytest

from conftest import FakeBackend, settle
from termsession import cli
from termsession.config import AppConfig
from termsession.terminal.fallback import WELCOME_BANNER


def test_cli_help_includes_public_flags() -> None:
    help_text = cli.build_parser().format_help()

    for flag in ("--backend-url", "--config", "--windows-mode", "--strict-options", "--log-level", "--log-file"):
        assert flag in help_text


def test_cli_invalid_log_level_returns_error() -> None:
    assert cli.main(["--log-level", "INVALID"]) == 2


def test_cli_invalid_backend_url_returns_error() -> None:
    assert cli.main(["--backend-url", "localhost:3000"]) == 2


def test_cli_invalid_windows_mode_returns_error() -> None:
    assert cli.main(["--windows-mode", "sometimes"]) == 2


def test_parse_args_normalizes_warning_alias() -> None:
    namespace = cli.parse_args(["--log-level", "warning"])

    assert namespace.log_level == "WARN"


def test_resolve_config_applies_overrides(tmp_path: Path) -> None:
    namespace = cli.parse_args(
        [
            "--config",
            str(tmp_path / "missing.toml"),
            "--backend-url",
            "https://remote.example/",
            "--windows-mode",
            "off",
            "--strict-options",
            "--log-level",
            "DEBUG",
        ]
    )

    config = cli.resolve_config(namespace)

    assert config.backend_url == "https://remote.example"
    assert config.windows_mode == "off"
    assert config.strict_options is True
    assert config.log_level == "DEBUG"


@pytest.mark.asyncio
async def test_run_session_echoes_input_in_local_fallback() -> None:
    stdout = io.StringIO()
    backend = FakeBackend(fail_connect=True)

    code = await cli.run_session(
        AppConfig(),
        stdin=io.StringIO("ab\n"),
        stdout=stdout,
        backend=backend,
        platform_name="Linux",
    )

    output = stdout.getvalue()
    assert code == 0
    assert WELCOME_BANNER[0] in output
    assert "$ ab" in output
    assert backend.provision_calls == [(80, 24)]


@pytest.mark.asyncio
async def test_run_session_forwards_input_to_remote_process() -> None:
    backend = FakeBackend()

    code = await cli.run_session(
        AppConfig(),
        stdin=io.StringIO("ls\n"),
        stdout=io.StringIO(),
        backend=backend,
        platform_name="Linux",
    )

    await settle()

    assert code == 0
    assert backend.sockets[0].sent == ["l", "s", "\r"]
    assert backend.sockets[0].closed
