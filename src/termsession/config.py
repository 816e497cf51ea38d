"""XDG config loading."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/termsession/config.toml").expanduser()
DEFAULT_BACKEND_URL = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_WINDOWS_MODE: Literal["auto", "on", "off"] = "auto"
BACKEND_URL_ENV = "TERMSESSION_BACKEND_URL"

_VALID_WINDOWS_MODES = {"auto", "on", "off"}
_VALID_SCHEMES = ("http://", "https://")
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARN", "WARNING", "ERROR"}


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    backend_url: str = DEFAULT_BACKEND_URL
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0, le=300)
    windows_mode: Literal["auto", "on", "off"] = DEFAULT_WINDOWS_MODE
    strict_options: bool = False
    log_level: str = "INFO"

    @field_validator("backend_url")
    @classmethod
    def _validate_backend_url(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped.startswith(_VALID_SCHEMES):
            raise ValueError(f"Invalid backend url: {value}")
        return stripped.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return normalized


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    backend_url = raw.get("backend_url", cfg.backend_url)
    if isinstance(backend_url, str) and backend_url.strip().startswith(_VALID_SCHEMES):
        cfg.backend_url = backend_url

    timeout = raw.get("request_timeout_seconds", cfg.request_timeout_seconds)
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and 0 < timeout <= 300:
        cfg.request_timeout_seconds = float(timeout)

    windows_mode = raw.get("windows_mode", cfg.windows_mode)
    if isinstance(windows_mode, str) and windows_mode in _VALID_WINDOWS_MODES:
        cfg.windows_mode = cast(Literal["auto", "on", "off"], windows_mode)

    strict_options = raw.get("strict_options", cfg.strict_options)
    if isinstance(strict_options, bool):
        cfg.strict_options = strict_options

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str) and log_level.strip().upper() in _VALID_LOG_LEVELS:
        cfg.log_level = log_level

    return cfg


def _apply_env(cfg: AppConfig) -> AppConfig:
    env_url = os.getenv(BACKEND_URL_ENV, "").strip()
    if env_url.startswith(_VALID_SCHEMES):
        cfg.backend_url = env_url
    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _apply_env(AppConfig())
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return _apply_env(AppConfig())
    if not isinstance(raw, dict):
        return _apply_env(AppConfig())
    return _apply_env(_sanitize(raw))
