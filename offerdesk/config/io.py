"""Load ``program.yaml`` into a ``ProgramConfig``.

Example::

    listing_api:
      base_url: https://api.example.com/api
      token: ""
      timeout_seconds: 10
    board:
      refresh_interval_seconds: 30
      default_fiat: USD
    webui:
      host: 127.0.0.1
      port: 8765
    log_level: INFO

``OFFERDESK_API_TOKEN`` in the environment overrides ``listing_api.token``.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from offerdesk.config.models import ListingApiConfig, ProgramConfig

_REPO_ROOT = Path(__file__).resolve().parents[2]
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(ValueError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


def default_program_config_path() -> Path:
    """``~/.offerdesk/config/program.yaml``, else the repo's ``config/program.yaml``."""
    home_cfg = Path.home() / ".offerdesk" / "config" / "program.yaml"
    if home_cfg.exists():
        return home_cfg
    return _REPO_ROOT / "config" / "program.yaml"


def _section(data: dict[str, Any], key: str, path: Path) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(path, f"{key} must be a mapping")
    return value


def _int_range(raw: Any, name: str, low: int, high: int, path: Path) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(path, f"{name} must be an integer, got {raw!r}") from None
    if value < low or value > high:
        raise ConfigError(path, f"{name}={value} out of range [{low},{high}]")
    return value


def load_program_config(path: Path | str | None = None) -> ProgramConfig:
    path = Path(path) if path else default_program_config_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(path, "config file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigError(path, f"invalid yaml: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(path, "top level must be a mapping")

    api = _section(data, "listing_api", path)
    base_url = str(api.get("base_url", "")).strip().rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(path, "listing_api.base_url must start with http:// or https://")
    token = os.getenv("OFFERDESK_API_TOKEN", "").strip() or str(api.get("token") or "").strip() or None
    try:
        timeout = float(api.get("timeout_seconds", 10))
    except (TypeError, ValueError):
        raise ConfigError(path, "listing_api.timeout_seconds must be a number") from None
    if timeout <= 0:
        raise ConfigError(path, "listing_api.timeout_seconds must be positive")

    board = _section(data, "board", path)
    webui = _section(data, "webui", path)

    log_level = str(data.get("log_level", "INFO")).strip().upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError(path, f"unknown log_level {log_level!r}")

    return ProgramConfig(
        listing_api=ListingApiConfig(base_url=base_url, token=token, timeout_seconds=timeout),
        refresh_interval_seconds=_int_range(
            board.get("refresh_interval_seconds", 30), "board.refresh_interval_seconds", 5, 3600, path
        ),
        default_fiat=str(board.get("default_fiat", "USD")).strip().upper() or "USD",
        webui_host=str(webui.get("host", "127.0.0.1")).strip() or "127.0.0.1",
        webui_port=_int_range(webui.get("port", 8765), "webui.port", 1, 65535, path),
        log_level=log_level,
    )
