from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ListingApiConfig:
    base_url: str
    token: str | None = None
    timeout_seconds: float = 10.0


@dataclass(frozen=True, slots=True)
class ProgramConfig:
    listing_api: ListingApiConfig
    refresh_interval_seconds: int = 30
    default_fiat: str = "USD"
    webui_host: str = "127.0.0.1"
    webui_port: int = 8765
    log_level: str = "INFO"
