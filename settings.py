from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "DASHBOARD_STORE_PATH"
_POLL_INTERVAL_ENV = "REFRESH_POLL_INTERVAL_MS"
_AUTO_REFRESH_ENV = "REFRESH_AUTO"
_STALENESS_ENV = "STALENESS_WINDOW_MS"
_LIVE_HORIZON_ENV = "LIVE_BUFFER_HORIZON_MS"
_FETCH_LIMIT_ENV = "FETCH_READING_LIMIT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    poll_interval_ms: int
    auto_refresh: bool
    staleness_window_ms: int
    live_horizon_ms: int
    fetch_limit: int
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/readings.json"),
        poll_interval_ms=_read_int_env(_POLL_INTERVAL_ENV, 10_000),
        auto_refresh=_read_bool_env(_AUTO_REFRESH_ENV, True),
        # 0 disables the age check: only sensors without any reading go offline.
        staleness_window_ms=_read_int_env(_STALENESS_ENV, 600_000, minimum=0),
        live_horizon_ms=_read_int_env(_LIVE_HORIZON_ENV, 86_400_000),
        fetch_limit=_read_int_env(_FETCH_LIMIT_ENV, 1000),
        log_level=_read_log_level("INFO"),
    )
