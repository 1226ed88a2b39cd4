from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_REFRESH_INTERVAL = 10.0
DEFAULT_REQUEST_TIMEOUT = 30.0

_BASE_URL_ENV = "API_BASE_URL"
_FARM_ENV = "CLI_FARM_ID"
_REFRESH_INTERVAL_ENV = "CLI_POLL_INTERVAL"
_REQUEST_TIMEOUT_ENV = "CLI_POLL_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    farm_id: Optional[str] = None
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


def _positive_float(raw: Optional[str], default: float) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        parsed = float(raw.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    farm_id: Optional[str] = None,
    refresh_interval: Optional[float] = None,
    request_timeout: Optional[float] = None,
) -> CLIConfig:
    """Resolve CLI settings; explicit arguments win over environment variables."""
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    farm = farm_id or (os.getenv(_FARM_ENV) or "").strip() or None
    if refresh_interval is None:
        refresh_interval = _positive_float(os.getenv(_REFRESH_INTERVAL_ENV), DEFAULT_REFRESH_INTERVAL)
    if request_timeout is None:
        request_timeout = _positive_float(os.getenv(_REQUEST_TIMEOUT_ENV), DEFAULT_REQUEST_TIMEOUT)
    return CLIConfig(
        base_url=url.rstrip("/"),
        farm_id=farm,
        refresh_interval=refresh_interval,
        request_timeout=request_timeout,
    )
