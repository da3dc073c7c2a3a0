from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "READINGS_STORE_PATH"
_INTERVAL_ENV = "LOGGER_INTERVAL_MS"
_TTL_ENV = "CACHE_TTL_MS"
_AUTOSTART_ENV = "LOGGER_AUTOSTART"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    readings_store_path: Optional[str]
    logger_interval_ms: int
    cache_ttl_ms: int
    logger_autostart: bool
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
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
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
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
        readings_store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/readings.json"),
        logger_interval_ms=_read_positive_int(_INTERVAL_ENV, 5000),
        cache_ttl_ms=_read_positive_int(_TTL_ENV, 30000),
        logger_autostart=_read_bool(_AUTOSTART_ENV, False),
        log_level=_read_log_level("INFO"),
    )
