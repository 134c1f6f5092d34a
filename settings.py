from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple


_DB_PATH_ENV = "READINGS_DB_PATH"
_STORAGE_TIMEOUT_ENV = "STORAGE_TIMEOUT_SECONDS"
_QUEUE_SIZE_ENV = "SUBSCRIBER_QUEUE_SIZE"
_KEEPALIVE_ENV = "STREAM_KEEPALIVE_SECONDS"
_CORS_ORIGINS_ENV = "CORS_ORIGINS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    database_path: str
    storage_timeout_seconds: float
    subscriber_queue_size: int
    stream_keepalive_seconds: float
    cors_origins: Tuple[str, ...]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


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


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_origins(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_CORS_ORIGINS_ENV)
    if value is None:
        return default
    origins = tuple(part.strip() for part in value.split(",") if part.strip())
    return origins or default


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
        database_path=_read_str_env(_DB_PATH_ENV, "./tmp/readings.db"),
        storage_timeout_seconds=_read_positive_float(_STORAGE_TIMEOUT_ENV, 5.0),
        subscriber_queue_size=_read_positive_int(_QUEUE_SIZE_ENV, 100),
        stream_keepalive_seconds=_read_positive_float(_KEEPALIVE_ENV, 15.0),
        cors_origins=_read_origins(("*",)),
        log_level=_read_log_level("INFO"),
    )
