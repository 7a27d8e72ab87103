"""
Environment-driven settings.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    youtube_api_key: Optional[str]
    db_path: str
    rate_limit_max_requests: int
    rate_limit_window_ms: int
    rate_limit_max_keys: int
    request_timeout: float
    default_max_results: int
    persist_queue_size: int
    log_level: str


def _int_from_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int value for %s=%s; using default %s", key, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive value for %s=%s; using default %s", key, raw, default)
        return default
    return value


def _float_from_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid number for %s=%s; using default %s", key, raw, default)
        return default
    return value if value > 0 else default


def load_settings() -> Settings:
    return Settings(
        youtube_api_key=os.getenv("YOUTUBE_API_KEY") or None,
        db_path=os.getenv("VIRAL_FINDER_DB_PATH") or "data.db",
        rate_limit_max_requests=_int_from_env("VIRAL_FINDER_RATE_LIMIT_MAX_REQUESTS", 50),
        rate_limit_window_ms=_int_from_env("VIRAL_FINDER_RATE_LIMIT_WINDOW_MS", 3_600_000),
        rate_limit_max_keys=_int_from_env("VIRAL_FINDER_RATE_LIMIT_MAX_KEYS", 10_000),
        request_timeout=_float_from_env("VIRAL_FINDER_REQUEST_TIMEOUT", 30.0),
        default_max_results=min(50, _int_from_env("VIRAL_FINDER_DEFAULT_MAX_RESULTS", 20)),
        persist_queue_size=_int_from_env("VIRAL_FINDER_PERSIST_QUEUE_SIZE", 1000),
        log_level=(os.getenv("VIRAL_FINDER_LOG_LEVEL") or "INFO").upper(),
    )
