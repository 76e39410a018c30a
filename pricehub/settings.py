"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass


def env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if min_value is not None:
        value = max(min_value, value)
    return value


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(slots=True)
class Settings:
    log_level: str = "INFO"
    redis_url: str = "redis://localhost:6379/0"
    cache_backend: str = "memory"
    database_url: str = "sqlite:///data/pricehub.db"
    event_backend: str = "log"
    retailers_path: str | None = None

    # Fetching
    fetch_concurrency: int = 8
    fetch_timeout_seconds: float = 45.0
    nav_timeout_ms: int = 30000
    selector_timeout_ms: int = 10000
    pool_capacity: int = 5
    pool_ceiling: int = 10
    pool_acquire_timeout: float = 30.0

    # Cache TTLs
    price_ttl_seconds: int = 30 * 60
    comparison_ttl_seconds: int = 30 * 60
    history_ttl_seconds: int = 60 * 60

    # Monitoring
    monitor_interval_seconds: int = 30 * 60
    monitor_threshold_percent: float = 5.0
    subscription_ttl_seconds: int = 24 * 60 * 60
    monitor_max_per_owner: int = 10

    history_retention_days: int = 365

    @classmethod
    def from_env(cls) -> "Settings":
        capacity = env_int("POOL_CAPACITY", 5, min_value=1)
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            cache_backend=os.environ.get("CACHE_BACKEND", "memory").lower(),
            database_url=os.environ.get("DATABASE_URL", "sqlite:///data/pricehub.db"),
            event_backend=os.environ.get("EVENT_BACKEND", "log").lower(),
            retailers_path=os.environ.get("RETAILERS_PATH") or None,
            fetch_concurrency=env_int("FETCH_CONCURRENCY", 8, min_value=1),
            fetch_timeout_seconds=env_float("FETCH_TIMEOUT_SECONDS", 45.0),
            nav_timeout_ms=env_int("NAV_TIMEOUT_MS", 30000, min_value=1000),
            selector_timeout_ms=env_int("SELECTOR_TIMEOUT_MS", 10000, min_value=500),
            pool_capacity=capacity,
            pool_ceiling=env_int("POOL_CEILING", capacity * 2, min_value=capacity),
            pool_acquire_timeout=env_float("POOL_ACQUIRE_TIMEOUT", 30.0),
            price_ttl_seconds=env_int("PRICE_TTL_SECONDS", 30 * 60, min_value=1),
            comparison_ttl_seconds=env_int("COMPARISON_TTL_SECONDS", 30 * 60, min_value=1),
            history_ttl_seconds=env_int("HISTORY_TTL_SECONDS", 60 * 60, min_value=1),
            monitor_interval_seconds=env_int("MONITOR_INTERVAL_SECONDS", 30 * 60, min_value=1),
            monitor_threshold_percent=env_float("MONITOR_THRESHOLD_PERCENT", 5.0),
            subscription_ttl_seconds=env_int("SUBSCRIPTION_TTL_SECONDS", 24 * 60 * 60, min_value=1),
            monitor_max_per_owner=env_int("MONITOR_MAX_PER_OWNER", 10, min_value=1),
            history_retention_days=env_int("HISTORY_RETENTION_DAYS", 365, min_value=1),
        )
