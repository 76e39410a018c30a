"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import datetime

import pendulum

DEFAULT_TZ = "UTC"

TIMEFRAMES = {
    "7d": pendulum.duration(days=7),
    "30d": pendulum.duration(days=30),
    "90d": pendulum.duration(days=90),
    "1y": pendulum.duration(days=365),
}


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def utcnow() -> pendulum.DateTime:
    return pendulum.now("UTC")


def parse_timestamp(value: str) -> datetime:
    return pendulum.parse(value)


def timeframe_start(timeframe: str, *, now: datetime | None = None) -> pendulum.DateTime:
    try:
        span = TIMEFRAMES[timeframe]
    except KeyError:
        raise ValueError(f"Unsupported timeframe {timeframe!r}; expected one of {', '.join(TIMEFRAMES)}") from None
    reference = pendulum.instance(now) if now else utcnow()
    return reference - span
