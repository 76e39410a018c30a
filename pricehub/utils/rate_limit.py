"""Per-retailer request pacing."""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict


class RateLimiter:
    """Spaces requests to one retailer at least ``60 / per_minute`` seconds apart."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_request: dict[str, float] = defaultdict(lambda: float("-inf"))

    async def wait_for(self, retailer: str, per_minute: int) -> None:
        lock = self._locks[retailer]
        async with lock:
            now = time.monotonic()
            elapsed = now - self._last_request[retailer]
            min_interval = 60.0 / per_minute
            if elapsed < min_interval:
                await asyncio.sleep(min_interval - elapsed)
            self._last_request[retailer] = time.monotonic()
