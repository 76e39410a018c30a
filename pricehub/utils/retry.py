"""Retry helpers for vendor API calls."""

from __future__ import annotations

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable

import httpx

RETRY_EXCEPTIONS = (httpx.TransportError, asyncio.TimeoutError)
ATTEMPTS = 3
BASE_DELAY = 1.0


def retry_async(func: Callable[..., Awaitable]):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        delay = BASE_DELAY
        for attempt in range(ATTEMPTS):
            try:
                return await func(*args, **kwargs)
            except RETRY_EXCEPTIONS:
                if attempt == ATTEMPTS - 1:
                    raise
                await asyncio.sleep(delay + random.random() * BASE_DELAY)
                delay *= 2
    return wrapper
