"""Outbound event publishing to connected clients."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

PRICE_UPDATE = "price_update"
COMPARISON_COMPLETE = "price_comparison_complete"
SIGNIFICANT_PRICE_CHANGE = "significant_price_change"


class EventPublisher(Protocol):
    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None: ...

    async def close(self) -> None: ...


class LogPublisher:
    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        logger.info("Event (log) → %s: %s", topic, json.dumps(payload, default=str))

    async def close(self) -> None:
        return None


class RedisPublisher:
    """Publishes JSON on ``{prefix}:{topic}`` and a per-product channel.

    Delivery is at most once: a failed publish is logged and dropped.
    """

    def __init__(self, url: str, *, client: redis.Redis | None = None, prefix: str = "pricehub") -> None:
        self._client = client or redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def channels(self, topic: str, payload: Mapping[str, Any]) -> list[str]:
        channels = [f"{self._prefix}:{topic}"]
        product_key = payload.get("product_key")
        if product_key:
            channels.append(f"{self._prefix}:{topic}:{product_key}")
        return channels

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        message = json.dumps({"topic": topic, **payload}, default=str)
        for channel in self.channels(topic, payload):
            try:
                await self._client.publish(channel, message)
            except RedisError as exc:
                logger.warning("Dropping %s event on %s: %s", topic, channel, exc)

    async def close(self) -> None:
        await self._client.aclose()


def create_publisher(backend: str, redis_url: str) -> EventPublisher:
    if backend == "redis":
        return RedisPublisher(redis_url)
    if backend != "log":
        logger.warning("Unknown event backend %r; logging events instead", backend)
    return LogPublisher()


async def emit(publisher: EventPublisher, topic: str, payload: Mapping[str, Any]) -> None:
    """Publish without letting a broken backend fail the caller."""
    try:
        await publisher.publish(topic, payload)
    except Exception:
        logger.exception("Failed to publish %s event", topic)
