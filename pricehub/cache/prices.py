"""Typed access to cached prices, comparisons and history."""

from __future__ import annotations

import base64
import json
import logging

from pricehub.cache.store import CacheStore
from pricehub.pricing.models import ComparisonResult, HistoryPoint, ProductPrice, sort_by_price

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    # retailer names and search terms may contain ':' or '*'
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def price_key(product_key: str, retailer: str) -> str:
    return f"price:{product_key}:{_segment(retailer)}"


def comparison_key(product_key: str, country: str | None) -> str:
    return f"comparison:{product_key}:{country or 'all'}"


def history_key(product_key: str, timeframe: str, retailer: str | None) -> str:
    return f"history:{product_key}:{timeframe}:{_segment(retailer) if retailer else 'all'}"


class PriceCache:
    """Last-known prices per (product, retailer) plus derived results."""

    def __init__(
        self,
        store: CacheStore,
        *,
        price_ttl: int = 1800,
        comparison_ttl: int = 1800,
        history_ttl: int = 3600,
    ) -> None:
        self.store = store
        self.price_ttl = price_ttl
        self.comparison_ttl = comparison_ttl
        self.history_ttl = history_ttl

    async def get(self, key: str) -> str | None:
        return await self.store.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.store.set(key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.store.delete(key)

    async def get_price(self, product_key: str, retailer: str) -> ProductPrice | None:
        raw = await self.store.get(price_key(product_key, retailer))
        return ProductPrice.from_dict(json.loads(raw)) if raw else None

    async def set_price(self, product_key: str, price: ProductPrice, ttl_seconds: int | None = None) -> None:
        await self.store.set(
            price_key(product_key, price.retailer),
            json.dumps(price.to_dict()),
            ttl_seconds or self.price_ttl,
        )

    async def get_all_for_product(self, product_key: str) -> list[ProductPrice]:
        prices = []
        for key in await self.store.scan(f"price:{product_key}:"):
            raw = await self.store.get(key)
            # expired between scan and get
            if raw is None:
                continue
            prices.append(ProductPrice.from_dict(json.loads(raw)))
        return sort_by_price(prices)

    async def get_comparison(self, product_key: str, country: str | None) -> ComparisonResult | None:
        raw = await self.store.get(comparison_key(product_key, country))
        if not raw:
            return None
        return ComparisonResult.from_dict(json.loads(raw))

    async def set_comparison(self, result: ComparisonResult) -> None:
        country = result.country.value if result.country else None
        await self.store.set(
            comparison_key(result.product_key, country),
            json.dumps(result.to_dict()),
            self.comparison_ttl,
        )

    async def get_history(self, product_key: str, timeframe: str, retailer: str | None) -> list[HistoryPoint] | None:
        raw = await self.store.get(history_key(product_key, timeframe, retailer))
        if raw is None:
            return None
        return [HistoryPoint.from_dict(item) for item in json.loads(raw)]

    async def set_history(
        self, product_key: str, timeframe: str, retailer: str | None, points: list[HistoryPoint]
    ) -> None:
        await self.store.set(
            history_key(product_key, timeframe, retailer),
            json.dumps([point.to_dict() for point in points]),
            self.history_ttl,
        )
