"""Vendor JSON API lookups."""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from pricehub.errors import ExtractionFailure, ProductNotFound
from pricehub.pricing.models import ProductPrice
from pricehub.pricing.normalize import availability_from_value, discount_percent, to_decimal
from pricehub.retailers.models import ApiRetailerConfig
from pricehub.utils.dates import utcnow
from pricehub.utils.rate_limit import RateLimiter
from pricehub.utils.retry import retry_async

logger = logging.getLogger(__name__)


def lookup(data: Any, path: str | None) -> Any:
    """Follow a dotted path such as ``Item.CurrentPrice.Value`` or ``items.0.id``."""
    if not path:
        return None
    current = data
    for part in path.split("."):
        if isinstance(current, list):
            if not part.isdigit() or int(part) >= len(current):
                return None
            current = current[int(part)]
        elif isinstance(current, Mapping):
            current = current.get(part)
        else:
            return None
        if current is None:
            return None
    return current


class ApiSource:
    def __init__(self, session: httpx.AsyncClient, rate_limiter: RateLimiter) -> None:
        self.session = session
        self.rate_limiter = rate_limiter

    async def search(self, config: ApiRetailerConfig, search_term: str) -> str:
        params = {**config.params, **config.auth_params(), config.search_param: search_term}
        data = await self._get_json(config, config.resolve_url(config.search_path), params)
        results = lookup(data, config.results_path)
        if isinstance(results, list):
            results = results[0] if results else None
        item_id = lookup(results, config.item_id_field) if results else None
        if item_id in (None, ""):
            raise ProductNotFound(config.name, f"no results for {search_term!r}")
        item_path = config.item_path.format(item_id=quote(str(item_id), safe=""))
        return config.resolve_url(item_path)

    async def extract_price(self, config: ApiRetailerConfig, url: str) -> ProductPrice:
        # credentials only go to the vendor's own host
        if not config.owns_url(url):
            raise ExtractionFailure(config.name, f"refusing to fetch foreign URL {url!r}")
        params = {**config.params, **config.item_params, **config.auth_params()}
        data = await self._get_json(config, url, params)
        fields = config.fields
        price = to_decimal(lookup(data, fields["price"]))
        if price is None:
            raise ExtractionFailure(config.name, "price missing from response")
        original = to_decimal(lookup(data, fields.get("original_price")))
        if original is not None and original < price:
            original = None
        return ProductPrice(
            retailer=config.name,
            price=price,
            original_price=original,
            currency=lookup(data, fields.get("currency")) or config.currency,
            availability=availability_from_value(lookup(data, fields.get("availability"))),
            shipping_cost=to_decimal(lookup(data, fields.get("shipping_cost"))),
            source_url=lookup(data, fields.get("url")) or url,
            title=lookup(data, fields.get("title")),
            discount_percent=discount_percent(price, original),
            last_updated=utcnow(),
        )

    async def _get_json(self, config: ApiRetailerConfig, url: str, params: Mapping[str, str]) -> Any:
        await self.rate_limiter.wait_for(config.name, config.rate_limit_per_minute)
        response = await retry_async(self.session.get)(url, params=dict(params), headers=dict(config.headers))
        response.raise_for_status()
        return response.json()
