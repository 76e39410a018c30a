"""Fan a search out to every retailer and rank what comes back."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace
from typing import Any, Mapping, Sequence

from pricehub.cache import PriceCache
from pricehub.db.history import PriceHistoryStore
from pricehub.errors import AggregationError, ExtractionFailure, PriceHubError
from pricehub.events import COMPARISON_COMPLETE, PRICE_UPDATE, EventPublisher, emit
from pricehub.fetch import SourceFetcher
from pricehub.pricing.models import ComparisonResult, ProductPrice, sort_by_price
from pricehub.pricing.normalize import product_key as make_product_key
from pricehub.retailers import RetailerRegistry
from pricehub.retailers.models import Country, RetailerConfig

logger = logging.getLogger(__name__)

MAX_BULK_ITEMS = 10


class Aggregator:
    def __init__(
        self,
        registry: RetailerRegistry,
        fetcher: SourceFetcher,
        cache: PriceCache,
        publisher: EventPublisher,
        *,
        history: PriceHistoryStore | None = None,
        concurrency: int = 8,
        task_timeout: float = 45.0,
        price_ttl: int | None = None,
    ) -> None:
        self.registry = registry
        self.fetcher = fetcher
        self.cache = cache
        self.publisher = publisher
        self.history = history
        self.concurrency = max(1, concurrency)
        self.task_timeout = task_timeout
        self.price_ttl = price_ttl or cache.price_ttl

    async def compare(
        self,
        search_term: str,
        *,
        product_key: str | None = None,
        country: Country | str | None = None,
        cache_ttl: int | None = None,
    ) -> ComparisonResult:
        """Best-effort comparison across every (country-matching) retailer.

        Individual retailer failures are logged and dropped; a comparison in
        which every retailer failed is still a valid, empty result.
        """
        term = (search_term or "").strip()
        if not term:
            raise AggregationError("search_term must not be empty")
        wanted = Country(country) if country else None
        retailers = self.registry.list(wanted)
        if not retailers:
            raise AggregationError(f"No retailers configured for {wanted.value if wanted else 'any country'}")
        key = product_key or make_product_key(term)

        ranked = sort_by_price(await self._fan_out(retailers, term))
        if ranked:
            ranked[0] = replace(ranked[0], is_lowest=True)
        else:
            logger.warning("No prices found for %r across %s retailers", term, len(retailers))
        result = ComparisonResult(product_key=key, search_term=term, prices=ranked, country=wanted)

        ttl = cache_ttl or self.price_ttl
        for price in ranked:
            await self.cache.set_price(key, price, ttl)
            await emit(self.publisher, PRICE_UPDATE, {"product_key": key, "price": price.to_dict()})
        await self._record_history(key, ranked)
        await emit(
            self.publisher,
            COMPARISON_COMPLETE,
            {
                "product_key": key,
                "search_term": term,
                "retailer_count": result.retailer_count,
                "lowest_price": str(result.lowest_price) if ranked else None,
            },
        )
        logger.info("Compared %r: %s/%s retailers priced", term, len(ranked), len(retailers))
        return result

    async def fetch_single(
        self,
        retailer: str,
        *,
        product_url: str | None = None,
        search_term: str | None = None,
    ) -> ProductPrice | None:
        config = self.registry.get(retailer)
        term = (search_term or "").strip()
        if not product_url and not term:
            raise AggregationError("Either product_url or search_term is required")
        if product_url and not config.owns_url(product_url):
            raise AggregationError(f"product_url is not a {config.name} URL")
        try:
            if product_url:
                call = self.fetcher.extract_price(config, product_url)
            else:
                call = self.fetcher.fetch(config, term)
            price = await asyncio.wait_for(call, self.task_timeout)
        except ExtractionFailure as exc:
            logger.info("No single price from %s: %s", retailer, exc.reason)
            return None
        except asyncio.TimeoutError:
            logger.warning("%s: single lookup timed out after %.0fs", retailer, self.task_timeout)
            return None
        if term:
            key = make_product_key(term)
            await self.cache.set_price(key, price, self.price_ttl)
            await emit(self.publisher, PRICE_UPDATE, {"product_key": key, "price": price.to_dict()})
        return price

    async def compare_many(
        self,
        items: Sequence[Mapping[str, Any]],
        *,
        country: Country | str | None = None,
        concurrency: int = 3,
    ) -> list[dict[str, Any]]:
        """Compare up to ten products; per-item failures are reported inline."""
        if not items:
            raise AggregationError("At least one product is required")
        if len(items) > MAX_BULK_ITEMS:
            raise AggregationError(f"Maximum {MAX_BULK_ITEMS} products allowed per bulk comparison")
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def run(item: Mapping[str, Any]) -> dict[str, Any]:
            term = item.get("search_term") or ""
            entry: dict[str, Any] = {"search_term": term, "product_key": item.get("product_key")}
            async with semaphore:
                try:
                    result = await self.compare(term, product_key=item.get("product_key"), country=country)
                except (PriceHubError, ValueError) as exc:
                    logger.error("Bulk compare failed for %r: %s", term, exc)
                    entry.update(success=False, error=str(exc), result=None)
                    return entry
            entry.update(success=True, error=None, result=result, product_key=result.product_key)
            return entry

        return list(await asyncio.gather(*(run(item) for item in items)))

    async def _fan_out(self, retailers: Sequence[RetailerConfig], term: str) -> list[ProductPrice]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(config: RetailerConfig) -> ProductPrice:
            async with semaphore:
                return await asyncio.wait_for(self.fetcher.fetch(config, term), self.task_timeout)

        tasks = [asyncio.create_task(run(config), name=f"fetch:{config.name}") for config in retailers]
        deadline = self.task_timeout * math.ceil(len(retailers) / self.concurrency)
        try:
            await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), deadline)
        except asyncio.TimeoutError:
            logger.warning("Comparison for %r hit the %.0fs deadline; cancelling stragglers", term, deadline)

        prices = []
        for config, task in zip(retailers, tasks):
            if task.cancelled():
                logger.warning("%s: cancelled at deadline", config.name)
                continue
            exc = task.exception()
            if exc is None:
                prices.append(task.result())
            elif isinstance(exc, ExtractionFailure):
                logger.warning("%s", exc)
            elif isinstance(exc, asyncio.TimeoutError):
                logger.warning("%s: timed out after %.0fs", config.name, self.task_timeout)
            else:
                logger.error("%s: unexpected fetch error", config.name, exc_info=exc)
        return prices

    async def _record_history(self, product_key: str, prices: list[ProductPrice]) -> None:
        if self.history is None or not prices:
            return
        try:
            await self.history.record(product_key, prices)
        except Exception:
            logger.exception("Failed to record price history for %s", product_key)
