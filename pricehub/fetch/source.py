"""Single-retailer lookup: search term to priced offer."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

import httpx
from playwright.async_api import Error as PlaywrightError

from pricehub.errors import ExtractionFailure, PoolExhaustedError
from pricehub.fetch.api import ApiSource
from pricehub.fetch.pool import RenderPool
from pricehub.fetch.scrape import ScrapeSource
from pricehub.pricing.models import ProductPrice
from pricehub.retailers.models import ApiRetailerConfig, RetailerConfig
from pricehub.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Anything a flaky page, vendor API or malformed payload can throw.
RECOVERABLE = (
    httpx.HTTPError,
    PlaywrightError,
    PoolExhaustedError,
    asyncio.TimeoutError,
    ValueError,
    KeyError,
    TypeError,
    IndexError,
)


class SourceFetcher:
    """Dispatches to the API or page-scrape path by retailer config type.

    Every failure surfaces as ``ExtractionFailure``.
    """

    def __init__(
        self,
        pool: RenderPool,
        *,
        session: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        nav_timeout_ms: int = 30000,
        selector_timeout_ms: int = 10000,
    ) -> None:
        limiter = rate_limiter or RateLimiter()
        self.pool = pool
        self.api = ApiSource(
            session or httpx.AsyncClient(timeout=30.0, follow_redirects=True, headers={"User-Agent": "PriceHub/1.0"}),
            limiter,
        )
        self.scrape = ScrapeSource(
            pool,
            limiter,
            nav_timeout_ms=nav_timeout_ms,
            selector_timeout_ms=selector_timeout_ms,
        )

    async def search(self, config: RetailerConfig, search_term: str) -> str:
        if isinstance(config, ApiRetailerConfig):
            return await self._guard(config, "search", self.api.search(config, search_term))
        return await self._guard(config, "search", self.scrape.search(config, search_term))

    async def extract_price(self, config: RetailerConfig, source_url: str) -> ProductPrice:
        if isinstance(config, ApiRetailerConfig):
            return await self._guard(config, "extract", self.api.extract_price(config, source_url))
        return await self._guard(config, "extract", self.scrape.extract_price(config, source_url))

    async def fetch(self, config: RetailerConfig, search_term: str) -> ProductPrice:
        source_url = await self.search(config, search_term)
        return await self.extract_price(config, source_url)

    async def close(self) -> None:
        await self.api.session.aclose()

    async def _guard(self, config: RetailerConfig, step: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except ExtractionFailure:
            raise
        except RECOVERABLE as exc:
            raise ExtractionFailure(config.name, f"{step} failed: {exc.__class__.__name__}: {exc}") from exc
