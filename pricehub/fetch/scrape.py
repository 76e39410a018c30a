"""Rendered-page lookups."""

from __future__ import annotations

import logging
from typing import Iterable
from urllib.parse import quote, urljoin

from bs4 import BeautifulSoup

from pricehub.errors import ProductNotFound
from pricehub.fetch.pool import RenderPool, RenderSession
from pricehub.pricing.models import ProductPrice
from pricehub.pricing.normalize import discount_percent, parse_availability, parse_price
from pricehub.retailers.models import ScrapeRetailerConfig
from pricehub.utils.dates import utcnow
from pricehub.utils.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def first_product_link(html: str, selectors: Iterable[str], base_url: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    for selector in selectors:
        for link in soup.select(selector):
            href = (link.get("href") or "").strip()
            if href and not href.startswith(("#", "javascript:")):
                return urljoin(base_url + "/", href)
    return None


class ScrapeSource:
    def __init__(
        self,
        pool: RenderPool,
        rate_limiter: RateLimiter,
        *,
        nav_timeout_ms: int = 30000,
        selector_timeout_ms: int = 10000,
    ) -> None:
        self.pool = pool
        self.rate_limiter = rate_limiter
        self.nav_timeout_ms = nav_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms

    def search_url(self, config: ScrapeRetailerConfig, search_term: str) -> str:
        return config.resolve_url(config.search_path.format(term=quote(search_term.strip(), safe="")))

    async def search(self, config: ScrapeRetailerConfig, search_term: str) -> str:
        url = self.search_url(config, search_term)
        await self.rate_limiter.wait_for(config.name, config.rate_limit_per_minute)
        async with self.pool.lease() as session:
            await session.goto(url, timeout_ms=self.nav_timeout_ms, headers=config.headers)
            html = await session.content()
        link = first_product_link(html, config.link_selectors, config.base_url)
        if not link:
            raise ProductNotFound(config.name, f"no product link on {url}")
        logger.debug("%s: %r resolved to %s", config.name, search_term, link)
        return link

    async def extract_price(self, config: ScrapeRetailerConfig, url: str) -> ProductPrice:
        await self.rate_limiter.wait_for(config.name, config.rate_limit_per_minute)
        async with self.pool.lease() as session:
            await session.goto(url, timeout_ms=self.nav_timeout_ms, headers=config.headers)
            price_text = await session.wait_for_text(config.selectors["price"], timeout_ms=self.selector_timeout_ms)
            availability_text = await self._optional_text(session, config, "availability")
            original_text = await self._optional_text(session, config, "original_price")
            title = await self._optional_text(session, config, "title")
        price = parse_price(price_text)
        original = parse_price(original_text) if original_text else None
        if original is not None and original < price:
            original = None
        return ProductPrice(
            retailer=config.name,
            price=price,
            original_price=original,
            currency=config.currency,
            availability=parse_availability(availability_text),
            source_url=url,
            title=title,
            discount_percent=discount_percent(price, original),
            last_updated=utcnow(),
        )

    async def _optional_text(self, session: RenderSession, config: ScrapeRetailerConfig, name: str) -> str | None:
        selector = config.selectors.get(name)
        if not selector:
            return None
        return await session.text_of(selector)
