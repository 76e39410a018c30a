import asyncio
from decimal import Decimal
from pathlib import Path

import httpx
import pytest
import respx

from conftest import FakeFactory
from pricehub.errors import ExtractionFailure, ProductNotFound
from pricehub.fetch import RenderPool, SourceFetcher
from pricehub.fetch.api import lookup
from pricehub.fetch.scrape import first_product_link
from pricehub.pricing.models import Availability
from pricehub.retailers.models import ApiRetailerConfig, Currency
from pricehub.utils import retry

FIXTURES = Path(__file__).parent / "fixtures" / "http"

SEARCH_URL = "https://www.shopa.com/search?q=desk%20lamp"
PRODUCT_URL = "https://www.shopa.com/product/desk-lamp-42?ref=search"


def load_fixture(path: str) -> str:
    return (FIXTURES / path).read_text(encoding="utf-8")


def api_retailer(**overrides):
    data = {
        "name": "TestMart",
        "country": "US",
        "base_url": "https://api.testmart.com",
        "rate_limit_per_minute": 6000,
        "search_path": "/v1/search",
        "search_param": "query",
        "results_path": "items",
        "item_id_field": "itemId",
        "item_path": "/v1/items/{item_id}",
        "fields": {
            "price": "salePrice",
            "original_price": "msrp",
            "availability": "stock",
            "url": "productUrl",
            "title": "name",
            "shipping_cost": "standardShipRate",
        },
        "key_param": "apiKey",
        "api_key": "k",
        "params": {"format": "json"},
    }
    data.update(overrides)
    return ApiRetailerConfig(**data)


def test_lookup_follows_dotted_paths():
    data = {"a": [{"b": {"c": "1.5"}}], "n": None}
    assert lookup(data, "a.0.b.c") == "1.5"
    assert lookup(data, "a.3.b") is None
    assert lookup(data, "n.x") is None
    assert lookup(data, None) is None


def test_first_product_link_skips_non_product_links():
    html = load_fixture("pages/search.html")
    selectors = ('a[href*="/dp/"]', 'a[href*="/product"]')
    assert first_product_link(html, selectors, "https://www.shopa.com") == PRODUCT_URL
    assert first_product_link("<a href='#'>x</a>", selectors, "https://www.shopa.com") is None


@pytest.mark.asyncio
async def test_api_fetch():
    config = api_retailer()
    async with respx.mock(assert_all_called=True) as router:
        search = router.get("https://api.testmart.com/v1/search").mock(
            return_value=httpx.Response(200, text=load_fixture("api/search.json"))
        )
        item = router.get("https://api.testmart.com/v1/items/12345").mock(
            return_value=httpx.Response(200, text=load_fixture("api/item.json"))
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            fetcher = SourceFetcher(RenderPool(FakeFactory()), session=session)
            price = await fetcher.fetch(config, "desk lamp")
    params = search.calls.last.request.url.params
    assert params["query"] == "desk lamp"
    assert params["apiKey"] == "k"
    assert params["format"] == "json"
    assert item.calls.last.request.url.params["apiKey"] == "k"
    assert price.retailer == "TestMart"
    assert price.price == Decimal("19.99")
    assert price.original_price == Decimal("24.99")
    assert price.discount_percent == Decimal("20.01")
    assert price.shipping_cost == Decimal("0.0")
    assert price.currency is Currency.USD
    assert price.availability is Availability.IN_STOCK
    assert price.source_url == "https://www.testmart.com/ip/12345"
    assert price.title == "Desk Lamp"


@pytest.mark.asyncio
async def test_api_no_results_is_product_not_found():
    async with respx.mock() as router:
        router.get("https://api.testmart.com/v1/search").mock(return_value=httpx.Response(200, json={"items": []}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            fetcher = SourceFetcher(RenderPool(FakeFactory()), session=session)
            with pytest.raises(ProductNotFound):
                await fetcher.search(api_retailer(), "nothing")


@pytest.mark.asyncio
async def test_api_errors_become_extraction_failures():
    async with respx.mock() as router:
        router.get("https://api.testmart.com/v1/search").mock(return_value=httpx.Response(503))
        router.get("https://api.testmart.com/v1/items/1").mock(return_value=httpx.Response(200, json={"name": "x"}))
        router.get("https://api.testmart.com/v1/items/2").mock(return_value=httpx.Response(200, text="<html>"))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            fetcher = SourceFetcher(RenderPool(FakeFactory()), session=session)
            with pytest.raises(ExtractionFailure) as search_error:
                await fetcher.search(api_retailer(), "lamp")
            with pytest.raises(ExtractionFailure, match="price missing"):
                await fetcher.extract_price(api_retailer(), "https://api.testmart.com/v1/items/1")
            with pytest.raises(ExtractionFailure):
                await fetcher.extract_price(api_retailer(), "https://api.testmart.com/v1/items/2")
    assert search_error.value.retailer == "TestMart"
    assert "503" in search_error.value.reason


@pytest.mark.asyncio
async def test_api_transport_errors_are_retried(monkeypatch):
    monkeypatch.setattr(retry, "BASE_DELAY", 0)
    async with respx.mock() as router:
        route = router.get("https://api.testmart.com/v1/items/12345").mock(
            side_effect=[httpx.ConnectError("reset"), httpx.Response(200, text=load_fixture("api/item.json"))]
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            fetcher = SourceFetcher(RenderPool(FakeFactory()), session=session)
            price = await fetcher.extract_price(api_retailer(), "https://api.testmart.com/v1/items/12345")
    assert route.call_count == 2
    assert price.price == Decimal("19.99")


@pytest.mark.asyncio
async def test_scrape_fetch(retailer_factory):
    config = retailer_factory("Shop A", country="BR")
    factory = FakeFactory(
        {SEARCH_URL: load_fixture("pages/search.html"), PRODUCT_URL: load_fixture("pages/product.html")}
    )
    pool = RenderPool(factory, capacity=2)
    fetcher = SourceFetcher(pool, selector_timeout_ms=100)
    try:
        price = await fetcher.fetch(config, "desk lamp")
    finally:
        await fetcher.close()
        await pool.close()
    assert price.price == Decimal("1299.90")
    assert price.original_price == Decimal("1499.90")
    assert price.discount_percent == Decimal("13.33")
    assert price.currency is Currency.BRL
    assert price.availability is Availability.LIMITED_STOCK
    assert price.title == "Desk Lamp"
    assert price.source_url == PRODUCT_URL
    # both steps reuse the one pooled session
    assert len(factory.sessions) == 1
    assert factory.sessions[0].visited == [SEARCH_URL, PRODUCT_URL]


@pytest.mark.asyncio
async def test_scrape_failures(retailer_factory):
    config = retailer_factory("Shop A")
    factory = FakeFactory({"https://www.shopa.com/search?q=lamp": "<html><a href='/help'>help</a></html>"})
    pool = RenderPool(factory, capacity=1)
    fetcher = SourceFetcher(pool, selector_timeout_ms=100)
    try:
        with pytest.raises(ProductNotFound):
            await fetcher.search(config, "lamp")
        with pytest.raises(ExtractionFailure, match="extract failed"):
            await fetcher.extract_price(config, "https://www.shopa.com/product/empty")
    finally:
        await fetcher.close()
        await pool.close()


@pytest.mark.asyncio
async def test_pool_exhaustion_becomes_extraction_failure(retailer_factory):
    pool = RenderPool(FakeFactory(fail=True), capacity=1)
    fetcher = SourceFetcher(pool)
    try:
        with pytest.raises(ExtractionFailure) as excinfo:
            await fetcher.fetch(retailer_factory("Shop A"), "lamp")
    finally:
        await fetcher.close()
    assert excinfo.value.retailer == "Shop A"


@pytest.mark.asyncio
async def test_concurrent_scrapes_stay_within_pool_bound(retailer_factory):
    configs = [retailer_factory(f"Shop {n}") for n in range(8)]
    factory = FakeFactory({f"{config.base_url}/p": load_fixture("pages/product.html") for config in configs})
    pool = RenderPool(factory, capacity=5, ceiling=5, acquire_timeout=5)
    fetcher = SourceFetcher(pool, selector_timeout_ms=100)
    try:
        prices = await asyncio.wait_for(
            asyncio.gather(*(fetcher.extract_price(config, f"{config.base_url}/p") for config in configs)), 5
        )
    finally:
        await fetcher.close()
        await pool.close()
    assert len(prices) == 8
    assert pool.peak_open <= 5
    assert len(factory.sessions) <= 5


@pytest.mark.asyncio
async def test_api_key_is_never_sent_to_a_foreign_host():
    async with respx.mock(assert_all_called=False) as router:
        foreign = router.get("https://elsewhere.example/x").mock(return_value=httpx.Response(200, json={}))
        async with httpx.AsyncClient(transport=httpx.MockTransport(router.async_handler)) as session:
            fetcher = SourceFetcher(RenderPool(FakeFactory()), session=session)
            with pytest.raises(ExtractionFailure, match="foreign URL"):
                await fetcher.extract_price(api_retailer(), "https://elsewhere.example/x")
    assert not foreign.called
