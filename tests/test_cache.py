import json
from decimal import Decimal

import pytest

from pricehub.cache import MemoryCacheStore, PriceCache
from pricehub.cache.prices import comparison_key, history_key, price_key
from pricehub.pricing.models import ComparisonResult, HistoryPoint
from pricehub.utils.dates import utcnow


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(clock):
    store = MemoryCacheStore(clock=clock)
    await store.set("k", "v", 60)
    clock.advance(59)
    assert await store.get("k") == "v"
    clock.advance(1)
    assert await store.get("k") is None
    assert await store.scan("k") == []


@pytest.mark.asyncio
async def test_last_write_wins_and_resets_ttl(clock):
    store = MemoryCacheStore(clock=clock)
    await store.set("k", "first", 10)
    clock.advance(8)
    await store.set("k", "second", 10)
    clock.advance(8)
    assert await store.get("k") == "second"


@pytest.mark.asyncio
async def test_rejects_non_positive_ttl(clock):
    with pytest.raises(ValueError):
        await MemoryCacheStore(clock=clock).set("k", "v", 0)


@pytest.mark.asyncio
async def test_prices_round_trip_sorted(cache, clock, price_factory):
    await cache.set_price("abc", price_factory("Shop B", "12.50", original_price="15.00"))
    await cache.set_price("abc", price_factory("Shop A", "10.00"))
    await cache.set_price("other", price_factory("Shop A", "1.00"))

    prices = await cache.get_all_for_product("abc")
    assert [(p.retailer, p.price) for p in prices] == [("Shop A", Decimal("10.00")), ("Shop B", Decimal("12.50"))]
    assert prices[1].original_price == Decimal("15.00")
    assert (await cache.get_price("abc", "Shop B")).price == Decimal("12.50")

    clock.advance(cache.price_ttl)
    assert await cache.get_all_for_product("abc") == []


@pytest.mark.asyncio
async def test_comparison_and_history_entries(cache, price_factory):
    result = ComparisonResult(product_key="abc", search_term="lamp", prices=[price_factory("Shop A", "3")])
    await cache.set_comparison(result)
    cached = await cache.get_comparison("abc", None)
    assert cached.lowest_price == Decimal("3")
    assert await cache.get_comparison("abc", "BR") is None

    await cache.set_history("abc", "7d", None, [HistoryPoint(timestamp=utcnow(), price=Decimal("3.00"))])
    assert (await cache.get_history("abc", "7d", None))[0].price == Decimal("3.00")
    assert await cache.get_history("abc", "7d", "Shop A") is None
    await cache.set_history("abc", "30d", None, [])
    assert await cache.get_history("abc", "30d", None) == []


def test_key_layout():
    assert price_key("abc", "Shop A").startswith("price:abc:")
    assert ":" not in price_key("abc", "a:b*c")[len("price:abc:"):]
    assert comparison_key("abc", None) == "comparison:abc:all"
    assert history_key("abc", "30d", None) == "history:abc:30d:all"


@pytest.mark.asyncio
async def test_raw_helpers(cache):
    await cache.set("custom", json.dumps({"a": 1}), 5)
    assert json.loads(await cache.get("custom")) == {"a": 1}
    await cache.delete("custom")
    assert await cache.get("custom") is None
