import asyncio
from decimal import Decimal

import pytest

from pricehub.aggregator import Aggregator
from pricehub.errors import AggregationError, ExtractionFailure, UnknownRetailerError
from pricehub.events import COMPARISON_COMPLETE, PRICE_UPDATE
from pricehub.pricing.normalize import product_key
from pricehub.retailers import RetailerRegistry


@pytest.mark.asyncio
async def test_compare_end_to_end(aggregator, fetcher, cache, publisher, history):
    fetcher.prices.update({"Shop A": "12.50", "Shop B": "10.00", "Shop C": ExtractionFailure("Shop C", "blocked")})

    result = await aggregator.compare("desk lamp")

    assert [p.price for p in result.prices] == [Decimal("10.00"), Decimal("12.50")]
    assert result.lowest_price == Decimal("10.00")
    assert result.highest_price == Decimal("12.50")
    assert result.average_price == Decimal("11.25")
    assert result.retailer_count == 2
    assert result.prices[0].is_lowest and not result.prices[1].is_lowest
    assert result.product_key == product_key("desk lamp")

    cached = await cache.get_all_for_product(result.product_key)
    assert [p.retailer for p in cached] == ["Shop B", "Shop A"]
    assert len(publisher.of(PRICE_UPDATE)) == 2
    (complete,) = publisher.of(COMPARISON_COMPLETE)
    assert complete["retailer_count"] == 2
    assert complete["lowest_price"] == "10.00"
    assert len(await history.load(result.product_key, "7d")) == 1


@pytest.mark.asyncio
async def test_serialized_entries_carry_rank_and_savings(aggregator, fetcher):
    fetcher.prices.update({"Shop A": "12.50", "Shop B": "10.00"})
    data = (await aggregator.compare("desk lamp")).to_dict()
    assert [entry["price_rank"] for entry in data["prices"]] == [1, 2]
    assert data["prices"][0]["savings_from_highest"] == "2.50"
    assert data["highest_price"] == "12.50"


@pytest.mark.asyncio
async def test_partial_failure_keeps_successes(aggregator, fetcher):
    fetcher.prices.update({"Shop A": "3", "Shop C": "1", "Shop E": "2", "Shop D": RuntimeError("bug")})
    result = await aggregator.compare("cable")
    assert [p.retailer for p in result.prices] == ["Shop C", "Shop E", "Shop A"]
    assert len(fetcher.calls) == 5


@pytest.mark.asyncio
async def test_all_failures_give_empty_result(aggregator, publisher):
    result = await aggregator.compare("unobtainium")
    assert result.prices == []
    assert result.lowest_price is None
    assert result.highest_price is None
    assert result.average_price is None
    assert publisher.of(PRICE_UPDATE) == []
    assert publisher.of(COMPARISON_COMPLETE)[0]["lowest_price"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("term", ["", "   "])
async def test_blank_search_term_rejected(aggregator, term):
    with pytest.raises(AggregationError):
        await aggregator.compare(term)


@pytest.mark.asyncio
async def test_country_filter(fetcher, cache, publisher, retailer_factory):
    registry = RetailerRegistry([retailer_factory("Shop A"), retailer_factory("Loja B", country="BR")])
    fetcher.prices.update({"Shop A": "5", "Loja B": "25"})
    aggregator = Aggregator(registry, fetcher, cache, publisher)

    result = await aggregator.compare("fone", country="BR")
    assert [p.retailer for p in result.prices] == ["Loja B"]
    assert fetcher.calls == [("Loja B", "fone")]

    empty = Aggregator(RetailerRegistry([retailer_factory("Shop A")]), fetcher, cache, publisher)
    with pytest.raises(AggregationError):
        await empty.compare("fone", country="BR")


@pytest.mark.asyncio
async def test_slow_retailers_time_out(registry, fetcher, cache, publisher):
    fetcher.prices.update({"Shop A": "1", "Shop B": "2"})
    fetcher.delays["Shop A"] = 5
    aggregator = Aggregator(registry, fetcher, cache, publisher, concurrency=5, task_timeout=0.05)
    result = await asyncio.wait_for(aggregator.compare("lamp"), 2)
    assert [p.retailer for p in result.prices] == ["Shop B"]


@pytest.mark.asyncio
async def test_explicit_cache_ttl(aggregator, fetcher, cache, clock):
    fetcher.prices["Shop A"] = "7"
    await aggregator.compare("lamp", product_key="lamp-1", cache_ttl=10)
    clock.advance(10)
    assert await cache.get_price("lamp-1", "Shop A") is None


@pytest.mark.asyncio
async def test_fetch_single(aggregator, fetcher, cache):
    fetcher.prices["Shop B"] = "9.99"
    by_url = await aggregator.fetch_single("Shop B", product_url="https://www.shopb.com/p/1")
    assert by_url.source_url == "https://www.shopb.com/p/1"

    by_term = await aggregator.fetch_single("Shop B", search_term="mouse")
    assert by_term.price == Decimal("9.99")
    assert await cache.get_price(product_key("mouse"), "Shop B") is not None

    assert await aggregator.fetch_single("Shop A", search_term="mouse") is None
    with pytest.raises(UnknownRetailerError):
        await aggregator.fetch_single("Nope", search_term="mouse")
    with pytest.raises(AggregationError):
        await aggregator.fetch_single("Shop B")


@pytest.mark.asyncio
async def test_compare_many(aggregator, fetcher):
    fetcher.prices["Shop A"] = "4"
    results = await aggregator.compare_many(
        [{"search_term": "lamp"}, {"search_term": " "}, {"search_term": "desk", "product_key": "desk-1"}]
    )
    assert [entry["success"] for entry in results] == [True, False, True]
    assert results[0]["result"].lowest_price == Decimal("4")
    assert results[1]["error"]
    assert results[2]["product_key"] == "desk-1"

    with pytest.raises(AggregationError):
        await aggregator.compare_many([{"search_term": f"item {n}"} for n in range(11)])


@pytest.mark.asyncio
async def test_fetch_single_rejects_urls_off_the_retailer_host(aggregator, fetcher):
    fetcher.prices["Shop B"] = "9.99"
    for url in ("https://elsewhere.example/p/1", "file:///etc/passwd", "http://127.0.0.1/admin"):
        with pytest.raises(AggregationError):
            await aggregator.fetch_single("Shop B", product_url=url)
    assert fetcher.calls == []
