import asyncio
from decimal import Decimal

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricehub.aggregator import Aggregator
from pricehub.cache import MemoryCacheStore, PriceCache
from pricehub.db.history import PriceHistoryStore
from pricehub.db.migrate import run_migrations
from pricehub.db.session import create_engine_from_env
from pricehub.errors import ExtractionFailure
from pricehub.pricing.models import Availability, ProductPrice
from pricehub.retailers import RetailerRegistry
from pricehub.retailers.models import ScrapeRetailerConfig


def make_retailer(name, country="US", **overrides):
    data = {
        "name": name,
        "country": country,
        "base_url": f"https://www.{name.lower().replace(' ', '')}.com",
        "rate_limit_per_minute": 6000,
        "search_path": "/search?q={term}",
        "selectors": {"price": ".price", "title": "h1", "availability": ".stock", "original_price": ".was"},
    }
    data.update(overrides)
    return ScrapeRetailerConfig(**data)


def make_price(retailer, price, **overrides):
    data = {
        "retailer": retailer,
        "price": Decimal(str(price)),
        "currency": "USD",
        "availability": Availability.IN_STOCK,
        "source_url": f"https://example.com/{retailer.lower().replace(' ', '-')}",
    }
    data.update(overrides)
    return ProductPrice(**data)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSession:
    def __init__(self, pages):
        self.pages = pages
        self.html = ""
        self.visited = []
        self.closed = False

    async def goto(self, url, *, timeout_ms, headers=None):
        self.visited.append(url)
        await asyncio.sleep(0)
        self.html = self.pages.get(url, "<html><body></body></html>")

    async def wait_for_text(self, selector, *, timeout_ms):
        node = BeautifulSoup(self.html, "html.parser").select_one(selector)
        if node is None:
            raise PlaywrightTimeoutError(f"Timeout {timeout_ms}ms exceeded waiting for {selector}")
        return node.get_text(strip=True)

    async def text_of(self, selector):
        node = BeautifulSoup(self.html, "html.parser").select_one(selector)
        return node.get_text(strip=True) if node else None

    async def content(self):
        return self.html

    async def close(self):
        self.closed = True


class FakeFactory:
    def __init__(self, pages=None, fail=False, delay=0.0):
        self.pages = pages or {}
        self.fail = fail
        self.delay = delay
        self.sessions = []
        self.closed = False

    async def create(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("browser crashed")
        session = FakeSession(self.pages)
        self.sessions.append(session)
        return session

    async def close(self):
        self.closed = True


class FakeFetcher:
    """Prices by retailer name; a missing entry fails, an exception is raised as-is."""

    def __init__(self, prices=None, delays=None):
        self.prices = dict(prices or {})
        self.delays = dict(delays or {})
        self.calls = []
        self.closed = False

    async def fetch(self, config, search_term):
        self.calls.append((config.name, search_term))
        delay = self.delays.get(config.name)
        if delay:
            await asyncio.sleep(delay)
        return self._outcome(config, f"https://example.com/{config.name}")

    async def extract_price(self, config, source_url):
        self.calls.append((config.name, source_url))
        return self._outcome(config, source_url)

    async def close(self):
        self.closed = True

    def _outcome(self, config, source_url):
        outcome = self.prices.get(config.name)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise ExtractionFailure(config.name, "no offer")
        return make_price(config.name, outcome, source_url=source_url)


class RecordingPublisher:
    def __init__(self):
        self.events = []
        self.closed = False

    async def publish(self, topic, payload):
        self.events.append((topic, dict(payload)))

    async def close(self):
        self.closed = True

    def of(self, topic):
        return [payload for name, payload in self.events if name == topic]


@pytest.fixture()
def retailer_factory():
    return make_retailer


@pytest.fixture()
def price_factory():
    return make_price


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return PriceCache(MemoryCacheStore(clock=clock))


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def registry():
    return RetailerRegistry([make_retailer(f"Shop {letter}") for letter in "ABCDE"])


@pytest.fixture()
def fetcher():
    return FakeFetcher()


@pytest.fixture()
def engine(tmp_path):
    # file-backed so executor threads share the database
    engine = create_engine_from_env(f"sqlite:///{tmp_path / 'history.db'}")
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def history(engine):
    return PriceHistoryStore(engine)


@pytest.fixture()
def aggregator(registry, fetcher, cache, publisher, history):
    return Aggregator(registry, fetcher, cache, publisher, history=history, concurrency=3, task_timeout=1.0)
