"""Wires the engine's collaborators together for an entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pricehub.aggregator import Aggregator
from pricehub.cache import PriceCache, create_store
from pricehub.db.history import PriceHistoryStore
from pricehub.db.migrate import run_migrations
from pricehub.db.session import create_engine_from_env
from pricehub.events import EventPublisher, create_publisher
from pricehub.fetch import RenderPool, SourceFetcher
from pricehub.fetch.browser import PlaywrightSessionFactory
from pricehub.monitor import MonitorManager
from pricehub.retailers import RetailerRegistry, load_registry
from pricehub.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    settings: Settings
    registry: RetailerRegistry
    pool: RenderPool
    fetcher: SourceFetcher
    cache: PriceCache
    publisher: EventPublisher
    history: PriceHistoryStore | None
    aggregator: Aggregator
    monitor: MonitorManager

    async def shutdown(self) -> None:
        await self.monitor.shutdown()
        await self.fetcher.close()
        await self.pool.close()
        await self.publisher.close()
        await self.cache.store.close()
        if self.history is not None:
            self.history.engine.dispose()
        logger.info("Services shut down")


def build_services(settings: Settings | None = None) -> Services:
    settings = settings or Settings.from_env()
    registry = load_registry(settings.retailers_path)
    pool = RenderPool(
        PlaywrightSessionFactory(),
        capacity=settings.pool_capacity,
        ceiling=settings.pool_ceiling,
        acquire_timeout=settings.pool_acquire_timeout,
    )
    fetcher = SourceFetcher(
        pool,
        nav_timeout_ms=settings.nav_timeout_ms,
        selector_timeout_ms=settings.selector_timeout_ms,
    )
    cache = PriceCache(
        create_store(settings.cache_backend, settings.redis_url),
        price_ttl=settings.price_ttl_seconds,
        comparison_ttl=settings.comparison_ttl_seconds,
        history_ttl=settings.history_ttl_seconds,
    )
    publisher = create_publisher(settings.event_backend, settings.redis_url)
    engine = create_engine_from_env(settings.database_url)
    run_migrations(engine)
    history = PriceHistoryStore(engine)
    aggregator = Aggregator(
        registry,
        fetcher,
        cache,
        publisher,
        history=history,
        concurrency=settings.fetch_concurrency,
        task_timeout=settings.fetch_timeout_seconds,
        price_ttl=settings.price_ttl_seconds,
    )
    monitor = MonitorManager(
        aggregator,
        cache,
        publisher,
        interval=settings.monitor_interval_seconds,
        default_threshold=settings.monitor_threshold_percent,
        subscription_ttl=settings.subscription_ttl_seconds,
    )
    return Services(
        settings=settings,
        registry=registry,
        pool=pool,
        fetcher=fetcher,
        cache=cache,
        publisher=publisher,
        history=history,
        aggregator=aggregator,
        monitor=monitor,
    )
