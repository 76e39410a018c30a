"""Periodic re-polling of watched products and price-change alerts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import pendulum

from pricehub.aggregator import Aggregator
from pricehub.cache import PriceCache
from pricehub.errors import MonitorTickError
from pricehub.events import SIGNIFICANT_PRICE_CHANGE, EventPublisher, emit
from pricehub.pricing.models import MonitorSubscription, PriceChangeEvent
from pricehub.pricing.signals import by_retailer, direction, is_significant, paired_changes, rounded
from pricehub.utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProductWatch:
    """One polling loop per product, shared by all of its subscribers."""

    product_key: str
    search_term: str
    subscriptions: dict[str, MonitorSubscription] = field(default_factory=dict)
    loop_task: asyncio.Task | None = None
    tick_task: asyncio.Task | None = None

    @property
    def tick_running(self) -> bool:
        return self.tick_task is not None and not self.tick_task.done()


class MonitorManager:
    def __init__(
        self,
        aggregator: Aggregator,
        cache: PriceCache,
        publisher: EventPublisher,
        *,
        interval: float = 1800,
        default_threshold: float = 5.0,
        subscription_ttl: float = 86400,
    ) -> None:
        self.aggregator = aggregator
        self.cache = cache
        self.publisher = publisher
        self.interval = interval
        self.default_threshold = default_threshold
        self.subscription_ttl = subscription_ttl
        self._watches: dict[str, ProductWatch] = {}

    def start(
        self,
        product_key: str,
        search_term: str,
        owner_id: str,
        threshold: float | None = None,
    ) -> MonitorSubscription:
        """Subscribe ``owner_id`` to ``product_key``.

        Starting twice for the same owner and product returns the existing
        subscription.
        """
        watch = self._watches.get(product_key)
        if watch and owner_id in watch.subscriptions:
            return watch.subscriptions[owner_id]
        subscription = MonitorSubscription(
            product_key=product_key,
            search_term=search_term.strip(),
            owner_id=owner_id,
            change_threshold_percent=self.default_threshold if threshold is None else threshold,
        )
        if watch is None:
            watch = ProductWatch(product_key=product_key, search_term=subscription.search_term)
            watch.loop_task = asyncio.create_task(self._run(watch), name=f"monitor:{product_key}")
            self._watches[product_key] = watch
        watch.subscriptions[owner_id] = subscription
        logger.info("Started price monitoring for %s (%s)", product_key, owner_id)
        return subscription

    def stop(self, product_key: str, owner_id: str) -> bool:
        watch = self._watches.get(product_key)
        if watch is None:
            return False
        subscription = watch.subscriptions.pop(owner_id, None)
        if subscription is None:
            return False
        subscription.active = False
        if not watch.subscriptions:
            self._cancel(watch)
        logger.info("Stopped price monitoring for %s (%s)", product_key, owner_id)
        return True

    def get(self, owner_id: str, product_key: str) -> MonitorSubscription | None:
        watch = self._watches.get(product_key)
        return watch.subscriptions.get(owner_id) if watch else None

    def active_for(self, owner_id: str) -> list[MonitorSubscription]:
        return [
            watch.subscriptions[owner_id]
            for watch in self._watches.values()
            if owner_id in watch.subscriptions
        ]

    def watched_products(self) -> list[str]:
        return list(self._watches)

    def watch(self, product_key: str) -> ProductWatch | None:
        return self._watches.get(product_key)

    async def shutdown(self) -> None:
        watches = list(self._watches.values())
        for watch in watches:
            for subscription in watch.subscriptions.values():
                subscription.active = False
            watch.subscriptions.clear()
            self._cancel(watch)
        tasks = [task for watch in watches for task in (watch.loop_task, watch.tick_task) if task]
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Monitor shut down (%s watches)", len(watches))

    def fire(self, watch: ProductWatch) -> asyncio.Task | None:
        """Spawn a tick unless the previous one is still running."""
        if watch.tick_running:
            logger.info("Skipping tick for %s: previous poll still running", watch.product_key)
            return None
        watch.tick_task = asyncio.create_task(self._tick(watch), name=f"monitor-tick:{watch.product_key}")
        return watch.tick_task

    async def poll(self, product_key: str) -> list[PriceChangeEvent]:
        """Run one polling round for ``product_key`` and return emitted events."""
        watch = self._watches.get(product_key)
        if watch is None:
            return []
        self._expire(watch)
        if not watch.subscriptions:
            return []

        previous = by_retailer(await self.cache.get_all_for_product(product_key))
        result = await self.aggregator.compare(
            watch.search_term,
            product_key=product_key,
            cache_ttl=int(self.interval * 2),
        )
        current = by_retailer(result.prices)

        events = []
        for old, new, change in paired_changes(previous, current):
            for subscription in list(watch.subscriptions.values()):
                if not subscription.active or not is_significant(change, subscription.change_threshold_percent):
                    continue
                event = PriceChangeEvent(
                    product_key=product_key,
                    retailer=new.retailer,
                    old_price=old.price,
                    new_price=new.price,
                    change_percent=rounded(change),
                    direction=direction(change),
                    owner_id=subscription.owner_id,
                )
                await emit(self.publisher, SIGNIFICANT_PRICE_CHANGE, event.to_dict())
                events.append(event)
        if events:
            logger.info("%s significant price changes for %s", len(events), product_key)
        return events

    async def hold_baseline(self, product_key: str) -> int:
        """Keep already-cached prices alive until the first tick can compare against them."""
        prices = await self.cache.get_all_for_product(product_key)
        for price in prices:
            await self.cache.set_price(product_key, price, int(self.interval * 2))
        return len(prices)

    async def _run(self, watch: ProductWatch) -> None:
        try:
            await self.hold_baseline(watch.product_key)
        except Exception:
            logger.exception("Could not hold baseline prices for %s", watch.product_key)
        while True:
            await asyncio.sleep(self.interval)
            self.fire(watch)

    async def _tick(self, watch: ProductWatch) -> None:
        try:
            await self.poll(watch.product_key)
        except Exception as exc:
            error = MonitorTickError(watch.product_key, exc)
            logger.error("%s", error, exc_info=exc)

    def _expire(self, watch: ProductWatch) -> None:
        cutoff = utcnow() - pendulum.duration(seconds=self.subscription_ttl)
        for owner_id, subscription in list(watch.subscriptions.items()):
            if subscription.created_at <= cutoff:
                logger.info("Monitoring for %s (%s) expired", watch.product_key, owner_id)
                self.stop(watch.product_key, owner_id)

    def _cancel(self, watch: ProductWatch) -> None:
        self._watches.pop(watch.product_key, None)
        current = asyncio.current_task()
        for task in (watch.loop_task, watch.tick_task):
            # an expiring tick must not cancel itself mid-poll
            if task is not None and task is not current and not task.done():
                task.cancel()
