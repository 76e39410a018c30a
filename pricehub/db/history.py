"""Price history: append observations, read them back bucketed per day."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

import pandas as pd
import pendulum
from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Engine

from pricehub.db.tables import price_history
from pricehub.pricing.models import HistoryPoint, ProductPrice
from pricehub.utils.dates import timeframe_start, utcnow

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class PriceHistoryStore:
    """Blocking SQLAlchemy work runs in the default executor."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def record(self, product_key: str, prices: Iterable[ProductPrice]) -> int:
        rows = [
            {
                "product_key": product_key,
                "retailer": price.retailer,
                "price": price.price,
                "currency": price.currency.value,
                "recorded_at": _naive_utc(price.last_updated),
            }
            for price in prices
        ]
        if not rows:
            return 0
        await asyncio.get_running_loop().run_in_executor(None, self._insert, rows)
        return len(rows)

    async def load(
        self,
        product_key: str,
        timeframe: str = "30d",
        retailer: str | None = None,
        *,
        now: datetime | None = None,
    ) -> list[HistoryPoint]:
        start = _naive_utc(timeframe_start(timeframe, now=now))
        rows = await asyncio.get_running_loop().run_in_executor(
            None, self._select, product_key, start, retailer
        )
        return daily_lows(rows)

    async def prune(self, older_than_days: int, *, now: datetime | None = None) -> int:
        cutoff = _naive_utc((pendulum.instance(now) if now else utcnow()).subtract(days=older_than_days))
        removed = await asyncio.get_running_loop().run_in_executor(None, self._delete_before, cutoff)
        logger.info("Pruned %s history rows older than %s", removed, cutoff.date())
        return removed

    def _insert(self, rows: list[dict]) -> None:
        with self.engine.begin() as conn:
            conn.execute(insert(price_history), rows)

    def _select(self, product_key: str, start: datetime, retailer: str | None) -> list[tuple]:
        query = select(price_history.c.retailer, price_history.c.price, price_history.c.recorded_at).where(
            price_history.c.product_key == product_key,
            price_history.c.recorded_at >= start,
        )
        if retailer:
            query = query.where(price_history.c.retailer == retailer)
        with self.engine.connect() as conn:
            return [tuple(row) for row in conn.execute(query.order_by(price_history.c.recorded_at))]

    def _delete_before(self, cutoff: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(delete(price_history).where(price_history.c.recorded_at < cutoff))
        return result.rowcount or 0


def daily_lows(rows: list[tuple]) -> list[HistoryPoint]:
    """Lowest observation per UTC day, oldest first."""
    if not rows:
        return []
    frame = pd.DataFrame(rows, columns=["retailer", "price", "recorded_at"])
    frame["day"] = pd.to_datetime(frame["recorded_at"]).dt.floor("D")
    frame["rank_value"] = frame["price"].astype(float)
    lows = frame.loc[frame.groupby("day")["rank_value"].idxmin()].sort_values("day")
    return [
        HistoryPoint(
            timestamp=pendulum.instance(row.day.to_pydatetime(), tz="UTC"),
            price=Decimal(str(row.price)).quantize(Decimal("0.01")),
            retailer=row.retailer,
        )
        for row in lows.itertuples(index=False)
    ]
