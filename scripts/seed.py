"""Seed price history with a month of demo observations."""

from __future__ import annotations

import asyncio
import random
import sys
from decimal import Decimal

from dotenv import load_dotenv

from pricehub.db.history import PriceHistoryStore
from pricehub.db.migrate import run_migrations
from pricehub.db.session import create_engine_from_env
from pricehub.pricing.models import Availability, ProductPrice
from pricehub.pricing.normalize import product_key
from pricehub.retailers.models import Currency
from pricehub.utils.dates import utcnow

DEMO_RETAILERS = {"Amazon": Decimal("999.00"), "Best Buy": Decimal("1029.00"), "Walmart": Decimal("989.00")}


async def main(search_term: str = "iphone 15") -> None:
    load_dotenv()
    engine = create_engine_from_env()
    run_migrations(engine)
    store = PriceHistoryStore(engine)
    key = product_key(search_term)
    now = utcnow()
    rng = random.Random(42)
    prices = []
    for day in range(30, -1, -1):
        for retailer, base in DEMO_RETAILERS.items():
            jitter = Decimal(rng.randint(-50, 50))
            prices.append(
                ProductPrice(
                    retailer=retailer,
                    price=base + jitter,
                    currency=Currency.USD,
                    availability=Availability.IN_STOCK,
                    source_url=f"https://example.com/{retailer.lower().replace(' ', '-')}",
                    last_updated=now.subtract(days=day),
                )
            )
    count = await store.record(key, prices)
    print(f"Seeded {count} history rows for {search_term!r} ({key})")


if __name__ == "__main__":
    asyncio.run(main(*sys.argv[1:2]))
