"""Publish a sample price-change event through the configured backend."""

from __future__ import annotations

import asyncio
import os
from decimal import Decimal

from dotenv import load_dotenv

from pricehub.events import SIGNIFICANT_PRICE_CHANGE, create_publisher
from pricehub.pricing.models import Direction, PriceChangeEvent
from pricehub.pricing.normalize import product_key
from pricehub.settings import Settings
from pricehub.utils.log import configure_logging


async def main() -> None:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    publisher = create_publisher(settings.event_backend, settings.redis_url)
    event = PriceChangeEvent(
        product_key=product_key(os.environ.get("TEST_SEARCH_TERM", "iphone 15")),
        retailer="Amazon",
        old_price=Decimal("100.00"),
        new_price=Decimal("94.00"),
        change_percent=Decimal("-6.00"),
        direction=Direction.DOWN,
        owner_id=os.environ.get("TEST_OWNER_ID", "demo"),
    )
    try:
        await publisher.publish(SIGNIFICANT_PRICE_CHANGE, event.to_dict())
    finally:
        await publisher.close()
    print("Published test event for", event.product_key)


if __name__ == "__main__":
    asyncio.run(main())
