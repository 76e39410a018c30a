"""Price records and normalization."""

from pricehub.pricing.models import (
    Availability,
    ComparisonResult,
    Direction,
    HistoryPoint,
    MonitorSubscription,
    PriceChangeEvent,
    ProductPrice,
)
from pricehub.pricing.normalize import parse_availability, parse_price, product_key

__all__ = [
    "Availability",
    "ComparisonResult",
    "Direction",
    "HistoryPoint",
    "MonitorSubscription",
    "PriceChangeEvent",
    "ProductPrice",
    "parse_availability",
    "parse_price",
    "product_key",
]
