"""Price records passed between fetchers, cache, monitor and API."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Sequence

from pricehub.retailers.models import Country, Currency
from pricehub.utils.dates import parse_timestamp, utcnow


class Availability(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    LIMITED_STOCK = "limited_stock"


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


def _decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True, slots=True)
class ProductPrice:
    retailer: str
    price: Decimal
    currency: Currency
    availability: Availability
    source_url: str
    last_updated: datetime = field(default_factory=utcnow)
    original_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    shipping_time: str | None = None
    discount_percent: Decimal | None = None
    coupon_code: str | None = None
    title: str | None = None
    is_lowest: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", _decimal(self.price))
        object.__setattr__(self, "original_price", _decimal(self.original_price))
        object.__setattr__(self, "shipping_cost", _decimal(self.shipping_cost))
        object.__setattr__(self, "discount_percent", _decimal(self.discount_percent))
        object.__setattr__(self, "currency", Currency(self.currency))
        object.__setattr__(self, "availability", Availability(self.availability))
        if self.price < 0:
            raise ValueError(f"{self.retailer}: price must be >= 0, got {self.price}")
        if self.original_price is not None and self.original_price < self.price:
            raise ValueError(
                f"{self.retailer}: original price {self.original_price} below price {self.price}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "retailer": self.retailer,
            "price": str(self.price),
            "original_price": _str_or_none(self.original_price),
            "currency": self.currency.value,
            "availability": self.availability.value,
            "shipping_cost": _str_or_none(self.shipping_cost),
            "shipping_time": self.shipping_time,
            "source_url": self.source_url,
            "last_updated": self.last_updated.isoformat(),
            "discount_percent": _str_or_none(self.discount_percent),
            "coupon_code": self.coupon_code,
            "title": self.title,
            "is_lowest": self.is_lowest,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductPrice":
        return cls(
            retailer=data["retailer"],
            price=data["price"],
            original_price=data.get("original_price"),
            currency=data["currency"],
            availability=data["availability"],
            shipping_cost=data.get("shipping_cost"),
            shipping_time=data.get("shipping_time"),
            source_url=data["source_url"],
            last_updated=parse_timestamp(data["last_updated"]),
            discount_percent=data.get("discount_percent"),
            coupon_code=data.get("coupon_code"),
            title=data.get("title"),
            is_lowest=bool(data.get("is_lowest", False)),
        )


@dataclass(slots=True)
class ComparisonResult:
    """Prices sorted ascending; the stats are always derived from them."""

    product_key: str
    search_term: str
    prices: list[ProductPrice]
    country: Country | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def retailer_count(self) -> int:
        return len(self.prices)

    @property
    def lowest_price(self) -> Decimal | None:
        return self.prices[0].price if self.prices else None

    @property
    def highest_price(self) -> Decimal | None:
        return self.prices[-1].price if self.prices else None

    @property
    def average_price(self) -> Decimal | None:
        if not self.prices:
            return None
        return sum((p.price for p in self.prices), Decimal(0)) / len(self.prices)

    def to_dict(self) -> dict[str, Any]:
        highest = self.highest_price
        entries = []
        for rank, price in enumerate(self.prices, start=1):
            entry = price.to_dict()
            entry["price_rank"] = rank
            entry["savings_from_highest"] = str(highest - price.price) if len(self.prices) > 1 else "0"
            entries.append(entry)
        return {
            "product_key": self.product_key,
            "search_term": self.search_term,
            "country": self.country.value if self.country else None,
            "created_at": self.created_at.isoformat(),
            "prices": entries,
            "lowest_price": _str_or_none(self.lowest_price),
            "highest_price": _str_or_none(highest),
            "average_price": _str_or_none(self.average_price),
            "retailer_count": self.retailer_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComparisonResult":
        country = data.get("country")
        return cls(
            product_key=data["product_key"],
            search_term=data["search_term"],
            prices=[ProductPrice.from_dict(item) for item in data.get("prices", [])],
            country=Country(country) if country else None,
            created_at=parse_timestamp(data["created_at"]),
        )


@dataclass(slots=True)
class MonitorSubscription:
    product_key: str
    search_term: str
    owner_id: str
    change_threshold_percent: float = 5.0
    created_at: datetime = field(default_factory=utcnow)
    active: bool = True
    subscription_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not 0 < self.change_threshold_percent <= 100:
            raise ValueError(
                f"change_threshold_percent must be in (0, 100], got {self.change_threshold_percent}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "product_key": self.product_key,
            "search_term": self.search_term,
            "owner_id": self.owner_id,
            "change_threshold_percent": self.change_threshold_percent,
            "created_at": self.created_at.isoformat(),
            "active": self.active,
        }


@dataclass(frozen=True, slots=True)
class PriceChangeEvent:
    product_key: str
    retailer: str
    old_price: Decimal
    new_price: Decimal
    change_percent: Decimal
    direction: Direction
    owner_id: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_key": self.product_key,
            "retailer": self.retailer,
            "old_price": str(self.old_price),
            "new_price": str(self.new_price),
            "change_percent": str(self.change_percent),
            "direction": self.direction.value,
            "owner_id": self.owner_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class HistoryPoint:
    timestamp: datetime
    price: Decimal
    retailer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "price": str(self.price),
            "retailer": self.retailer,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoryPoint":
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            price=Decimal(data["price"]),
            retailer=data.get("retailer"),
        )


def sort_by_price(prices: Sequence[ProductPrice]) -> list[ProductPrice]:
    return sorted(prices, key=lambda p: p.price)
