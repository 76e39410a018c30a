"""Price change signals used by the monitor."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from pricehub.pricing.models import Direction, ProductPrice

TWO_PLACES = Decimal("0.01")


def percent_change(new: Decimal, old: Decimal) -> Decimal | None:
    if old == 0:
        return None
    return (new - old) / old * 100


def direction(change: Decimal) -> Direction:
    return Direction.UP if change > 0 else Direction.DOWN


def is_significant(change: Decimal | None, threshold_percent: float) -> bool:
    if change is None or change == 0:
        return False
    return abs(change) >= Decimal(str(threshold_percent))


def rounded(change: Decimal) -> Decimal:
    return change.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def by_retailer(prices: Iterable[ProductPrice]) -> dict[str, ProductPrice]:
    return {price.retailer: price for price in prices}


def paired_changes(
    old: Mapping[str, ProductPrice], new: Mapping[str, ProductPrice]
) -> list[tuple[ProductPrice, ProductPrice, Decimal]]:
    """(old, new, change %) for retailers present in both snapshots.

    A retailer seen for the first time has nothing to compare against and is
    left out.
    """
    changes = []
    for retailer, current in new.items():
        previous = old.get(retailer)
        if previous is None:
            continue
        change = percent_change(current.price, previous.price)
        if change is None:
            continue
        changes.append((previous, current, change))
    return changes
