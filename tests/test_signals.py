from decimal import Decimal

from pricehub.pricing import signals
from pricehub.pricing.models import Direction


def test_percent_change_basic():
    assert signals.percent_change(Decimal("104"), Decimal("100")) == Decimal("4")
    assert signals.percent_change(Decimal("94"), Decimal("100")) == Decimal("-6")
    assert signals.percent_change(Decimal("5"), Decimal("0")) is None


def test_threshold_is_inclusive():
    assert signals.is_significant(Decimal("5"), 5.0)
    assert signals.is_significant(Decimal("-5.01"), 5.0)
    assert not signals.is_significant(Decimal("4.99"), 5.0)
    assert not signals.is_significant(None, 5.0)


def test_direction_and_rounding():
    assert signals.direction(Decimal("-0.5")) is Direction.DOWN
    assert signals.direction(Decimal("3")) is Direction.UP
    assert signals.rounded(Decimal("-6.666")) == Decimal("-6.67")


def test_paired_changes_skips_new_retailers(price_factory):
    old = signals.by_retailer([price_factory("A", "100")])
    new = signals.by_retailer([price_factory("A", "94"), price_factory("B", "10")])
    changes = signals.paired_changes(old, new)
    assert len(changes) == 1
    previous, current, change = changes[0]
    assert (previous.retailer, current.price, change) == ("A", Decimal("94"), Decimal("-6"))
