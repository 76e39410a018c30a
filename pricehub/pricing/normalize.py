"""Normalization of raw price, availability and identity values."""

from __future__ import annotations

import hashlib
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pricehub.pricing.models import Availability

PRICE_TOKEN_RE = re.compile(r"\d[\d.,]*")
WHITESPACE_RE = re.compile(r"\s+")

OUT_OF_STOCK_KEYWORDS = (
    "out of stock",
    "sold out",
    "unavailable",
    "currently unavailable",
    "indisponível",
    "indisponivel",
    "esgotado",
    "fora de estoque",
    "sem estoque",
    "agotado",
)
LIMITED_STOCK_KEYWORDS = (
    "limited stock",
    "limited quantity",
    "limited quantities",
    "limited availability",
    "only a few left",
    "few left",
    "low stock",
    "últimas unidades",
    "ultimas unidades",
    "poucas unidades",
    "restam",
)
LIMITED_STOCK_RE = re.compile(r"\b(?:" + "|".join(map(re.escape, LIMITED_STOCK_KEYWORDS)) + r")\b")

TWO_PLACES = Decimal("0.01")


def parse_price(text: str | None) -> Decimal:
    """Parse the first number in ``text`` as a price.

    Handles both ``1,299.99`` and ``1.299,99``: when both separators appear the
    last one is the decimal mark; a lone separator followed by exactly three
    digits is a thousands mark.
    """
    match = PRICE_TOKEN_RE.search(text or "")
    if not match:
        raise ValueError(f"No price found in {text!r}")
    token = match.group(0).rstrip(".,")
    if "." in token and "," in token:
        decimal_mark = "." if token.rfind(".") > token.rfind(",") else ","
        thousands_mark = "," if decimal_mark == "." else "."
        token = token.replace(thousands_mark, "").replace(decimal_mark, ".")
    elif "." in token or "," in token:
        mark = "." if "." in token else ","
        parts = token.split(mark)
        if len(parts) > 2 or len(parts[1]) == 3:
            token = token.replace(mark, "")
        else:
            token = token.replace(mark, ".")
    try:
        return Decimal(token)
    except InvalidOperation:
        raise ValueError(f"Unparseable price {text!r}") from None


def parse_availability(text: str | None) -> Availability:
    lowered = (text or "").lower()
    if any(keyword in lowered for keyword in OUT_OF_STOCK_KEYWORDS):
        return Availability.OUT_OF_STOCK
    if LIMITED_STOCK_RE.search(lowered):
        return Availability.LIMITED_STOCK
    return Availability.IN_STOCK


def availability_from_value(value: Any) -> Availability:
    """Map an API availability field: flag, stock quantity or text."""
    if value is None:
        return Availability.IN_STOCK
    if isinstance(value, bool):
        return Availability.IN_STOCK if value else Availability.OUT_OF_STOCK
    if isinstance(value, (int, float, Decimal)):
        return Availability.IN_STOCK if value > 0 else Availability.OUT_OF_STOCK
    text = str(value)
    if text.isdigit():
        return Availability.IN_STOCK if int(text) > 0 else Availability.OUT_OF_STOCK
    if text.lower() in {"true", "false"}:
        return Availability.IN_STOCK if text.lower() == "true" else Availability.OUT_OF_STOCK
    return parse_availability(text)


def to_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    return parse_price(str(value))


def discount_percent(price: Decimal, original_price: Decimal | None) -> Decimal | None:
    if original_price is None or original_price <= 0 or original_price <= price:
        return None
    return ((original_price - price) / original_price * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def product_key(search_term: str) -> str:
    """Stable identifier for a search term: case and spacing insensitive."""
    normalized = WHITESPACE_RE.sub("-", search_term.strip().lower())
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]
