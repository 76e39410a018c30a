"""Table definitions."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, Integer, MetaData, Numeric, String, Table

metadata = MetaData()

price_history = Table(
    "price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("product_key", String(64), nullable=False),
    Column("retailer", String(128), nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    # naive UTC
    Column("recorded_at", DateTime, nullable=False),
    Index("ix_price_history_product_recorded", "product_key", "recorded_at"),
)
