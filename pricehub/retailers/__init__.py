"""Retailer catalogue loading."""

from __future__ import annotations

import logging
import pathlib

import yaml

from pricehub.retailers.models import (
    AccessMethod,
    ApiRetailerConfig,
    Country,
    Currency,
    RetailerConfig,
    ScrapeRetailerConfig,
    build_retailer,
)
from pricehub.retailers.registry import RetailerRegistry

logger = logging.getLogger(__name__)

RETAILERS_PATH = pathlib.Path(__file__).with_name("retailers.yml")


def load_retailers(path: str | pathlib.Path | None = None) -> list[RetailerConfig]:
    source = pathlib.Path(path) if path else RETAILERS_PATH
    data = yaml.safe_load(source.read_text(encoding="utf-8")) or []
    return [build_retailer(item) for item in data]


def load_registry(path: str | pathlib.Path | None = None) -> RetailerRegistry:
    registry = RetailerRegistry(load_retailers(path))
    logger.info("Initialized %s retailers for price tracking", len(registry))
    return registry


__all__ = [
    "AccessMethod",
    "ApiRetailerConfig",
    "Country",
    "Currency",
    "RetailerConfig",
    "RetailerRegistry",
    "ScrapeRetailerConfig",
    "build_retailer",
    "load_registry",
    "load_retailers",
]
