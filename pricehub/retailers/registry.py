"""In-process catalogue of retailer configurations."""

from __future__ import annotations

import logging
from typing import Iterable

from pricehub.errors import DuplicateRetailerError, UnknownRetailerError
from pricehub.retailers.models import Country, RetailerConfig

logger = logging.getLogger(__name__)


class RetailerRegistry:
    """Populated once at startup; read-only afterwards."""

    def __init__(self, retailers: Iterable[RetailerConfig] = ()) -> None:
        self._retailers: dict[str, RetailerConfig] = {}
        for config in retailers:
            self.register(config)

    def register(self, config: RetailerConfig) -> None:
        if config.name in self._retailers:
            raise DuplicateRetailerError(config.name)
        self._retailers[config.name] = config

    def get(self, name: str) -> RetailerConfig:
        try:
            return self._retailers[name]
        except KeyError:
            raise UnknownRetailerError(name) from None

    def list(self, country: Country | str | None = None) -> list[RetailerConfig]:
        if country is None:
            return list(self._retailers.values())
        wanted = Country(country)
        return [config for config in self._retailers.values() if config.country is wanted]

    def __len__(self) -> int:
        return len(self._retailers)

    def __contains__(self, name: object) -> bool:
        return name in self._retailers
