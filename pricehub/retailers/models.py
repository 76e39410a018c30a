"""Retailer configuration models."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping
from urllib.parse import urlsplit

from pricehub.errors import InvalidRetailerConfig


class Country(str, Enum):
    US = "US"
    BR = "BR"


class Currency(str, Enum):
    USD = "USD"
    BRL = "BRL"


class AccessMethod(str, Enum):
    API = "api"
    PAGE_SCRAPE = "page-scrape"


COUNTRY_CURRENCY = {
    Country.US: Currency.USD,
    Country.BR: Currency.BRL,
}

# Tried in order on a rendered search page; first link with an href wins.
DEFAULT_LINK_SELECTORS = (
    'a[href*="/dp/"]',
    'a[href*="/ip/"]',
    'a[href*="/item/"]',
    'a[href*="/product"]',
    ".product-title a",
    ".product-name a",
    '[data-testid*="product"] a',
)


def _frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True, slots=True, kw_only=True)
class RetailerConfig:
    access_method: ClassVar[AccessMethod]

    name: str
    country: Country
    base_url: str
    rate_limit_per_minute: int
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidRetailerConfig("Retailer name must not be empty")
        if self.rate_limit_per_minute <= 0:
            raise InvalidRetailerConfig(f"{self.name}: rate_limit_per_minute must be > 0")
        try:
            object.__setattr__(self, "country", Country(self.country))
        except ValueError:
            raise InvalidRetailerConfig(f"{self.name}: unknown country {self.country!r}") from None
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "headers", _frozen_mapping(self.headers))

    @property
    def currency(self) -> Currency:
        return COUNTRY_CURRENCY[self.country]

    def owns_url(self, url: str) -> bool:
        """True for http(s) URLs on this retailer's host or one of its subdomains."""
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return False
        host = parts.hostname.lower()
        own = (urlsplit(self.base_url).hostname or "").lower()
        if own.startswith("www."):
            own = own[4:]
        return host == own or host.endswith(f".{own}")

    def resolve_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"


@dataclass(frozen=True, slots=True, kw_only=True)
class ApiRetailerConfig(RetailerConfig):
    """Vendor JSON API; field names are dotted paths into the response."""

    access_method: ClassVar[AccessMethod] = AccessMethod.API

    search_path: str
    search_param: str
    results_path: str
    item_id_field: str
    item_path: str
    fields: Mapping[str, str]
    key_param: str | None = None
    api_key: str | None = None
    params: Mapping[str, str] = field(default_factory=dict)
    item_params: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        RetailerConfig.__post_init__(self)
        for attr in ("search_path", "search_param", "results_path", "item_id_field", "item_path"):
            if not getattr(self, attr):
                raise InvalidRetailerConfig(f"{self.name}: {attr} is required for api retailers")
        if "{item_id}" not in self.item_path:
            raise InvalidRetailerConfig(f"{self.name}: item_path must contain {{item_id}}")
        if not (self.fields or {}).get("price"):
            raise InvalidRetailerConfig(f"{self.name}: fields.price is required")
        object.__setattr__(self, "fields", _frozen_mapping(self.fields))
        object.__setattr__(self, "params", _frozen_mapping(self.params))
        object.__setattr__(self, "item_params", _frozen_mapping(self.item_params))

    def auth_params(self) -> dict[str, str]:
        if self.key_param and self.api_key:
            return {self.key_param: self.api_key}
        return {}


@dataclass(frozen=True, slots=True, kw_only=True)
class ScrapeRetailerConfig(RetailerConfig):
    """Rendered HTML pages; selectors are CSS."""

    access_method: ClassVar[AccessMethod] = AccessMethod.PAGE_SCRAPE

    search_path: str
    selectors: Mapping[str, str]
    link_selectors: tuple[str, ...] = DEFAULT_LINK_SELECTORS

    def __post_init__(self) -> None:
        RetailerConfig.__post_init__(self)
        if "{term}" not in (self.search_path or ""):
            raise InvalidRetailerConfig(f"{self.name}: search_path must contain {{term}}")
        if not (self.selectors or {}).get("price"):
            raise InvalidRetailerConfig(f"{self.name}: selectors.price is required")
        object.__setattr__(self, "selectors", _frozen_mapping(self.selectors))
        object.__setattr__(self, "link_selectors", tuple(self.link_selectors) or DEFAULT_LINK_SELECTORS)


def build_retailer(data: Mapping[str, Any]) -> RetailerConfig:
    """Build the config variant named by ``access_method``."""
    item = dict(data)
    raw_method = item.pop("access_method", None)
    try:
        method = AccessMethod(raw_method)
    except ValueError:
        raise InvalidRetailerConfig(f"{item.get('name')}: unknown access_method {raw_method!r}") from None
    if method is AccessMethod.API:
        key_env = item.pop("api_key_env", None)
        if key_env and not item.get("api_key"):
            item["api_key"] = os.environ.get(key_env)
        factory = ApiRetailerConfig
    else:
        factory = ScrapeRetailerConfig
        if "link_selectors" in item:
            item["link_selectors"] = tuple(item["link_selectors"])
    try:
        return factory(**item)
    except TypeError as exc:
        raise InvalidRetailerConfig(f"{item.get('name')}: {exc}") from exc
