"""Price cache."""

from pricehub.cache.prices import PriceCache
from pricehub.cache.store import CacheStore, MemoryCacheStore, RedisCacheStore, create_store

__all__ = ["CacheStore", "MemoryCacheStore", "PriceCache", "RedisCacheStore", "create_store"]
