"""Error taxonomy shared across the engine."""

from __future__ import annotations


class PriceHubError(Exception):
    pass


class ExtractionFailure(PriceHubError):
    """One retailer's search or extract step failed."""

    def __init__(self, retailer: str, reason: str) -> None:
        super().__init__(f"{retailer}: {reason}")
        self.retailer = retailer
        self.reason = reason


class ProductNotFound(ExtractionFailure):
    pass


class PoolExhaustedError(PriceHubError):
    pass


class RegistryError(PriceHubError):
    pass


class UnknownRetailerError(RegistryError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Retailer {name!r} not configured")
        self.name = name


class DuplicateRetailerError(RegistryError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Retailer {name!r} already registered")
        self.name = name


class InvalidRetailerConfig(RegistryError):
    pass


class AggregationError(PriceHubError):
    pass


class MonitorTickError(PriceHubError):
    def __init__(self, product_key: str, cause: BaseException) -> None:
        super().__init__(f"Monitor tick failed for {product_key}: {cause}")
        self.product_key = product_key
        self.cause = cause
