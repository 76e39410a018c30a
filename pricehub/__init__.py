"""Retailer price aggregation, caching and monitoring."""

__version__ = "0.1.0"
