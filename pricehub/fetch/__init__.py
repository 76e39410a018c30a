"""Retailer fetching."""

from pricehub.fetch.pool import RenderPool, RenderSession, SessionFactory
from pricehub.fetch.source import SourceFetcher

__all__ = ["RenderPool", "RenderSession", "SessionFactory", "SourceFetcher"]
