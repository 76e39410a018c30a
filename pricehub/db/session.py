"""Database engine helpers."""

from __future__ import annotations

import os
import pathlib

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url

DEFAULT_DATABASE_URL = "sqlite:///data/pricehub.db"


def create_engine_from_env(url: str | None = None) -> Engine:
    """Create an engine from ``url`` or the DATABASE_URL environment variable."""
    url = url or os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        pathlib.Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, pool_pre_ping=True, future=True)
