"""History retention."""

from __future__ import annotations

import logging

from dotenv import load_dotenv

from pricehub.db.history import PriceHistoryStore
from pricehub.db.migrate import run_migrations
from pricehub.db.session import create_engine_from_env
from pricehub.settings import Settings

logger = logging.getLogger(__name__)


async def prune_history(settings: Settings | None = None) -> int:
    load_dotenv()
    settings = settings or Settings.from_env()
    engine = create_engine_from_env(settings.database_url)
    try:
        run_migrations(engine)
        removed = await PriceHistoryStore(engine).prune(settings.history_retention_days)
    finally:
        engine.dispose()
    logger.info("History cleanup done: %s rows removed (retention %s days)", removed, settings.history_retention_days)
    return removed
