"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import os

from celery import Celery
from celery.schedules import crontab

from pricehub.utils.dates import timezone_name

broker_url = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

celery_app = Celery("pricehub", broker=broker_url, backend=broker_url, include=["pricehub.jobs.cleanup"])
celery_app.conf.timezone = timezone_name()
celery_app.conf.beat_schedule = {
    "prune-price-history": {
        "task": "pricehub.jobs.cleanup.prune_history",
        "schedule": crontab(hour=int(os.environ.get("PRUNE_HOUR", "3")), minute=0),
    },
}


@celery_app.task(name="pricehub.jobs.cleanup.prune_history")
def prune_history_task() -> int:  # pragma: no cover - executed by worker
    import asyncio

    from pricehub.jobs.cleanup import prune_history

    return asyncio.run(prune_history())
