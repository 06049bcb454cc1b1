from __future__ import annotations

import asyncio
import logging

from celery import Celery

from sharebox.core.config import settings
from sharebox.db.session import build_engine, build_session_factory
from sharebox.services.lifecycle import build_share_manager
from sharebox.services.reaper import sweep

logger = logging.getLogger(__name__)

celery_app = Celery(
    "sharebox",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "reap-expired-shares": {
            "task": "reap_expired_shares",
            "schedule": settings.reaper_interval_seconds,
        },
    },
)


async def _reap_expired_shares() -> dict[str, object]:
    # Each asyncio.run gets a fresh loop, so the engine cannot outlive it.
    engine = build_engine()
    try:
        manager = build_share_manager(build_session_factory(engine))
        report = await sweep(manager)
    finally:
        await engine.dispose()
    return report.as_dict()


@celery_app.task(name="reap_expired_shares")
def reap_expired_shares_task() -> dict[str, object]:
    logger.info("Starting reaper sweep")
    return asyncio.run(_reap_expired_shares())
