from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Dict, Optional

from viandas.celery_app import celery_app
from viandas.config import load_config
from viandas.db import get_engine, get_session_factory
from viandas.services.delivery.channels import build_channel
from viandas.services.notifications.scheduler import DatabaseStateStore, evaluate_notifications
from viandas.utils.locks import acquire_lock, release_lock

logger = logging.getLogger(__name__)

LOCK_KEY = "lock:viandas:notifications"
LOCK_TTL_SECONDS = 3600


def _jsonable(result: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in result.items():
        if isinstance(value, date):
            out[key] = value.isoformat()
        elif hasattr(value, "__dataclass_fields__"):
            stats = asdict(value)
            stats["week_start"] = value.week_start.isoformat()
            out[key] = stats
        else:
            out[key] = value
    return out


@celery_app.task(name="viandas.tasks.notifications.dispatch_weekly_notifications")
def dispatch_weekly_notifications(now: Optional[str] = None) -> Dict[str, Any]:
    """Celery Beat task: evaluate the weekly reminder and summary triggers once.

    `now` (ISO 8601) replaces the wall clock, e.g. to replay a missed slot;
    a naive value is read in the configured timezone.
    """
    if not acquire_lock(LOCK_KEY, LOCK_TTL_SECONDS):
        logger.info("dispatch_weekly_notifications: lock already acquired, skipping")
        return {"status": "skipped", "reason": "lock_already_acquired"}

    try:
        config = load_config()
        if now is None:
            current = datetime.now(config.tz)
        else:
            current = datetime.fromisoformat(now)
            if current.tzinfo is None:
                current = current.replace(tzinfo=config.tz)
            else:
                current = current.astimezone(config.tz)

        result = evaluate_notifications(
            current,
            config=config.notifications,
            store=DatabaseStateStore(get_engine(config.primary_database_url)),
            sessions=get_session_factory(config.primary_database_url),
            channel=build_channel(config),
        )
        logger.info(
            "dispatch_weekly_notifications: target_week=%s reminder=%s summary=%s",
            result["target_week_start"],
            result["reminder"],
            result["summary"],
        )
        return {"status": "ok", **_jsonable(result)}
    finally:
        release_lock(LOCK_KEY)
