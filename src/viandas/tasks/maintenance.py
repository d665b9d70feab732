from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from viandas.celery_app import celery_app
from viandas.config import load_config
from viandas.db import ensure_schema, get_engine, get_session_factory
from viandas.services.archival.engine import ArchivalError, cutoff_for, run_archival_cycle
from viandas.utils.locks import acquire_lock, release_lock

logger = logging.getLogger(__name__)

LOCK_KEY = "lock:viandas:archival"
LOCK_TTL_SECONDS = 3 * 3600


@celery_app.task(name="viandas.tasks.maintenance.archive_aged_menus")
def archive_aged_menus(dry_run: bool = False, retention_days: Optional[int] = None) -> Dict[str, Any]:
    """Celery Beat task: run one archival cycle.

    - Skips if another archival run still holds the Redis lock
    - Ensures the archive schema exists
    - Archives daily menus older than today - retention days
    - On failure the batch is rolled back and the next run retries it

    Returns cycle stats with a `status` of "ok", "failed" or "skipped".
    """
    if not acquire_lock(LOCK_KEY, LOCK_TTL_SECONDS):
        logger.info("archive_aged_menus: lock already acquired, skipping")
        return {"status": "skipped", "reason": "lock_already_acquired"}

    try:
        config = load_config()
        days = config.retention.retention_days if retention_days is None else retention_days
        cutoff = cutoff_for(datetime.now(config.tz).date(), days)

        ensure_schema(get_engine(config.archive_database_url))

        try:
            stats = run_archival_cycle(
                cutoff,
                primary_sessions=get_session_factory(config.primary_database_url),
                archive_sessions=get_session_factory(config.archive_database_url),
                batch_size=config.retention.batch_size,
                dry_run=dry_run,
            )
        except ArchivalError as e:
            logger.error(f"archive_aged_menus: cycle failed, cutoff={cutoff}: {e}", exc_info=True)
            return {"status": "failed", "error": str(e), **e.stats.as_dict()}

        return {"status": "ok", **stats.as_dict()}
    finally:
        release_lock(LOCK_KEY)
