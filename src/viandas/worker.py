#!/usr/bin/env python3
"""Maintenance worker: runs the archival and notification loops.

Each loop runs on its own thread: wake, run one cycle, sleep the polling
interval, repeat. SIGINT/SIGTERM set a shared stop event; a sleeping loop
wakes immediately and an in-flight archival batch is rolled back.

Usage:
    viandas-worker [--only archival|notifications] [--once] [--log-level INFO]
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import List, Optional

from viandas.config import ConfigError, WorkerConfig, load_config
from viandas.db import ensure_schema, get_engine, get_session_factory
from viandas.services.archival.engine import make_archival_tick
from viandas.services.delivery.channels import build_channel
from viandas.services.notifications.scheduler import (
    DatabaseStateStore,
    MemoryStateStore,
    make_notification_tick,
)
from viandas.services.scheduling.cron import describe_trigger, next_trigger_at
from viandas.services.scheduling.loop import PeriodicLoop

logger = logging.getLogger("viandas.worker")

ENGINES = ("archival", "notifications")


def build_loops(config: WorkerConfig, stop_event: threading.Event, only: str = "") -> List[PeriodicLoop]:
    def clock() -> datetime:
        return datetime.now(config.tz)

    loops: List[PeriodicLoop] = []

    if only in ("", "archival"):
        ensure_schema(get_engine(config.archive_database_url))
        retention = config.retention
        logger.info(
            "Data maintenance initialized: polling every %.0f minutes, retaining %d days of data",
            retention.polling_interval.total_seconds() / 60,
            retention.retention_days,
        )
        loops.append(
            PeriodicLoop(
                "archival",
                retention.polling_interval,
                make_archival_tick(
                    retention.retention_days,
                    primary_sessions=get_session_factory(config.primary_database_url),
                    archive_sessions=get_session_factory(config.archive_database_url),
                    clock=clock,
                    batch_size=retention.batch_size,
                ),
                stop_event,
            )
        )

    if only in ("", "notifications"):
        notifications = config.notifications
        if notifications.state_backend == "database":
            engine = get_engine(config.primary_database_url)
            ensure_schema(engine)
            store = DatabaseStateStore(engine)
        else:
            store = MemoryStateStore()

        now = clock()
        for kind, trigger in (("reminder", notifications.reminder), ("summary", notifications.summary)):
            logger.info(
                "Weekly %s: %s, next due at %s (UTC)",
                kind,
                describe_trigger(trigger),
                next_trigger_at(trigger, config.timezone, now).isoformat(),
            )
        loops.append(
            PeriodicLoop(
                "notifications",
                notifications.polling_interval,
                make_notification_tick(
                    notifications,
                    store=store,
                    sessions=get_session_factory(config.primary_database_url),
                    channel=build_channel(config),
                    clock=clock,
                ),
                stop_event,
            )
        )

    return loops


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Run the data retention and weekly email loops",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Both loops until SIGTERM
  viandas-worker

  # Only the archival loop, a single cycle
  viandas-worker --only archival --once
        """,
    )
    parser.add_argument("--only", choices=ENGINES, default="", help="Run a single engine")
    parser.add_argument("--once", action="store_true", help="Run one cycle per engine and exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_config()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    stop_event = threading.Event()
    loops = build_loops(config, stop_event, only=args.only)

    if args.once:
        ok = all([loop.run_once() for loop in loops])
        return 0 if ok else 1

    def _handle_signal(signum, _frame):
        logger.info(f"Received signal {signum}, stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    threads = [loop.start() for loop in loops]
    while any(t.is_alive() for t in threads):
        for t in threads:
            t.join(timeout=1.0)
    logger.info("Worker stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
