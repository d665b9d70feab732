#!/usr/bin/env python3
"""Run a single archival cycle outside the worker loop.

Moves daily menus older than the cutoff (and their items and selections) from
the primary store into the archive store.

Usage:
    python scripts/run_archival_once.py [--retention-days 30 | --cutoff 2025-01-31] [--dry-run]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime

from viandas.config import ConfigError, load_config
from viandas.db import ensure_schema, get_engine, get_session_factory
from viandas.services.archival.engine import ArchivalError, cutoff_for, run_archival_cycle


def main():
    parser = argparse.ArgumentParser(
        description="Archive aged daily menus once",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run (show what would be archived)
  python scripts/run_archival_once.py --dry-run

  # Archive everything older than 90 days
  python scripts/run_archival_once.py --retention-days 90

  # Archive everything dated before an explicit day
  python scripts/run_archival_once.py --cutoff 2025-01-01
        """
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Keep this many days in the primary store (default: DATA_RETENTION_DAYS)"
    )
    group.add_argument(
        "--cutoff",
        type=date.fromisoformat,
        default=None,
        help="Archive menus dated strictly before this day (YYYY-MM-DD)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be archived without making changes"
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        config = load_config({"EMAIL_DELIVERY_CHANNEL": "log"})
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.cutoff is not None:
        cutoff = args.cutoff
    else:
        days = config.retention.retention_days if args.retention_days is None else args.retention_days
        cutoff = cutoff_for(datetime.now(config.tz).date(), days)

    try:
        ensure_schema(get_engine(config.archive_database_url))
        stats = run_archival_cycle(
            cutoff,
            primary_sessions=get_session_factory(config.primary_database_url),
            archive_sessions=get_session_factory(config.archive_database_url),
            batch_size=config.retention.batch_size,
            dry_run=args.dry_run,
        )
    except ArchivalError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(json.dumps(e.stats.as_dict(), indent=2))
        sys.exit(1)

    print(json.dumps(stats.as_dict(), indent=2))
    if args.dry_run:
        print("\n[DRY RUN] Nothing was changed. Run without --dry-run to apply.")


if __name__ == "__main__":
    main()
