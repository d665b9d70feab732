#!/usr/bin/env python3
"""Inspect or reset the durable weekly email markers.

Only meaningful with EMAIL_STATE_BACKEND=database. Resetting a marker makes
the trigger fire again the next time it is due for the current target week.

Usage:
    python scripts/notification_markers.py list
    python scripts/notification_markers.py reset reminder
"""

from __future__ import annotations

import argparse
import sys

from viandas.config import load_config
from viandas.db import ensure_schema, get_engine
from viandas.db_notification_state import list_markers, reset_marker


def main():
    parser = argparse.ArgumentParser(description="Weekly email markers")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Show the last week each notification fired for")
    reset = sub.add_parser("reset", help="Forget the marker of one notification type")
    reset.add_argument("notification_type", choices=["reminder", "summary"])

    args = parser.parse_args()

    try:
        config = load_config({"EMAIL_DELIVERY_CHANNEL": "log"})
        engine = get_engine(config.primary_database_url)
        ensure_schema(engine)
        if args.command == "list":
            markers = list_markers(engine)
            if not markers:
                print("No markers recorded")
            for kind, period_start in markers.items():
                print(f"  {kind}: week of {period_start.isoformat()}")
        else:
            if reset_marker(engine, args.notification_type):
                print(f"✓ Reset {args.notification_type} marker")
            else:
                print(f"No {args.notification_type} marker to reset")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
