"""Database helpers for the `notification_state` table.

One row per notification type holding the start date of the last week it
fired for. `mark_fired()` only ever moves the marker forward, so two workers
racing on the same trigger cannot both record it.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from viandas.models import NotificationState

_table = NotificationState.__table__


def get_last_fired(engine: Engine, notification_type: str) -> Optional[date]:
    sql = select(_table.c.period_start).where(_table.c.notification_type == notification_type)
    with engine.connect() as conn:
        row = conn.execute(sql).first()
    return row[0] if row else None


def list_markers(engine: Engine) -> Dict[str, date]:
    sql = select(_table.c.notification_type, _table.c.period_start).order_by(_table.c.notification_type)
    with engine.connect() as conn:
        rows = conn.execute(sql).all()
    return {row[0]: row[1] for row in rows}


def mark_fired(
    engine: Engine,
    notification_type: str,
    period_start: date,
    fired_at: Optional[datetime] = None,
) -> bool:
    """Advance the marker to `period_start`.

    Returns True if the marker moved, False if it was already at or past
    `period_start` (another worker recorded it first).
    """
    now = fired_at or datetime.now(timezone.utc)
    try:
        with engine.begin() as conn:
            result = conn.execute(
                update(_table)
                .where(
                    _table.c.notification_type == notification_type,
                    _table.c.period_start < period_start,
                )
                .values(period_start=period_start, fired_at=now)
            )
            if result.rowcount:
                return True

            existing = conn.execute(
                select(_table.c.period_start).where(_table.c.notification_type == notification_type)
            ).first()
            if existing is not None:
                return False

            conn.execute(
                insert(_table).values(
                    notification_type=notification_type,
                    period_start=period_start,
                    fired_at=now,
                )
            )
    except IntegrityError:
        # Concurrent insert of the first marker for this type.
        return False
    return True


def reset_marker(engine: Engine, notification_type: str) -> bool:
    """Delete the marker so the next due trigger fires again."""
    with engine.begin() as conn:
        result = conn.execute(_table.delete().where(_table.c.notification_type == notification_type))
    return result.rowcount > 0
