"""Weekly reminder and summary dispatch.

Both dispatches walk every user with an email address and look at that
user's active selections for the target week:

- reminder: sent only to users with no active selection in the week;
- summary: sent only to users with at least one, as a table of their picks.

A failed delivery is recorded and the next recipient is processed. Store
errors are not caught here: they abort the dispatch and surface to the
scheduler as one failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from viandas.models import DailyMenu, User, UserMenuSelection
from viandas.services.delivery.channels import DeliveryChannel
from viandas.services.notifications.rendering import (
    build_summary_rows,
    render_reminder,
    render_summary,
)
from viandas.utils.weeks import WeekRange

logger = logging.getLogger(__name__)

REMINDER = "reminder"
SUMMARY = "summary"


@dataclass
class DispatchStats:
    kind: str
    week_start: date
    recipients: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


def menus_exist_for_week(session: Session, week: WeekRange) -> bool:
    stmt = (
        select(DailyMenu.id)
        .where(DailyMenu.menu_date >= week.start, DailyMenu.menu_date <= week.end)
        .limit(1)
    )
    return session.execute(stmt).first() is not None


def users_with_email(session: Session) -> List[User]:
    stmt = select(User).where(User.email_address.is_not(None)).order_by(User.id.asc())
    return [u for u in session.execute(stmt).scalars().all() if (u.email_address or "").strip()]


def _active_in_week(user_id: int, week: WeekRange) -> tuple:
    return (
        UserMenuSelection.user_id == user_id,
        UserMenuSelection.is_active.is_(True),
        DailyMenu.menu_date >= week.start,
        DailyMenu.menu_date <= week.end,
    )


def has_active_selection(session: Session, user_id: int, week: WeekRange) -> bool:
    stmt = (
        select(UserMenuSelection.id)
        .join(DailyMenu, DailyMenu.id == UserMenuSelection.daily_menu_id)
        .where(*_active_in_week(user_id, week))
        .limit(1)
    )
    return session.execute(stmt).first() is not None


def active_selections(session: Session, user_id: int, week: WeekRange) -> List[UserMenuSelection]:
    stmt = (
        select(UserMenuSelection)
        .join(DailyMenu, DailyMenu.id == UserMenuSelection.daily_menu_id)
        .where(*_active_in_week(user_id, week))
        .options(selectinload(UserMenuSelection.daily_menu).selectinload(DailyMenu.items))
        .order_by(DailyMenu.menu_date.asc(), UserMenuSelection.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _deliver(
    channel: DeliveryChannel,
    stats: DispatchStats,
    user: User,
    subject: str,
    body: str,
) -> None:
    address = user.email_address.strip()
    try:
        ok = channel.send(address, subject, body)
    except Exception as e:
        ok = False
        stats.errors.append({"user_id": user.id, "email": address, "error": f"{type(e).__name__}: {e}"})
        logger.error(
            f"{stats.kind}: delivery to {address} (user_id={user.id}) failed: {type(e).__name__}: {e}"
        )
    else:
        if not ok:
            stats.errors.append({"user_id": user.id, "email": address, "error": "channel returned failure"})
            logger.error(f"{stats.kind}: delivery to {address} (user_id={user.id}) reported failure")

    if ok:
        stats.sent += 1
        logger.info(f"{stats.kind}: sent to {address} (week {stats.week_start.isoformat()})")
    else:
        stats.failed += 1


def send_reminders(
    session: Session,
    week: WeekRange,
    channel: DeliveryChannel,
    brand_name: str,
) -> DispatchStats:
    stats = DispatchStats(kind=REMINDER, week_start=week.start)
    for user in users_with_email(session):
        stats.recipients += 1
        if has_active_selection(session, user.id, week):
            stats.skipped += 1
            logger.info(
                f"reminder: user {user.username} already has selections for week {week.start.isoformat()}, skipping"
            )
            continue
        subject, body = render_reminder(user.username, week, brand_name)
        _deliver(channel, stats, user, subject, body)

    logger.info(
        f"reminder: week={week.start.isoformat()} recipients={stats.recipients} "
        f"sent={stats.sent} skipped={stats.skipped} failed={stats.failed}"
    )
    return stats


def send_summaries(
    session: Session,
    week: WeekRange,
    channel: DeliveryChannel,
    brand_name: str,
) -> DispatchStats:
    stats = DispatchStats(kind=SUMMARY, week_start=week.start)
    for user in users_with_email(session):
        stats.recipients += 1
        selections = active_selections(session, user.id, week)
        if not selections:
            stats.skipped += 1
            continue
        subject, body = render_summary(user.username, week, build_summary_rows(selections), brand_name)
        _deliver(channel, stats, user, subject, body)

    logger.info(
        f"summary: week={week.start.isoformat()} recipients={stats.recipients} "
        f"sent={stats.sent} skipped={stats.skipped} failed={stats.failed}"
    )
    return stats
