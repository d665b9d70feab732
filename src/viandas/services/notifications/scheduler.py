"""Weekly notification triggers.

Two independent triggers, each a (weekday, time-of-day) pair:

- reminder: ask users without selections to order for next week;
- summary: confirm next week's selections to users who made them.

On every evaluation a trigger fires when today is its weekday, the time of
day is at or after its time, and it has not fired yet for the target week
(next week's start). After a successful dispatch the target week is recorded
as the trigger's last fired period. The reminder also needs at least one menu
published for the target week; without it the trigger is left unfired and is
checked again on the next tick.

Fired markers live in a state store owned by the caller: `MemoryStateStore`
(lost on restart, so a restart inside the trigger window sends again) or
`DatabaseStateStore` (durable, shared by all workers).

Every marker is also kept in process memory next to the caller's store and
is written there first. If the store cannot be read, the trigger counts as
failed for this tick. If the store cannot be written, the in-memory marker
still stops this process from sending the same week again, and the write is
retried on the next evaluation.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from viandas import db_notification_state
from viandas.config import NotificationConfig, TriggerConfig
from viandas.services.delivery.channels import DeliveryChannel
from viandas.services.notifications.dispatcher import (
    REMINDER,
    SUMMARY,
    menus_exist_for_week,
    send_reminders,
    send_summaries,
)
from viandas.services.scheduling.loop import raise_if_cancelled
from viandas.utils.weeks import WeekRange, week_window

logger = logging.getLogger(__name__)

OUTCOME_FIRED = "fired"
OUTCOME_NOT_DUE = "not_due"
OUTCOME_ALREADY_FIRED = "already_fired"
OUTCOME_NO_MENUS = "no_menus"
OUTCOME_FAILED = "failed"


@dataclass
class FiredState:
    last_reminder_period: Optional[date] = None
    last_summary_period: Optional[date] = None


class MemoryStateStore:
    """Fired markers held in process memory."""

    def __init__(self, state: Optional[FiredState] = None) -> None:
        self.state = state or FiredState()

    def last_fired(self, kind: str) -> Optional[date]:
        return getattr(self.state, f"last_{kind}_period")

    def mark_fired(self, kind: str, period_start: date, fired_at: datetime) -> None:
        setattr(self.state, f"last_{kind}_period", period_start)


class DatabaseStateStore:
    """Fired markers persisted in the primary store's `notification_state`."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def last_fired(self, kind: str) -> Optional[date]:
        return db_notification_state.get_last_fired(self.engine, kind)

    def mark_fired(self, kind: str, period_start: date, fired_at: datetime) -> None:
        if not db_notification_state.mark_fired(self.engine, kind, period_start, fired_at):
            logger.warning(f"{kind}: marker for week {period_start.isoformat()} was already recorded")


class _LocalMarkers(MemoryStateStore):
    """In-process copy of a store's markers plus the writes it still owes."""

    def __init__(self) -> None:
        super().__init__()
        self.unpersisted: Dict[str, Tuple[date, datetime]] = {}


_local_markers: "weakref.WeakKeyDictionary[Any, _LocalMarkers]" = weakref.WeakKeyDictionary()


def _local_markers_for(store) -> Optional[_LocalMarkers]:
    # a plain memory store is its own in-process copy
    if type(store) is MemoryStateStore:
        return None
    local = _local_markers.get(store)
    if local is None:
        local = _local_markers[store] = _LocalMarkers()
    return local


def _latest(*periods: Optional[date]) -> Optional[date]:
    known = [p for p in periods if p is not None]
    return max(known) if known else None


def _persist_marker(kind: str, store, local: _LocalMarkers, period_start: date, fired_at: datetime) -> None:
    try:
        store.mark_fired(kind, period_start, fired_at)
    except Exception as e:
        local.unpersisted[kind] = (period_start, fired_at)
        logger.exception(
            f"{kind}: could not persist marker for week {period_start.isoformat()}, "
            f"keeping it in memory and retrying next tick: {type(e).__name__}: {e}"
        )
    else:
        local.unpersisted.pop(kind, None)


def _read_last_fired(kind: str, store, local: Optional[_LocalMarkers], target_start: date) -> Optional[date]:
    if local is None:
        return store.last_fired(kind)

    if kind in local.unpersisted:
        _persist_marker(kind, store, local, *local.unpersisted[kind])

    remembered = local.last_fired(kind)
    if remembered is not None and remembered >= target_start:
        return remembered
    return _latest(remembered, store.last_fired(kind))


def _record_fired(kind: str, store, local: Optional[_LocalMarkers], period_start: date, fired_at: datetime) -> None:
    if local is None:
        store.mark_fired(kind, period_start, fired_at)
        return
    local.mark_fired(kind, period_start, fired_at)
    _persist_marker(kind, store, local, period_start, fired_at)


def trigger_is_due(
    now: datetime,
    trigger: TriggerConfig,
    last_fired: Optional[date],
    target_period_start: date,
) -> bool:
    if now.weekday() != trigger.weekday:
        return False
    if now.time() < trigger.at:
        return False
    return last_fired is None or last_fired < target_period_start


def _evaluate_trigger(
    kind: str,
    now: datetime,
    trigger: TriggerConfig,
    target: WeekRange,
    store,
    dispatch: Callable[[], Any],
    guard: Optional[Callable[[], bool]] = None,
) -> Tuple[str, Any]:
    # outside the trigger slot the store is not consulted
    if not trigger_is_due(now, trigger, None, target.start):
        return OUTCOME_NOT_DUE, None

    local = _local_markers_for(store)
    try:
        last_fired = _read_last_fired(kind, store, local, target.start)
    except Exception as e:
        logger.exception(f"{kind}: reading fired state failed: {type(e).__name__}: {e}")
        return OUTCOME_FAILED, None

    if not trigger_is_due(now, trigger, last_fired, target.start):
        return OUTCOME_ALREADY_FIRED, None

    try:
        if guard is not None and not guard():
            logger.info(
                f"{kind}: menus for week {target.start.isoformat()} are not available yet, not sending"
            )
            return OUTCOME_NO_MENUS, None
        logger.info(f"{kind}: starting dispatch for week {target.start.isoformat()}")
        stats = dispatch()
    except Exception as e:
        logger.exception(f"{kind}: dispatch for week {target.start.isoformat()} failed: {type(e).__name__}: {e}")
        return OUTCOME_FAILED, None

    _record_fired(kind, store, local, target.start, now)
    logger.info(f"{kind}: dispatch for week {target.start.isoformat()} completed")
    return OUTCOME_FIRED, stats


def evaluate_notifications(
    now: datetime,
    *,
    config: NotificationConfig,
    store,
    sessions: sessionmaker,
    channel: DeliveryChannel,
    stop_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """Evaluate both triggers once for the instant `now`.

    Returns a dict with the target week and the outcome per trigger
    (fired / not_due / already_fired / no_menus / failed).
    """
    target = week_window(now, config.first_day_of_week).next
    result: Dict[str, Any] = {"target_week_start": target.start, "target_week_end": target.end}

    def _with_session(fn):
        def _run():
            with sessions() as session:
                return fn(session)

        return _run

    def _reminder_guard() -> bool:
        with sessions() as session:
            return menus_exist_for_week(session, target)

    result[REMINDER], result["reminder_stats"] = _evaluate_trigger(
        REMINDER,
        now,
        config.reminder,
        target,
        store,
        dispatch=_with_session(lambda s: send_reminders(s, target, channel, config.brand_name)),
        guard=_reminder_guard,
    )

    raise_if_cancelled(stop_event)

    result[SUMMARY], result["summary_stats"] = _evaluate_trigger(
        SUMMARY,
        now,
        config.summary,
        target,
        store,
        dispatch=_with_session(lambda s: send_summaries(s, target, channel, config.brand_name)),
    )
    return result


def make_notification_tick(
    config: NotificationConfig,
    *,
    store,
    sessions: sessionmaker,
    channel: DeliveryChannel,
    clock: Callable[[], datetime],
) -> Callable[[threading.Event], Dict[str, Any]]:
    """Bind everything but the stop event, for `PeriodicLoop`."""

    def _tick(stop_event: threading.Event) -> Dict[str, Any]:
        return evaluate_notifications(
            clock(),
            config=config,
            store=store,
            sessions=sessions,
            channel=channel,
            stop_event=stop_event,
        )

    return _tick
