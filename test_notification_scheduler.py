"""Tests for the weekly reminder/summary scheduler and dispatcher.

Uses a monday-first week, reminder on monday 09:00 and summary on friday 17:00.
2025-06-02 is a monday, so the target ("next") week is 2025-06-09 .. 2025-06-15.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from viandas.config import NotificationConfig, TriggerConfig
from viandas.models import DailyMenu, DailyMenuItem, MenuCategory, Role, User, UserMenuSelection
from viandas.services.delivery.channels import DeliveryError, LogChannel
from viandas.services.notifications import (
    DatabaseStateStore,
    MemoryStateStore,
    evaluate_notifications,
    make_notification_tick,
    send_reminders,
    send_summaries,
    trigger_is_due,
)
from viandas.services.notifications.rendering import (
    EMPTY_OBSERVATION,
    MISSING_ITEM,
    build_summary_rows,
    render_summary,
)
from viandas.utils.weeks import week_range

TZ = ZoneInfo("America/Argentina/Buenos_Aires")
MONDAY_0905 = datetime(2025, 6, 2, 9, 5, tzinfo=TZ)
FRIDAY_1730 = datetime(2025, 6, 6, 17, 30, tzinfo=TZ)
TARGET = week_range(date(2025, 6, 9))

CONFIG = NotificationConfig(
    polling_interval=timedelta(minutes=60),
    first_day_of_week=0,
    reminder=TriggerConfig(weekday=0, at=time(9, 0)),
    summary=TriggerConfig(weekday=4, at=time(17, 0)),
    state_backend="memory",
    delivery_channel="log",
    brand_name="AccuViandas",
)


class _FlakyChannel(LogChannel):
    """Log channel that refuses some addresses."""

    def __init__(self, failing):
        super().__init__()
        self.failing = set(failing)

    def send(self, to_address, subject, body):
        if to_address in self.failing:
            raise DeliveryError(f"mailbox unavailable: {to_address}")
        return super().send(to_address, subject, body)


def _seed_users(sessions):
    with sessions() as session:
        session.add(Role(id=1, name="User"))
        session.add_all(
            [
                User(id=1, username="alice", email_address="alice@example.com", role_id=1),
                User(id=2, username="bob", email_address="bob@example.com", role_id=1),
                User(id=3, username="carol", email_address=None, role_id=1),
                User(id=4, username="dave", email_address="   ", role_id=1),
            ]
        )
        session.commit()


def _seed_week_menus(sessions, start=TARGET.start):
    ids = []
    with sessions() as session:
        for offset in range(2):
            menu = DailyMenu(
                menu_date=start + timedelta(days=offset),
                items=[
                    DailyMenuItem(name=f"Milanesa {offset}", category=MenuCategory.CLASICA),
                    DailyMenuItem(name=f"Tarta {offset}", category=MenuCategory.VEGGIE),
                ],
            )
            session.add(menu)
            session.flush()
            ids.append(menu.id)
        session.commit()
    return ids


def _select(sessions, user_id, menu_id, category, *, active=True, observation=None):
    with sessions() as session:
        session.add(
            UserMenuSelection(
                user_id=user_id,
                daily_menu_id=menu_id,
                selected_category=category,
                is_active=active,
                observation=observation,
            )
        )
        session.commit()


def _evaluate(now, sessions, store, channel):
    return evaluate_notifications(now, config=CONFIG, store=store, sessions=sessions, channel=channel)


def test_trigger_is_due():
    trigger = TriggerConfig(weekday=0, at=time(9, 0))
    target = date(2025, 6, 9)
    assert trigger_is_due(MONDAY_0905, trigger, None, target)
    assert trigger_is_due(MONDAY_0905, trigger, date(2025, 6, 2), target)
    assert not trigger_is_due(MONDAY_0905, trigger, target, target)
    assert not trigger_is_due(MONDAY_0905.replace(hour=8, minute=59), trigger, None, target)
    assert not trigger_is_due(MONDAY_0905 + timedelta(days=1), trigger, None, target)


def test_reminder_goes_only_to_users_without_selections(primary_sessions):
    _seed_users(primary_sessions)
    menu_ids = _seed_week_menus(primary_sessions)
    _select(primary_sessions, 2, menu_ids[0], MenuCategory.CLASICA)
    store = MemoryStateStore()
    channel = LogChannel()

    result = _evaluate(MONDAY_0905, primary_sessions, store, channel)

    assert result["target_week_start"] == date(2025, 6, 9)
    assert result["target_week_end"] == date(2025, 6, 15)
    assert result["reminder"] == "fired"
    assert result["summary"] == "not_due"
    assert [m["to"] for m in channel.sent] == ["alice@example.com"]
    assert "09/06/2025" in channel.sent[0]["subject"]
    assert "AccuViandas" in channel.sent[0]["subject"]
    assert "alice" in channel.sent[0]["body"]
    stats = result["reminder_stats"]
    assert (stats.recipients, stats.sent, stats.skipped, stats.failed) == (2, 1, 1, 0)
    assert store.last_fired("reminder") == date(2025, 6, 9)


def test_reminder_fires_once_per_week(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    store = MemoryStateStore()
    channel = LogChannel()

    first = _evaluate(MONDAY_0905, primary_sessions, store, channel)
    second = _evaluate(MONDAY_0905.replace(hour=10), primary_sessions, store, channel)

    assert first["reminder"] == "fired"
    assert second["reminder"] == "already_fired"
    assert len(channel.sent) == 2


def test_inactive_selection_still_gets_reminder(primary_sessions):
    _seed_users(primary_sessions)
    menu_ids = _seed_week_menus(primary_sessions)
    _select(primary_sessions, 2, menu_ids[0], MenuCategory.CLASICA, active=False)
    # selection in the current week does not count for next week
    current_ids = _seed_week_menus(primary_sessions, start=date(2025, 6, 2))
    _select(primary_sessions, 1, current_ids[0], MenuCategory.CLASICA)
    channel = LogChannel()

    _evaluate(MONDAY_0905, primary_sessions, MemoryStateStore(), channel)

    assert sorted(m["to"] for m in channel.sent) == ["alice@example.com", "bob@example.com"]


def test_before_trigger_time_nothing_is_sent(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    store = MemoryStateStore()
    channel = LogChannel()

    result = _evaluate(MONDAY_0905.replace(hour=8, minute=30), primary_sessions, store, channel)

    assert result["reminder"] == "not_due"
    assert channel.sent == []
    assert store.last_fired("reminder") is None


def test_reminder_waits_for_published_menus(primary_sessions):
    _seed_users(primary_sessions)
    store = MemoryStateStore()
    channel = LogChannel()

    result = _evaluate(MONDAY_0905, primary_sessions, store, channel)

    assert result["reminder"] == "no_menus"
    assert channel.sent == []
    assert store.last_fired("reminder") is None

    # menus published later that day: the next tick sends
    _seed_week_menus(primary_sessions)
    result = _evaluate(MONDAY_0905.replace(hour=11), primary_sessions, store, channel)
    assert result["reminder"] == "fired"
    assert len(channel.sent) == 2


def test_summary_lists_the_week_selections(primary_sessions):
    _seed_users(primary_sessions)
    menu_ids = _seed_week_menus(primary_sessions)
    _select(primary_sessions, 2, menu_ids[1], MenuCategory.VEGGIE, observation="sin cebolla")
    _select(primary_sessions, 2, menu_ids[0], MenuCategory.CLASICA)
    store = MemoryStateStore()
    channel = LogChannel()

    result = _evaluate(FRIDAY_1730, primary_sessions, store, channel)

    assert result["reminder"] == "not_due"
    assert result["summary"] == "fired"
    assert [m["to"] for m in channel.sent] == ["bob@example.com"]
    message = channel.sent[0]
    assert message["subject"] == "Confirmación de tu menú para la semana de AccuViandas (09/06/2025 - 15/06/2025)"
    body = message["body"]
    assert body.index("09/06/2025</td>") < body.index("10/06/2025</td>")
    assert "Milanesa 0" in body
    assert "Tarta 1" in body
    assert "sin cebolla" in body
    assert "Clásica" in body
    assert store.last_fired("summary") == date(2025, 6, 9)


def test_summary_rows_fall_back_for_missing_item_and_observation(primary_sessions):
    _seed_users(primary_sessions)
    menu_ids = _seed_week_menus(primary_sessions)
    _select(primary_sessions, 1, menu_ids[0], MenuCategory.EXPRESS)

    with primary_sessions() as session:
        selection = session.query(UserMenuSelection).one()
        rows = build_summary_rows([selection])

    assert rows[0].item_name == MISSING_ITEM
    assert rows[0].observation == EMPTY_OBSERVATION
    assert rows[0].category == "Express"
    _, body = render_summary("alice", TARGET, rows, "AccuViandas")
    assert f"<td>{MISSING_ITEM}</td>" in body


def test_rendering_escapes_user_text():
    from viandas.services.notifications.rendering import SummaryRow

    rows = [SummaryRow(date(2025, 6, 9), "Clásica", "Pollo <b>grill</b>", "a & b")]
    _, body = render_summary("<script>", TARGET, rows, "AccuViandas")
    assert "<script>" not in body
    assert "Pollo &lt;b&gt;grill&lt;/b&gt;" in body
    assert "a &amp; b" in body


def test_failed_recipient_does_not_stop_the_dispatch(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    channel = _FlakyChannel(failing=["alice@example.com"])

    with primary_sessions() as session:
        stats = send_reminders(session, TARGET, channel, "AccuViandas")

    assert stats.failed == 1
    assert stats.sent == 1
    assert stats.errors[0]["user_id"] == 1
    assert "mailbox unavailable" in stats.errors[0]["error"]
    assert [m["to"] for m in channel.sent] == ["bob@example.com"]


def test_summary_skips_users_without_selections(primary_sessions):
    _seed_users(primary_sessions)
    menu_ids = _seed_week_menus(primary_sessions)
    _select(primary_sessions, 1, menu_ids[0], MenuCategory.CLASICA)
    channel = LogChannel()

    with primary_sessions() as session:
        stats = send_summaries(session, TARGET, channel, "AccuViandas")

    assert (stats.recipients, stats.sent, stats.skipped) == (2, 1, 1)
    assert channel.sent[0]["to"] == "alice@example.com"


def test_store_error_marks_trigger_failed_and_keeps_going():
    # no tables: every query fails
    broken = sessionmaker(
        bind=create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    )
    store = MemoryStateStore()
    channel = LogChannel()

    reminder = _evaluate(MONDAY_0905, broken, store, channel)
    summary = _evaluate(FRIDAY_1730, broken, store, channel)

    assert reminder["reminder"] == "failed"
    assert summary["summary"] == "failed"
    assert store.last_fired("reminder") is None
    assert store.last_fired("summary") is None
    assert channel.sent == []


def test_database_state_store_shared_between_workers(primary_engine, primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    channel = LogChannel()

    first = _evaluate(MONDAY_0905, primary_sessions, DatabaseStateStore(primary_engine), channel)
    # another worker (fresh store object, same database) on its next tick
    second = _evaluate(MONDAY_0905.replace(hour=9, minute=20), primary_sessions, DatabaseStateStore(primary_engine), channel)

    assert first["reminder"] == "fired"
    assert second["reminder"] == "already_fired"
    assert len(channel.sent) == 2
    assert DatabaseStateStore(primary_engine).last_fired("reminder") == date(2025, 6, 9)


def test_next_week_fires_again(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    _seed_week_menus(primary_sessions, start=date(2025, 6, 16))
    store = MemoryStateStore()
    channel = LogChannel()

    _evaluate(MONDAY_0905, primary_sessions, store, channel)
    result = _evaluate(MONDAY_0905 + timedelta(days=7), primary_sessions, store, channel)

    assert result["reminder"] == "fired"
    assert store.last_fired("reminder") == date(2025, 6, 16)
    assert len(channel.sent) == 4


def test_notification_tick_reads_the_clock(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    channel = LogChannel()
    tick = make_notification_tick(
        CONFIG,
        store=MemoryStateStore(),
        sessions=primary_sessions,
        channel=channel,
        clock=lambda: MONDAY_0905,
    )

    import threading

    result = tick(threading.Event())

    assert result["reminder"] == "fired"
    assert len(channel.sent) == 2


class _BlippingStore:
    """Durable store stand-in whose first write fails."""

    def __init__(self, failing_writes=1):
        self.marks = {}
        self.failing_writes = failing_writes

    def last_fired(self, kind):
        return self.marks.get(kind)

    def mark_fired(self, kind, period_start, fired_at):
        if self.failing_writes:
            self.failing_writes -= 1
            raise RuntimeError("primary store blip")
        self.marks[kind] = period_start


def test_unreadable_state_store_fails_the_trigger_only(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    # markers table missing on this engine: every read and write fails
    no_markers = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    store = DatabaseStateStore(no_markers)
    channel = LogChannel()

    monday = _evaluate(MONDAY_0905, primary_sessions, store, channel)
    friday = _evaluate(FRIDAY_1730, primary_sessions, store, channel)

    assert monday["reminder"] == "failed"
    assert monday["summary"] == "not_due"
    assert friday["reminder"] == "not_due"
    assert friday["summary"] == "failed"
    assert channel.sent == []


def test_failed_marker_write_does_not_resend(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    store = _BlippingStore()
    channel = LogChannel()

    first = _evaluate(MONDAY_0905, primary_sessions, store, channel)
    assert store.last_fired("reminder") is None

    second = _evaluate(MONDAY_0905.replace(hour=10), primary_sessions, store, channel)

    assert first["reminder"] == "fired"
    assert second["reminder"] == "already_fired"
    assert len(channel.sent) == 2
    # the write owed from the first tick went through on the second
    assert store.last_fired("reminder") == date(2025, 6, 9)


def test_marker_write_keeps_failing(primary_sessions):
    _seed_users(primary_sessions)
    _seed_week_menus(primary_sessions)
    store = _BlippingStore(failing_writes=10)
    channel = LogChannel()

    for hour in (9, 10, 11):
        _evaluate(MONDAY_0905.replace(hour=hour), primary_sessions, store, channel)

    assert len(channel.sent) == 2
    assert store.last_fired("reminder") is None
