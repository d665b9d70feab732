"""Weekly reminder and summary notifications."""

from viandas.services.notifications.dispatcher import DispatchStats, send_reminders, send_summaries
from viandas.services.notifications.scheduler import (
    DatabaseStateStore,
    FiredState,
    MemoryStateStore,
    evaluate_notifications,
    make_notification_tick,
    trigger_is_due,
)

__all__ = [
    "DatabaseStateStore",
    "DispatchStats",
    "FiredState",
    "MemoryStateStore",
    "evaluate_notifications",
    "make_notification_tick",
    "send_reminders",
    "send_summaries",
    "trigger_is_due",
]
