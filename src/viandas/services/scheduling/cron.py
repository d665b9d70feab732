from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from croniter import croniter

from viandas.config import ConfigError, TriggerConfig
from viandas.utils.weeks import WEEKDAY_NAMES

DEFAULT_TIMEZONE = "America/Argentina/Buenos_Aires"


def validate_cron(cron_expr: str) -> None:
    """Validate a 5-field cron expression.

    Raises ConfigError if invalid.
    """
    if not croniter.is_valid(cron_expr):
        raise ConfigError(f"Invalid cron expression: {cron_expr}")


def _get_timezone(tz_name: str) -> ZoneInfo:
    """Resolve timezone name to ZoneInfo with validation."""
    try:
        return ZoneInfo(tz_name)
    except Exception as exc:
        raise ConfigError(f"Invalid timezone: {tz_name}. Error: {exc}") from None


def trigger_to_cron(trigger: TriggerConfig) -> str:
    """Weekly trigger as cron: minute hour * * dow (cron counts Sunday as 0)."""
    cron_dow = (trigger.weekday + 1) % 7
    return f"{trigger.at.minute} {trigger.at.hour} * * {cron_dow}"


def compute_next_run(cron_expr: str, timezone: str, from_dt: datetime) -> datetime:
    """Compute next run datetime in UTC for given cron and timezone.

    Args:
        cron_expr: 5-field cron expression (minute, hour, dom, month, dow)
        timezone: IANA timezone string
        from_dt: current reference time (assumed UTC, tz-aware or naive)

    Returns:
        next run in UTC as aware datetime
    """
    validate_cron(cron_expr)

    # Ensure `from_dt` is timezone-aware UTC
    if from_dt.tzinfo is None:
        from_dt_utc = from_dt.replace(tzinfo=ZoneInfo("UTC"))
    else:
        from_dt_utc = from_dt.astimezone(ZoneInfo("UTC"))

    tz = _get_timezone(timezone or DEFAULT_TIMEZONE)

    # Convert reference time to schedule timezone
    from_local = from_dt_utc.astimezone(tz)
    next_local = croniter(cron_expr, from_local).get_next(datetime)

    return next_local.astimezone(ZoneInfo("UTC"))


def next_trigger_at(trigger: TriggerConfig, timezone: str, from_dt: datetime) -> datetime:
    return compute_next_run(trigger_to_cron(trigger), timezone, from_dt)


def describe_trigger(trigger: TriggerConfig) -> str:
    """e.g. "every monday at 09:00"."""
    return f"every {WEEKDAY_NAMES[trigger.weekday]} at {trigger.at.hour:02d}:{trigger.at.minute:02d}"
