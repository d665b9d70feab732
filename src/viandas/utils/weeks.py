"""Calendar week windows used by the weekly notifications.

Weeks are identified by their start date (the "period start"). All ranges
are inclusive 7-day spans: ``start .. start + 6 days``. Nothing here reads
the wall clock; callers pass the reference instant explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Union

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_WEEKDAY_ALIASES = {name: idx for idx, name in enumerate(WEEKDAY_NAMES)}
_WEEKDAY_ALIASES.update({name[:3]: idx for idx, name in enumerate(WEEKDAY_NAMES)})

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class WeekRange:
    start: date
    end: date


@dataclass(frozen=True)
class WeekWindow:
    """Current and next week around a reference instant."""

    current: WeekRange
    next: WeekRange


def parse_weekday(value: Union[str, int]) -> int:
    """Resolve a weekday name, 3-letter abbreviation or 0-6 index (Monday=0).

    Raises ValueError for anything else.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid weekday: {value!r}")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"Invalid weekday index: {value} (expected 0=Monday..6=Sunday)")

    raw = str(value).strip().lower()
    if raw.isdigit():
        return parse_weekday(int(raw))
    if raw in _WEEKDAY_ALIASES:
        return _WEEKDAY_ALIASES[raw]
    raise ValueError(f"Invalid weekday: {value!r}")


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a time."""
    if isinstance(value, time):
        return value
    raw = str(value).strip()
    parts = raw.split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    try:
        numbers = [int(p) for p in parts]
        return time(*numbers)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)") from exc


def start_of_week(day: DateLike, first_day_of_week: int) -> date:
    """Return the latest date <= `day` whose weekday is `first_day_of_week`."""
    if isinstance(day, datetime):
        day = day.date()
    diff = (day.weekday() - first_day_of_week) % 7
    return day - timedelta(days=diff)


def week_range(start: date) -> WeekRange:
    return WeekRange(start=start, end=start + timedelta(days=6))


def current_week(now: DateLike, first_day_of_week: int) -> WeekRange:
    return week_range(start_of_week(now, first_day_of_week))


def next_week(now: DateLike, first_day_of_week: int) -> WeekRange:
    return week_range(start_of_week(now, first_day_of_week) + timedelta(days=7))


def week_window(now: DateLike, first_day_of_week: int) -> WeekWindow:
    return WeekWindow(
        current=current_week(now, first_day_of_week),
        next=next_week(now, first_day_of_week),
    )
