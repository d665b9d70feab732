"""Validated runtime configuration for the maintenance workers.

`settings` holds raw environment strings; `load_config()` turns them into typed,
frozen dataclasses and raises `ConfigError` on anything that cannot work.
Workers call it once at startup so a bad setting stops the process before the
first cycle instead of failing inside it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from viandas import settings
from viandas.utils.weeks import parse_time_of_day, parse_weekday

STATE_BACKENDS = ("memory", "database")
DELIVERY_CHANNELS = ("smtp", "webhook", "log")


class ConfigError(ValueError):
    """Raised when a required setting is missing or malformed."""


@dataclass(frozen=True)
class TriggerConfig:
    weekday: int
    at: time


@dataclass(frozen=True)
class RetentionConfig:
    polling_interval: timedelta
    retention_days: int
    batch_size: int


@dataclass(frozen=True)
class NotificationConfig:
    polling_interval: timedelta
    first_day_of_week: int
    reminder: TriggerConfig
    summary: TriggerConfig
    state_backend: str
    delivery_channel: str
    brand_name: str


@dataclass(frozen=True)
class SmtpConfig:
    server: str
    port: int
    username: str
    password: str
    sender_email: str
    sender_name: str
    use_tls: bool


@dataclass(frozen=True)
class WebhookConfig:
    url: str
    token: str


@dataclass(frozen=True)
class WorkerConfig:
    timezone: str
    primary_database_url: str
    archive_database_url: str
    retention: RetentionConfig
    notifications: NotificationConfig
    smtp: Optional[SmtpConfig]
    webhook: Optional[WebhookConfig]

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _raw(name: str, overrides: Dict[str, Any]) -> Any:
    if name in overrides:
        return overrides[name]
    return getattr(settings, name)


def _positive_int(name: str, overrides: Dict[str, Any], *, allow_zero: bool = False) -> int:
    value = _raw(name, overrides)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if number < 0 or (number == 0 and not allow_zero):
        raise ConfigError(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {number}")
    return number


def _weekday(name: str, overrides: Dict[str, Any]) -> int:
    try:
        return parse_weekday(_raw(name, overrides))
    except ValueError as exc:
        raise ConfigError(f"{name}: {exc}") from None


def _time_of_day(name: str, overrides: Dict[str, Any]) -> time:
    try:
        return parse_time_of_day(_raw(name, overrides))
    except ValueError as exc:
        raise ConfigError(f"{name}: {exc}") from None


def _flag(value: Any) -> bool:
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def _choice(name: str, overrides: Dict[str, Any], choices: tuple) -> str:
    value = str(_raw(name, overrides) or "").strip().lower()
    if value not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def _require(names: tuple, overrides: Dict[str, Any], context: str) -> None:
    missing = [n for n in names if not str(_raw(n, overrides) or "").strip()]
    if missing:
        raise ConfigError(f"{context} requires {', '.join(missing)}")


def load_config(overrides: Optional[Dict[str, Any]] = None) -> WorkerConfig:
    """Build a `WorkerConfig` from `viandas.settings`.

    Args:
        overrides: optional mapping of setting name -> raw value, taking
            precedence over the environment (used by tests and the CLI).

    Raises:
        ConfigError: on the first invalid or missing setting.
    """
    overrides = overrides or {}

    tz_name = str(_raw("TZ", overrides) or "UTC")
    try:
        ZoneInfo(tz_name)
    except Exception:
        raise ConfigError(f"TZ: unknown timezone {tz_name!r}") from None

    retention = RetentionConfig(
        polling_interval=timedelta(
            minutes=_positive_int("DATA_RETENTION_POLLING_INTERVAL_MINUTES", overrides)
        ),
        retention_days=_positive_int("DATA_RETENTION_DAYS", overrides, allow_zero=True),
        batch_size=_positive_int("DATA_RETENTION_BATCH_SIZE", overrides),
    )

    notifications = NotificationConfig(
        polling_interval=timedelta(minutes=_positive_int("EMAIL_POLLING_INTERVAL_MINUTES", overrides)),
        first_day_of_week=_weekday("EMAIL_START_DAY_OF_WEEK", overrides),
        reminder=TriggerConfig(
            weekday=_weekday("EMAIL_REMINDER_DAY_OF_WEEK", overrides),
            at=_time_of_day("EMAIL_REMINDER_TIME", overrides),
        ),
        summary=TriggerConfig(
            weekday=_weekday("EMAIL_SUMMARY_DAY_OF_WEEK", overrides),
            at=_time_of_day("EMAIL_SUMMARY_TIME", overrides),
        ),
        state_backend=_choice("EMAIL_STATE_BACKEND", overrides, STATE_BACKENDS),
        delivery_channel=_choice("EMAIL_DELIVERY_CHANNEL", overrides, DELIVERY_CHANNELS),
        brand_name=str(_raw("BRAND_NAME", overrides) or "AccuViandas"),
    )

    smtp: Optional[SmtpConfig] = None
    webhook: Optional[WebhookConfig] = None
    if notifications.delivery_channel == "smtp":
        _require(
            ("SMTP_SERVER", "SMTP_USERNAME", "SMTP_PASSWORD", "SMTP_SENDER_EMAIL"),
            overrides,
            "EMAIL_DELIVERY_CHANNEL=smtp",
        )
        smtp = SmtpConfig(
            server=str(_raw("SMTP_SERVER", overrides)),
            port=_positive_int("SMTP_PORT", overrides),
            username=str(_raw("SMTP_USERNAME", overrides)),
            password=str(_raw("SMTP_PASSWORD", overrides)),
            sender_email=str(_raw("SMTP_SENDER_EMAIL", overrides)),
            sender_name=str(_raw("SMTP_SENDER_NAME", overrides) or ""),
            use_tls=_flag(_raw("SMTP_USE_TLS", overrides)),
        )
    elif notifications.delivery_channel == "webhook":
        _require(("EMAIL_WEBHOOK_URL",), overrides, "EMAIL_DELIVERY_CHANNEL=webhook")
        webhook = WebhookConfig(
            url=str(_raw("EMAIL_WEBHOOK_URL", overrides)),
            token=str(_raw("EMAIL_WEBHOOK_TOKEN", overrides) or ""),
        )

    return WorkerConfig(
        timezone=tz_name,
        primary_database_url=str(_raw("PRIMARY_DATABASE_URL", overrides)),
        archive_database_url=str(_raw("ARCHIVE_DATABASE_URL", overrides)),
        retention=retention,
        notifications=notifications,
        smtp=smtp,
        webhook=webhook,
    )
