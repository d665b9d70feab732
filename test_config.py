"""Tests for load_config(): typed settings and ConfigError on bad input."""
from datetime import time, timedelta

import pytest

from viandas.config import ConfigError, load_config
from viandas.services.delivery.channels import LogChannel, SmtpChannel, WebhookChannel, build_channel

BASE = {
    "TZ": "America/Argentina/Buenos_Aires",
    "DATA_RETENTION_POLLING_INTERVAL_MINUTES": "60",
    "DATA_RETENTION_DAYS": "30",
    "DATA_RETENTION_BATCH_SIZE": "100",
    "EMAIL_POLLING_INTERVAL_MINUTES": "15",
    "EMAIL_START_DAY_OF_WEEK": "monday",
    "EMAIL_REMINDER_DAY_OF_WEEK": "monday",
    "EMAIL_REMINDER_TIME": "09:00",
    "EMAIL_SUMMARY_DAY_OF_WEEK": "friday",
    "EMAIL_SUMMARY_TIME": "17:00",
    "EMAIL_STATE_BACKEND": "memory",
    "EMAIL_DELIVERY_CHANNEL": "log",
    "BRAND_NAME": "AccuViandas",
}


def _load(**changes):
    overrides = dict(BASE)
    overrides.update(changes)
    return load_config(overrides)


def test_load_config_typed_values():
    config = _load()
    assert config.timezone == "America/Argentina/Buenos_Aires"
    assert config.retention.polling_interval == timedelta(minutes=60)
    assert config.retention.retention_days == 30
    assert config.retention.batch_size == 100
    assert config.notifications.polling_interval == timedelta(minutes=15)
    assert config.notifications.first_day_of_week == 0
    assert config.notifications.reminder.weekday == 0
    assert config.notifications.reminder.at == time(9, 0)
    assert config.notifications.summary.weekday == 4
    assert config.notifications.summary.at == time(17, 0)
    assert config.smtp is None
    assert config.webhook is None
    assert config.tz.key == "America/Argentina/Buenos_Aires"


def test_zero_retention_days_is_allowed():
    assert _load(DATA_RETENTION_DAYS="0").retention.retention_days == 0


@pytest.mark.parametrize(
    "name, value",
    [
        ("DATA_RETENTION_POLLING_INTERVAL_MINUTES", "0"),
        ("DATA_RETENTION_POLLING_INTERVAL_MINUTES", "hourly"),
        ("DATA_RETENTION_DAYS", "-1"),
        ("DATA_RETENTION_BATCH_SIZE", "0"),
        ("EMAIL_POLLING_INTERVAL_MINUTES", "-5"),
        ("EMAIL_START_DAY_OF_WEEK", "funday"),
        ("EMAIL_REMINDER_DAY_OF_WEEK", "9"),
        ("EMAIL_REMINDER_TIME", "9am"),
        ("EMAIL_SUMMARY_TIME", "24:00"),
        ("EMAIL_STATE_BACKEND", "redis"),
        ("EMAIL_DELIVERY_CHANNEL", "pigeon"),
        ("TZ", "Mars/Olympus_Mons"),
    ],
)
def test_invalid_setting_raises_config_error(name, value):
    with pytest.raises(ConfigError) as exc_info:
        _load(**{name: value})
    assert name in str(exc_info.value)


def test_smtp_channel_requires_credentials():
    with pytest.raises(ConfigError) as exc_info:
        _load(
            EMAIL_DELIVERY_CHANNEL="smtp",
            SMTP_SERVER="",
            SMTP_USERNAME="",
            SMTP_PASSWORD="",
            SMTP_SENDER_EMAIL="",
        )
    message = str(exc_info.value)
    for name in ("SMTP_SERVER", "SMTP_USERNAME", "SMTP_PASSWORD", "SMTP_SENDER_EMAIL"):
        assert name in message


def test_smtp_channel_config():
    config = _load(
        EMAIL_DELIVERY_CHANNEL="smtp",
        SMTP_SERVER="smtp.example.com",
        SMTP_PORT="2525",
        SMTP_USERNAME="mailer",
        SMTP_PASSWORD="secret",
        SMTP_SENDER_EMAIL="noreply@example.com",
        SMTP_SENDER_NAME="AccuViandas",
        SMTP_USE_TLS="false",
    )
    assert config.smtp.server == "smtp.example.com"
    assert config.smtp.port == 2525
    assert config.smtp.use_tls is False
    assert isinstance(build_channel(config), SmtpChannel)


def test_webhook_channel_requires_url():
    with pytest.raises(ConfigError):
        _load(EMAIL_DELIVERY_CHANNEL="webhook", EMAIL_WEBHOOK_URL="")


def test_build_channel_per_setting():
    assert isinstance(build_channel(_load()), LogChannel)
    config = _load(EMAIL_DELIVERY_CHANNEL="webhook", EMAIL_WEBHOOK_URL="https://relay.example.com/send")
    channel = build_channel(config)
    assert isinstance(channel, WebhookChannel)
    assert channel.config.url == "https://relay.example.com/send"


def test_database_urls_come_from_config():
    config = _load(PRIMARY_DATABASE_URL="sqlite:///primary.db", ARCHIVE_DATABASE_URL="sqlite:///archive.db")
    assert config.primary_database_url == "sqlite:///primary.db"
    assert config.archive_database_url == "sqlite:///archive.db"
