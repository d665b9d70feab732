"""Outgoing message delivery."""

from viandas.services.delivery.channels import (
    DeliveryChannel,
    DeliveryError,
    LogChannel,
    SmtpChannel,
    WebhookChannel,
    build_channel,
)

__all__ = [
    "DeliveryChannel",
    "DeliveryError",
    "LogChannel",
    "SmtpChannel",
    "WebhookChannel",
    "build_channel",
]
