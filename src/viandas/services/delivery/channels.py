"""Delivery channels for outgoing notification messages.

A channel takes one message for one recipient: `send(to_address, subject,
body)` returns True on success and raises `DeliveryError` otherwise. Bodies
are HTML.

Channels:
- SmtpChannel: SMTP with STARTTLS + login (production)
- WebhookChannel: POSTs the message as JSON to a mail relay
- LogChannel: only logs (development, dry runs)
"""

from __future__ import annotations

import logging
import smtplib
import time
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any, Dict, List, Optional

import httpx

from viandas.config import ConfigError, SmtpConfig, WebhookConfig, WorkerConfig

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """Raised when a message could not be handed to the delivery backend."""


class DeliveryChannel:
    name = "base"

    def send(self, to_address: str, subject: str, body: str) -> bool:
        raise NotImplementedError


class SmtpChannel(DeliveryChannel):
    name = "smtp"

    def __init__(self, config: SmtpConfig, timeout: float = 30.0) -> None:
        self.config = config
        self.timeout = timeout

    def _build_message(self, to_address: str, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "html", "utf-8")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.config.sender_name, self.config.sender_email))
        msg["To"] = to_address
        return msg

    def send(self, to_address: str, subject: str, body: str) -> bool:
        msg = self._build_message(to_address, subject, body)
        try:
            with smtplib.SMTP(self.config.server, self.config.port, timeout=self.timeout) as server:
                if self.config.use_tls:
                    server.starttls()
                if self.config.username and self.config.password:
                    server.login(self.config.username, self.config.password)
                server.sendmail(self.config.sender_email, [to_address], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(f"SMTP delivery to {to_address} failed: {type(e).__name__}: {e}") from e
        return True


class WebhookChannel(DeliveryChannel):
    """POST `{"to", "subject", "html"}` to a mail relay endpoint.

    Retries on 5xx and transport errors with exponential backoff; 4xx is not
    retried.
    """

    name = "webhook"

    def __init__(
        self,
        config: WebhookConfig,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport

    def _build_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.token}"} if self.config.token else {}

    def send(self, to_address: str, subject: str, body: str) -> bool:
        payload = {"to": to_address, "subject": subject, "html": body}
        last_error = "no attempt made"

        client_kwargs: Dict[str, Any] = {"timeout": self.timeout, "headers": self._build_headers()}
        if self._transport is not None:
            client_kwargs["transport"] = self._transport

        with httpx.Client(**client_kwargs) as client:
            for attempt in range(self.max_retries):
                try:
                    response = client.post(self.config.url, json=payload)
                except httpx.TransportError as e:
                    last_error = f"{type(e).__name__}: {e}"
                else:
                    status = response.status_code
                    if status < 400:
                        return True
                    if status < 500:
                        raise DeliveryError(
                            f"webhook rejected message to {to_address}: HTTP {status} {response.text[:200]}"
                        )
                    last_error = f"HTTP {status}"

                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"WebhookChannel: {last_error}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{self.max_retries})"
                    )
                    time.sleep(delay)

        raise DeliveryError(f"webhook delivery to {to_address} failed after {self.max_retries} attempts: {last_error}")


class LogChannel(DeliveryChannel):
    name = "log"

    def __init__(self) -> None:
        self.sent: List[Dict[str, str]] = []

    def send(self, to_address: str, subject: str, body: str) -> bool:
        self.sent.append({"to": to_address, "subject": subject, "body": body})
        logger.info("LogChannel: to=%s subject=%r (%d chars)", to_address, subject, len(body))
        return True


def build_channel(config: WorkerConfig) -> DeliveryChannel:
    channel = config.notifications.delivery_channel
    if channel == "smtp":
        if config.smtp is None:
            raise ConfigError("SMTP channel selected but SMTP settings are missing")
        return SmtpChannel(config.smtp)
    if channel == "webhook":
        if config.webhook is None:
            raise ConfigError("webhook channel selected but EMAIL_WEBHOOK_URL is missing")
        return WebhookChannel(config.webhook)
    if channel == "log":
        return LogChannel()
    raise ConfigError(f"Unknown delivery channel: {channel!r}")
