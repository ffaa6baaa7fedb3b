"""Notification channels — Telegram and email delivery."""

from __future__ import annotations

import abc
from email.message import EmailMessage

import aiohttp
import aiosmtplib
import structlog

from onchain_monitor.alerts.formatters import (
    format_email_html,
    format_email_subject,
    format_email_text,
    format_telegram_html,
)
from onchain_monitor.alerts.types import Alert
from onchain_monitor.core.config import EmailConfig, TelegramConfig

logger = structlog.get_logger(__name__)

_SMTPS_PORT = 465


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    name: str = "channel"

    @abc.abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Send an alert. Returns True on success."""

    def is_enabled(self) -> bool:
        return True

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class TelegramChannel(NotificationChannel):
    """Delivers alerts via the Telegram Bot API (HTML parse mode)."""

    name = "telegram"

    def __init__(self, config: TelegramConfig) -> None:
        self._enabled = config.enabled
        self._token = config.bot_token.get_secret_value()
        self._chat_id = config.chat_id
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_secs)
        self._session: aiohttp.ClientSession | None = None

    def is_enabled(self) -> bool:
        return self._enabled and bool(self._token) and bool(self._chat_id)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def send(self, alert: Alert) -> bool:
        url = f"https://api.telegram.org/bot{self._token}/sendMessage"
        payload = {
            "chat_id": self._chat_id,
            "text": format_telegram_html(alert),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

        try:
            session = self._get_session()
            async with session.post(url, json=payload) as resp:
                if resp.status == 200:
                    logger.debug("telegram_alert_sent", alert_id=alert.id)
                    return True
                body = await resp.text()
                logger.warning(
                    "telegram_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("telegram_send_error", alert_id=alert.id)
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class EmailChannel(NotificationChannel):
    """Delivers alerts over SMTP as a plain-text + HTML message."""

    name = "email"

    def __init__(self, config: EmailConfig) -> None:
        self._config = config

    def is_enabled(self) -> bool:
        cfg = self._config
        return cfg.enabled and bool(cfg.host) and bool(cfg.from_addr) and bool(cfg.to_addr)

    def build_message(self, alert: Alert) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = format_email_subject(alert)
        msg["From"] = self._config.from_addr
        msg["To"] = self._config.to_addr
        msg.set_content(format_email_text(alert))
        msg.add_alternative(format_email_html(alert), subtype="html")
        return msg

    async def send(self, alert: Alert) -> bool:
        cfg = self._config
        use_tls = cfg.port == _SMTPS_PORT
        try:
            await aiosmtplib.send(
                self.build_message(alert),
                hostname=cfg.host,
                port=cfg.port,
                username=cfg.username or None,
                password=cfg.password.get_secret_value() or None,
                use_tls=use_tls,
                start_tls=not use_tls,
                timeout=cfg.timeout_secs,
            )
        except Exception:
            logger.exception("email_send_error", alert_id=alert.id, host=cfg.host)
            return False

        logger.debug("email_alert_sent", alert_id=alert.id)
        return True

    async def close(self) -> None:
        # One SMTP connection per message; nothing held open.
        return None
