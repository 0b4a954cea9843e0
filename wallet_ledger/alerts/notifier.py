"""
Run notifications.

The ingestion run reports runs that stored new transactions or ended in
Cooldown/Error. Delivery is best effort: the run logs notifier failures and
carries on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import requests

from wallet_ledger.ledger_logging import get_logger

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4000


class Notifier(ABC):
    @abstractmethod
    def notify(self, event: str, message: str, **fields: Any) -> None:
        """Deliver one notification; may raise on delivery failure."""
        ...


class LogNotifier(Notifier):
    """Default notifier: a structured log line per event."""

    def notify(self, event: str, message: str, **fields: Any) -> None:
        logger.info("run_notification", notification=event, message=message, **fields)


class TelegramNotifier(Notifier):
    """Telegram Bot API sendMessage over a requests.Session."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str | int,
        *,
        timeout_sec: float = 20.0,
        session: requests.Session | None = None,
    ) -> None:
        if not bot_token.strip():
            raise ValueError("bot_token must be non-empty")
        self._base = f"{TELEGRAM_API_BASE}/bot{bot_token.strip()}"
        self._chat_id = str(chat_id).strip()
        self._timeout = timeout_sec
        self._session = session or requests.Session()

    def notify(self, event: str, message: str, **fields: Any) -> None:
        lines = [f"[{event}] {message}"]
        lines.extend(f"{k}: {v}" for k, v in fields.items() if v is not None)
        text = "\n".join(lines)
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
        r = self._session.post(
            f"{self._base}/sendMessage",
            json={
                "chat_id": self._chat_id,
                "text": text,
                "disable_web_page_preview": True,
            },
            timeout=self._timeout,
        )
        r.raise_for_status()
        data = r.json()
        if not data.get("ok"):
            raise RuntimeError(f"Telegram sendMessage failed: {data.get('description', data)}")
        logger.debug("telegram_notification_sent", notification=event)


def build_notifier(settings) -> Notifier:
    """TelegramNotifier when both bot token and chat id are configured, else LogNotifier."""
    if settings.telegram_bot_token and settings.telegram_chat_id:
        return TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
    return LogNotifier()
