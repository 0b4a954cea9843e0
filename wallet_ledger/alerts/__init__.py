"""
Alerts — run notifications (structured log or Telegram).
"""

from wallet_ledger.alerts.notifier import (
    LogNotifier,
    Notifier,
    TelegramNotifier,
    build_notifier,
)

__all__ = [
    "LogNotifier",
    "Notifier",
    "TelegramNotifier",
    "build_notifier",
]
