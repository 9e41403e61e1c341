"""Service down / restored notifications.

Every notification is kept in a bounded in-memory feed (served by the API)
and, when configured, pushed to Slack and Telegram webhooks. Webhook failures
are logged and never propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from pulseboard.config import settings

logger = logging.getLogger(__name__)


class NotifyKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


_EMOJI = {
    NotifyKind.SUCCESS: "✅",
    NotifyKind.ERROR: "🔴",
}


@dataclass(frozen=True)
class Notification:
    kind: NotifyKind
    title: str
    message: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at,
        }


class NotificationManager:
    """Central dispatcher for the notification feed + Slack / Telegram."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
        feed_size: int | None = None,
    ) -> None:
        self.slack_webhook = slack_webhook or settings.slack_webhook_url
        self.telegram_token = telegram_token or settings.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or settings.telegram_chat_id
        self._feed: deque[Notification] = deque(maxlen=feed_size or settings.notification_feed_size)

    @property
    def has_channels(self) -> bool:
        return bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    def status(self) -> dict[str, Any]:
        return {
            "slack_configured": bool(self.slack_webhook),
            "telegram_configured": bool(self.telegram_token and self.telegram_chat_id),
            "feed_size": len(self._feed),
        }

    def recent(self, limit: int = 50) -> list[Notification]:
        """Newest first."""
        return list(self._feed)[::-1][:limit]

    async def notify(self, kind: NotifyKind, title: str, message: str) -> None:
        """Record a notification and fan it out to configured channels."""
        notification = Notification(kind=kind, title=title, message=message)
        self._feed.append(notification)
        log = logger.warning if kind == NotifyKind.ERROR else logger.info
        log("%s: %s", title, message)
        await self._send(f"{_EMOJI[kind]} *{title}*\n{message}")

    # -- Low-level dispatch -------------------------------------------------

    async def _send(self, text: str) -> None:
        if not self.has_channels:
            return
        tasks = []
        if self.slack_webhook:
            tasks.append(self._send_slack(text))
        if self.telegram_token and self.telegram_chat_id:
            tasks.append(self._send_telegram(text))
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_slack(self, text: str) -> None:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Slack notification failed: %s", exc)

    async def _send_telegram(self, text: str) -> None:
        """POST to Telegram Bot API."""
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    url,
                    json={
                        "chat_id": self.telegram_chat_id,
                        "text": text,
                        "parse_mode": "Markdown",
                    },
                )
                if resp.status_code != 200:
                    logger.warning("Telegram API returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Telegram notification failed: %s", exc)


# -- Singleton -----------------------------------------------------------------

_notifier: NotificationManager | None = None


def get_notifier() -> NotificationManager:
    """Return the process-level notification manager."""
    global _notifier
    if _notifier is None:
        _notifier = NotificationManager()
    return _notifier
