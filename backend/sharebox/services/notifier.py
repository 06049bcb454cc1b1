from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

import httpx

from sharebox.core.config import Settings, settings as default_settings
from sharebox.models.share import Share
from sharebox.utils.formatting import describe_expiry, format_file_size

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, text: str) -> None: ...


class NullNotifier:
    async def send(self, text: str) -> None:
        logger.debug("Notifications disabled; dropping message of %d chars", len(text))


class TelegramNotifier:
    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._chat_id = chat_id
        self._timeout = timeout
        self._transport = transport

    async def send(self, text: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, json={"chat_id": self._chat_id, "text": text})
            response.raise_for_status()
        logger.info("Share notification delivered")


def build_notifier(config: Settings | None = None) -> Notifier:
    config = config or default_settings
    if config.telegram_enabled and not config.notifications_configured:
        logger.error("Telegram notifications enabled but bot token or chat id is missing")
    if not config.notifications_configured:
        return NullNotifier()
    return TelegramNotifier(
        config.telegram_bot_token,
        config.telegram_chat_id,
        api_url=config.telegram_api_url,
        timeout=config.notification_timeout_seconds,
    )


def format_share_summary(share: Share, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    file_lines = "\n".join(
        f"  - {entry.original_name} ({format_file_size(entry.size_bytes)})" for entry in share.files
    )
    download_limit = "unlimited" if share.max_downloads == 0 else str(share.max_downloads)
    return (
        "New share created\n\n"
        f"Files: {len(share.files)}\n"
        f"{file_lines}\n\n"
        f"Total size: {format_file_size(share.total_size)}\n"
        f"Expires in: {describe_expiry(share.expires_at, now)}\n"
        f"Max downloads: {download_limit}\n"
        f"Password: {'yes' if share.password_protected else 'no'}\n\n"
        f"ID: {share.share_id}\n"
        f"{now.strftime('%Y-%m-%d %H:%M:%S %Z')}"
    )
