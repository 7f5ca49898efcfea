import asyncio
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class TelegramClient:
    """Alert delivery over the Bot HTTP API, one sendMessage per subscriber."""
    API = "https://api.telegram.org"

    def __init__(self, bot_token: str, timeout: float = 20.0, api_base: str = API):
        self.base = f"{api_base.rstrip('/')}/bot{bot_token.strip()}"
        self.timeout = timeout
        self.session = requests.Session()

    def send(self, chat_id: int, text: str, silent: bool = False) -> Optional[int]:
        """Returns the new message id. Raises on HTTP errors and API refusals."""
        r = self.session.post(
            f"{self.base}/sendMessage",
            json={
                "chat_id": int(chat_id),
                "text": text,
                "parse_mode": "HTML",
                "disable_notification": bool(silent),
                "disable_web_page_preview": True,
            },
            timeout=self.timeout,
        )
        if r.status_code == 429:
            # flood control; the dispatcher counts it as a failed delivery
            retry_after = (r.json().get("parameters") or {}).get("retry_after")
            raise RuntimeError(f"Telegram rate limit for chat {chat_id}, retry after {retry_after}s")
        if r.status_code == 403:
            logger.info("Chat %s has blocked the bot", chat_id)
        r.raise_for_status()

        data = r.json()
        if not data.get("ok"):
            raise RuntimeError(data.get("description") or data)
        return (data.get("result") or {}).get("message_id")

    async def deliver(self, chat_id: int, text: str) -> None:
        await asyncio.to_thread(self.send, chat_id, text)
