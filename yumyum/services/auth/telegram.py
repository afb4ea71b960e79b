import logging
from typing import Optional, Union

from yumyum.core.config import get_settings
from yumyum.core.errors import DeliveryError
from yumyum.services.http.fetcher import BoundedFetcher

logger = logging.getLogger(__name__)


class TelegramSender:
    """Delivers passcodes through the Telegram Bot API."""

    def __init__(self, fetcher: BoundedFetcher, token: Optional[str] = None, api_base: Optional[str] = None):
        settings = get_settings()
        self.fetcher = fetcher
        self.token = token if token is not None else settings.TELEGRAM_BOT_TOKEN
        self.api_base = api_base or settings.TELEGRAM_API_BASE

    async def send_message(self, chat_id: Union[int, str], text: str) -> None:
        """
        Send an HTML-formatted message.

        Raises:
            DeliveryError: bot not configured, transport failure, or ``ok: false``
        """
        if not self.token:
            raise DeliveryError("TELEGRAM_BOT_TOKEN not set", source="telegram")

        outcome = await self.fetcher.fetch_json(
            f"{self.api_base}/bot{self.token}/sendMessage",
            method="POST",
            json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
            retries=0,
            source="telegram",
            log_url=f"{self.api_base}/bot***/sendMessage",
        )
        if outcome.error is not None:
            raise DeliveryError(outcome.error.message, source="telegram")

        data = outcome.data if isinstance(outcome.data, dict) else {}
        if not data.get("ok"):
            raise DeliveryError(data.get("description") or "Failed to send message", source="telegram")

        logger.info(f"Delivered Telegram message to {chat_id}")

    async def send_code(self, chat_id: int, code: str, ttl_minutes: int) -> None:
        text = (
            "🔐 <b>Admin Login</b>\n\n"
            f"Your one-time code: <code>{code}</code>\n\n"
            f"This code expires in {ttl_minutes} minutes."
        )
        await self.send_message(chat_id, text)
