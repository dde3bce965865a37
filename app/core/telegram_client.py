"""
Telegram client helper for pushing relay notifications to a chat.

Only the Bot API's sendMessage call is needed; running a full bot is left to
the external notification surfaces.
"""

import httpx
from typing import Optional, Tuple
from loguru import logger


class TelegramClient:
    """Telegram client for sending messages from the relay."""

    def __init__(self, token: str):
        """Initialize the Telegram client."""
        self.token = token
        self.base_url = f"https://api.telegram.org/bot{self.token}"
        logger.debug("Telegram client initialized")

    def is_configured(self) -> bool:
        """Check if Telegram bot token is configured."""
        return bool(self.token.strip())

    async def send_message(
        self, chat_id: int, message: str, parse_mode: Optional[str] = None
    ) -> Tuple[bool, Optional[int]]:
        """
        Send a message to a Telegram chat.

        Args:
            chat_id: Telegram chat ID to send the message to
            message: Message text to send
            parse_mode: Optional parse mode (e.g., 'Markdown', 'HTML')

        Returns:
            Tuple of (success: bool, message_id: Optional[int])
        """
        if not self.is_configured():
            logger.error("Telegram bot token is not configured")
            return False, None

        payload = {"chat_id": chat_id, "text": message}
        if parse_mode:
            payload["parse_mode"] = parse_mode

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{self.base_url}/sendMessage", json=payload, timeout=30.0
                )
        except httpx.HTTPError as e:
            logger.error(f"Error sending Telegram message to chat {chat_id}: {e}")
            return False, None

        if response.status_code != 200:
            logger.warning(
                f"Telegram API returned status {response.status_code} for chat {chat_id}: {response.text}"
            )
            return False, None

        response_data = response.json()
        if not response_data.get("ok"):
            logger.warning(
                f"Telegram API returned error for chat {chat_id}: {response_data.get('description', 'Unknown error')}"
            )
            return False, None

        message_id = response_data.get("result", {}).get("message_id")
        logger.debug(f"Sent Telegram message to chat {chat_id}, message_id: {message_id}")
        return True, message_id
