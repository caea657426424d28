"""
Telegram channel for operational alerts.

Sends plain HTML-formatted messages to a single chat through the
Telegram Bot API.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import httpx

from smsgateway.utils import logger

# Values shipped in the sample .env; treated as unset
PLACEHOLDER_VALUES = {"tu_token_aqui", "tu_chat_id_aqui"}


class TelegramChannel:
    """
    Sends messages to a Telegram chat via the Bot API.

    Every message is prefixed with the device name and the local
    timestamp so alerts from several gateways can share one chat.
    """

    def __init__(
        self,
        bot_token: str | None,
        chat_id: str | None,
        enabled: bool = True,
        device_name: str = "Gateway",
        api_base: str = "https://api.telegram.org",
        timezone: str = "America/La_Paz",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the Telegram channel.

        Args:
            bot_token: Bot API token
            chat_id: Destination chat ID
            enabled: Master switch for the channel
            device_name: Name shown in the message header
            api_base: Bot API base URL
            timezone: Timezone used for the header timestamp
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled
        self.device_name = device_name
        self.api_base = api_base.rstrip("/")
        self.tz = ZoneInfo(timezone)
        self.timeout = timeout
        self._transport = transport

        if self.is_configured:
            logger.info("Telegram channel initialized")
        elif not self.enabled:
            logger.info("Telegram channel disabled")
        else:
            logger.warning("Telegram credentials not configured, alerts disabled")

    @property
    def is_configured(self) -> bool:
        """Whether the channel is enabled and has usable credentials."""
        return bool(
            self.enabled
            and self.bot_token
            and self.chat_id
            and self.bot_token not in PLACEHOLDER_VALUES
            and self.chat_id not in PLACEHOLDER_VALUES
        )

    def format(self, text: str) -> str:
        """Prefix a message with the device name and local time."""
        timestamp = datetime.now(self.tz).strftime("%d/%m/%Y %H:%M:%S")
        return f"[{self.device_name}] {timestamp}\n{text}"

    def send(self, text: str) -> bool:
        """
        Send a message to the configured chat.

        Args:
            text: HTML-formatted message body

        Returns:
            True if Telegram accepted the message, False otherwise
        """
        if not self.is_configured:
            logger.debug("Telegram disabled or not configured, skipping alert")
            return False

        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": self.format(text),
            "parse_mode": "HTML",
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, json=payload)

            data = response.json()
            if not data.get("ok"):
                logger.error(f"[Telegram] Error: {data.get('description') or response.status_code}")
                return False

            logger.debug("[Telegram] Alert sent")
            return True

        except Exception as e:
            logger.error(f"[Telegram] Failed to send alert: {e}")
            return False


__all__ = ["TelegramChannel", "PLACEHOLDER_VALUES"]
