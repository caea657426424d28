"""
Notifications module for Telegram alerts.

Provides operational alerting for the gateway via the Telegram Bot API.

Usage:
    from smsgateway.notifications import create_notifier

    notifier = create_notifier(settings)
    notifier.warning("WhatsApp disconnected, reconnecting in 2s")
    notifier.summary(connected=True)

Configuration (environment variables):
    TELEGRAM_ENABLED: Enable Telegram alerts (default: false)
    TELEGRAM_BOT_TOKEN: Bot API token (required for alerts)
    TELEGRAM_CHAT_ID: Destination chat (required for alerts)
    TELEGRAM_RATE_LIMIT_SECONDS: Minimum interval per category (default: 60)
"""

from smsgateway.config import Settings
from smsgateway.notifications.telegram import TelegramChannel
from smsgateway.notifications.notifier import AlertNotifier, DeliveryStats


def create_notifier(settings: Settings) -> AlertNotifier:
    """Create a notifier backed by the configured Telegram chat."""
    telegram = settings.telegram
    channel = TelegramChannel(
        bot_token=telegram.bot_token,
        chat_id=telegram.chat_id,
        enabled=telegram.enabled,
        device_name=settings.api.device_name,
        api_base=telegram.api_base,
        timezone=telegram.timezone,
    )
    return AlertNotifier(
        channel,
        rate_limit_seconds=telegram.rate_limit_seconds,
        summary_period_seconds=telegram.summary_period_seconds,
    )


__all__ = [
    "TelegramChannel",
    "AlertNotifier",
    "DeliveryStats",
    "create_notifier",
]
