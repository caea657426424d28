"""Configuration module for the SMS gateway."""

from smsgateway.config.config import (
    Settings,
    QueueAPISettings,
    DeliverySettings,
    ReconnectSettings,
    WPPConnectSettings,
    TelegramSettings,
    LoggingSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "QueueAPISettings",
    "DeliverySettings",
    "ReconnectSettings",
    "WPPConnectSettings",
    "TelegramSettings",
    "LoggingSettings",
    "get_settings",
]
