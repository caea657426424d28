"""
Configuration management for the SMS gateway.

Loads settings from environment variables and an optional .env file.
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from smsgateway.utils.exceptions import MissingConfigError

# Load .env file before settings are initialized
load_dotenv()


class QueueAPISettings(BaseSettings):
    """Queue API configuration."""

    # Required; checked in get_settings()
    base_url: str | None = Field(default=None)
    email: str | None = Field(default=None)
    password: str | None = Field(default=None)
    device_name: str = Field(default="Gateway")
    timeout_seconds: float = Field(default=10.0)
    # Window during which concurrent login callers share one result
    login_cooldown_seconds: float = Field(default=1.0)

    model_config = SettingsConfigDict(env_prefix="API_")


class DeliverySettings(BaseSettings):
    """Delivery loop configuration."""

    # Polling interval in milliseconds
    interval_ms: int = Field(default=15000, validation_alias="CHECK_MESSAGES_INTERVAL")
    settle_seconds: float = Field(default=1.0)
    country_code: str = Field(default="591")
    # Valid leading digits of a mobile number
    operator_prefixes: str = Field(default="67")

    model_config = SettingsConfigDict(
        env_prefix="DELIVERY_",
        populate_by_name=True,
    )

    @property
    def interval_seconds(self) -> float:
        """Polling interval in seconds."""
        return self.interval_ms / 1000


class ReconnectSettings(BaseSettings):
    """Reconnection backoff configuration."""

    max_attempts: int = Field(default=10)
    backoff_base_ms: int = Field(default=2000)
    backoff_cap_ms: int = Field(default=60000)

    model_config = SettingsConfigDict(env_prefix="RECONNECT_")


class WPPConnectSettings(BaseSettings):
    """WPPConnect server (WhatsApp sidecar) configuration."""

    server_url: str = Field(default="http://localhost:21465")
    session: str = Field(default="mySession")
    secret_key: str | None = Field(default=None)
    status_poll_seconds: float = Field(default=5.0)
    send_timeout_seconds: float = Field(default=30.0)
    request_timeout_seconds: float = Field(default=10.0)

    model_config = SettingsConfigDict(env_prefix="WPP_")


class TelegramSettings(BaseSettings):
    """Telegram configuration for operational alerts."""

    enabled: bool = Field(default=False)
    bot_token: str | None = Field(default=None)
    chat_id: str | None = Field(default=None)
    api_base: str = Field(default="https://api.telegram.org")
    # Minimum seconds between two alerts of the same category
    rate_limit_seconds: float = Field(default=60.0)
    summary_period_seconds: float = Field(default=3600.0)
    timezone: str = Field(default="America/La_Paz")

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    to_file: bool = Field(default=True)
    log_dir: str = Field(default="logs")
    log_file: str = Field(default="gateway.log")
    rotation: str = Field(default="10 MB")
    retention: str = Field(default="7 days")

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    """Main settings aggregating all configuration."""

    api: QueueAPISettings = Field(default_factory=QueueAPISettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    reconnect: ReconnectSettings = Field(default_factory=ReconnectSettings)
    wppconnect: WPPConnectSettings = Field(default_factory=WPPConnectSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Environment name (development, staging, production)
    environment: str = Field(default="development")

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The application settings

    Raises:
        MissingConfigError: If API_BASE_URL is not set
    """
    settings = Settings()
    if not settings.api.base_url:
        raise MissingConfigError("API_BASE_URL")
    return settings


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
