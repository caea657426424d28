"""
WhatsApp delivery gateway for the SMS supplier queue API.

This package provides:
- Queue API client for fetching and confirming pending messages
- WhatsApp connection supervisor with backoff reconnection
- Delivery loop that sends each message and confirms its outcome
- Rate-limited Telegram alerts with an hourly summary

Quick start:
    from smsgateway.app import main
    main()

Configuration (environment variables):
    API_BASE_URL: Queue API base URL (required)
    API_EMAIL / API_PASSWORD / API_DEVICE_NAME: Queue API credentials
    CHECK_MESSAGES_INTERVAL: Polling interval in milliseconds (default: 15000)
    WPP_SERVER_URL: WPPConnect server URL
    TELEGRAM_ENABLED / TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID: Alerts
"""

__version__ = "1.0.0"
