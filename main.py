"""
SMS Gateway - Entry Point

Run the gateway:
    python main.py

Or a single delivery cycle:
    python main.py --run-once

Environment variables:
    API_BASE_URL: Queue API base URL (required)
    CHECK_MESSAGES_INTERVAL: Polling interval in milliseconds (default: 15000)
    WPP_SERVER_URL: WPPConnect server URL
    TELEGRAM_ENABLED / TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID: Alerts
"""

import sys

from dotenv import load_dotenv
load_dotenv()

from smsgateway.app import main


if __name__ == "__main__":
    sys.exit(main())
