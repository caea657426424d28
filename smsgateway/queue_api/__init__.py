"""
Queue API client for the SMS supplier gateway endpoints.

Usage:
    from smsgateway.queue_api import create_api_client, DeliveryOutcome

    api = create_api_client(settings)
    pending = api.get_pending_items()
    api.confirm_item(item.id, DeliveryOutcome.COMPLETADO)
"""

from smsgateway.config import Settings
from smsgateway.queue_api.models import DeliveryItem, DeliveryOutcome, PendingItems
from smsgateway.queue_api.client import QueueAPIClient


def create_api_client(settings: Settings) -> QueueAPIClient:
    """Create a queue API client from settings."""
    api = settings.api
    return QueueAPIClient(
        base_url=api.base_url,
        email=api.email,
        password=api.password,
        device_name=api.device_name,
        timeout=api.timeout_seconds,
        login_cooldown=api.login_cooldown_seconds,
    )


__all__ = [
    "DeliveryItem",
    "DeliveryOutcome",
    "PendingItems",
    "QueueAPIClient",
    "create_api_client",
]
