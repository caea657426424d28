"""
Delivery module: the poll-send-confirm loop.

Usage:
    from smsgateway.delivery import create_delivery_loop

    loop = create_delivery_loop(settings, api, supervisor, notifier)
    loop.start(scheduler)

Configuration (environment variables):
    CHECK_MESSAGES_INTERVAL: Polling interval in milliseconds (default: 15000)
    DELIVERY_SETTLE_SECONDS: Pause between sends (default: 1)
    DELIVERY_COUNTRY_CODE: Destination country code (default: 591)
    DELIVERY_OPERATOR_PREFIXES: Valid leading mobile digits (default: 67)
"""

from smsgateway.config import Settings
from smsgateway.notifications import AlertNotifier
from smsgateway.queue_api import QueueAPIClient
from smsgateway.whatsapp import ConnectionSupervisor
from smsgateway.delivery.address import normalize_address
from smsgateway.delivery.loop import CycleReport, DeliveryLoop


def create_delivery_loop(
    settings: Settings,
    api: QueueAPIClient,
    supervisor: ConnectionSupervisor,
    notifier: AlertNotifier,
    interval_seconds: float | None = None,
) -> DeliveryLoop:
    """Create the delivery loop from settings."""
    delivery = settings.delivery
    return DeliveryLoop(
        api=api,
        supervisor=supervisor,
        notifier=notifier,
        interval_seconds=interval_seconds or delivery.interval_seconds,
        settle_seconds=delivery.settle_seconds,
        country_code=delivery.country_code,
        operator_prefixes=delivery.operator_prefixes,
    )


__all__ = [
    "normalize_address",
    "CycleReport",
    "DeliveryLoop",
    "create_delivery_loop",
]
