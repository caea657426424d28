"""
WhatsApp session management.

Provides:
- Transport events and the transport protocol
- ConnectionSupervisor: state machine with backoff reconnection
- WPPConnectTransport: adapter for a WPPConnect server sidecar

Configuration (environment variables):
    WPP_SERVER_URL: WPPConnect server URL (default: http://localhost:21465)
    WPP_SESSION: Session name (default: mySession)
    WPP_SECRET_KEY: Server secret for token generation
    RECONNECT_MAX_ATTEMPTS / RECONNECT_BACKOFF_BASE_MS / RECONNECT_BACKOFF_CAP_MS
"""

from typing import Callable

from smsgateway.config import Settings
from smsgateway.notifications import AlertNotifier
from smsgateway.whatsapp.events import (
    CloseReason,
    CredentialsUpdated,
    SessionClosed,
    SessionOpened,
    Transport,
    TransportEvent,
)
from smsgateway.whatsapp.supervisor import (
    ConnectionState,
    ConnectionSupervisor,
    backoff_delay,
)
from smsgateway.whatsapp.wppconnect import WPPConnectTransport


def create_transport(settings: Settings) -> WPPConnectTransport:
    """Create the WPPConnect transport from settings."""
    wpp = settings.wppconnect
    return WPPConnectTransport(
        server_url=wpp.server_url,
        session=wpp.session,
        secret_key=wpp.secret_key,
        status_poll_seconds=wpp.status_poll_seconds,
        request_timeout=wpp.request_timeout_seconds,
        send_timeout=wpp.send_timeout_seconds,
    )


def create_supervisor(
    settings: Settings,
    notifier: AlertNotifier,
    scheduler,
    transport: Transport | None = None,
    on_fatal: Callable[[str], None] | None = None,
) -> ConnectionSupervisor:
    """Create a connection supervisor from settings."""
    reconnect = settings.reconnect
    return ConnectionSupervisor(
        transport=transport or create_transport(settings),
        notifier=notifier,
        scheduler=scheduler,
        max_attempts=reconnect.max_attempts,
        backoff_base_ms=reconnect.backoff_base_ms,
        backoff_cap_ms=reconnect.backoff_cap_ms,
        send_timeout=settings.wppconnect.send_timeout_seconds,
        on_fatal=on_fatal,
    )


__all__ = [
    "CloseReason",
    "CredentialsUpdated",
    "SessionClosed",
    "SessionOpened",
    "Transport",
    "TransportEvent",
    "ConnectionState",
    "ConnectionSupervisor",
    "backoff_delay",
    "WPPConnectTransport",
    "create_transport",
    "create_supervisor",
]
