"""
Transport events and the transport capability used by the supervisor.

A transport reports connectivity through a closed set of events; the
supervisor is the only consumer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol, Union


class CloseReason(str, Enum):
    """Why a session closed."""
    LOGGED_OUT = "logged_out"  # Credentials revoked; needs a new QR scan
    DISCONNECTED = "disconnected"
    BROWSER_CLOSED = "browser_closed"
    ERROR = "error"


@dataclass(frozen=True)
class SessionOpened:
    """The session is authenticated and ready to send."""
    pass


@dataclass(frozen=True)
class SessionClosed:
    """The session dropped."""
    reason: CloseReason = CloseReason.DISCONNECTED
    detail: str | None = None


@dataclass(frozen=True)
class CredentialsUpdated:
    """The transport needs a QR scan or refreshed its stored credentials."""
    qr_code: str | None = None
    attempt: int = 0


TransportEvent = Union[SessionOpened, SessionClosed, CredentialsUpdated]
EventListener = Callable[[TransportEvent], None]


class Transport(Protocol):
    """Chat-network capability driven by the connection supervisor."""

    def open(self, listener: EventListener) -> None:
        """Start a session; connectivity is reported through ``listener``."""
        ...

    def send_text(self, address: str, body: str) -> Any:
        """Send a text message and return the transport's receipt."""
        ...

    def close(self) -> None:
        """Release the session. Must be idempotent."""
        ...


__all__ = [
    "CloseReason",
    "SessionOpened",
    "SessionClosed",
    "CredentialsUpdated",
    "TransportEvent",
    "EventListener",
    "Transport",
]
