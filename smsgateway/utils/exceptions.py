"""
Custom exceptions for the SMS gateway.

Provides a hierarchy of exceptions for different error scenarios:
- Queue API errors (fetching and confirming work items)
- Transport errors (WhatsApp session, sends)
- Delivery errors (per-item validation)
- Configuration errors
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, message: str, *args, **kwargs):
        self.message = message
        super().__init__(message, *args, **kwargs)


# =============================================================================
# Queue API Exceptions
# =============================================================================

class APIError(GatewayError):
    """Base exception for queue API errors."""
    pass


class QueueAPIError(APIError):
    """Error response from the queue API."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class AuthenticationError(APIError):
    """Credentials rejected, or a request was still unauthorized after re-login."""
    pass


class APIConnectionError(APIError):
    """Error when unable to connect to the API."""
    pass


class APITimeoutError(APIError):
    """Error when an API request exceeds its deadline."""

    def __init__(self, message: str, timeout: float | None = None):
        self.timeout = timeout
        super().__init__(message)


# =============================================================================
# Transport Exceptions
# =============================================================================

class TransportError(GatewayError):
    """Base exception for chat transport errors."""
    pass


class TransportUnavailable(TransportError):
    """The session is not connected."""

    def __init__(self, message: str = "WhatsApp session is not connected", state: str | None = None):
        self.state = state
        super().__init__(message)


class DeliveryTimeout(TransportError):
    """A send did not complete within its deadline."""

    def __init__(self, message: str, timeout: float | None = None):
        self.timeout = timeout
        super().__init__(message)


class TransportRejected(TransportError):
    """The transport refused the message."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# =============================================================================
# Delivery Exceptions
# =============================================================================

class DeliveryError(GatewayError):
    """Base exception for per-item delivery errors."""
    pass


class InvalidAddress(DeliveryError):
    """Destination number cannot be normalized."""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Invalid destination '{address}': {reason}")


class EmptyMessage(DeliveryError):
    """Work item has no text to send."""
    pass


# =============================================================================
# Configuration Exceptions
# =============================================================================

class ConfigurationError(GatewayError):
    """Error with service configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Error when required configuration is missing."""

    def __init__(self, config_key: str):
        self.config_key = config_key
        super().__init__(f"Missing required configuration: {config_key}")


__all__ = [
    # Base
    "GatewayError",
    # Queue API
    "APIError",
    "QueueAPIError",
    "AuthenticationError",
    "APIConnectionError",
    "APITimeoutError",
    # Transport
    "TransportError",
    "TransportUnavailable",
    "DeliveryTimeout",
    "TransportRejected",
    # Delivery
    "DeliveryError",
    "InvalidAddress",
    "EmptyMessage",
    # Configuration
    "ConfigurationError",
    "MissingConfigError",
]
