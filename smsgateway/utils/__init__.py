"""
Utility modules for the SMS gateway.

Provides:
    - logger: Loguru-based logging with stdout and file output
    - exceptions: Custom exception classes for error handling
"""

from smsgateway.utils.logger import logger, setup_logger, mask_secrets
from smsgateway.utils.exceptions import (
    # Base
    GatewayError,
    # Queue API
    APIError,
    QueueAPIError,
    AuthenticationError,
    APIConnectionError,
    APITimeoutError,
    # Transport
    TransportError,
    TransportUnavailable,
    DeliveryTimeout,
    TransportRejected,
    # Delivery
    DeliveryError,
    InvalidAddress,
    EmptyMessage,
    # Configuration
    ConfigurationError,
    MissingConfigError,
)

__all__ = [
    # Logger
    "logger",
    "setup_logger",
    "mask_secrets",
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
