"""
Transport factory and exports.

Provides a factory function to create the appropriate transport
based on configuration, along with exports of all transport classes.

Copyright (c) 2025 Chris Beatson (chris@chrisbeatson.com)
Licensed under the MIT License.
"""

from ingest.settings import (
    BufferSettings,
    DEADLINE_SECS,
    RESPONSE_TIMEOUT_SECS,
    TRANSPORT_RETRIES,
)
from .base import Transport
from .http import HttpTransport


def create_transport(transport_type: str, settings: BufferSettings) -> Transport:
    """
    Factory function to create the appropriate transport.

    Args:
        transport_type: Type of transport to create ("http")
        settings: Validated buffer settings carrying the endpoint details

    Returns:
        Transport instance (not yet initialized)

    Raises:
        ValueError: If transport_type is unknown
    """
    transport_type = transport_type.lower()

    if transport_type == "http":
        return HttpTransport(
            url=settings.api_url,
            api_key=settings.api_key,
            method=settings.api_method,
            retries=TRANSPORT_RETRIES,
            response_timeout=RESPONSE_TIMEOUT_SECS,
            deadline=DEADLINE_SECS
        )

    else:
        raise ValueError(
            f"Unknown transport type: '{transport_type}'. "
            f"Available options: http"
        )


__all__ = [
    "HttpTransport",
    "Transport",
    "create_transport"
]
