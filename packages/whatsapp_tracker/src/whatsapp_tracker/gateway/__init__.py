"""
Session gateways.

Available gateways:
- evolution: Evolution API (self-hosted WhatsApp Web bridge)
- stub: in-memory gateway for development and tests
"""

from whatsapp_tracker.gateway.base import (
    DownloadError,
    GatewayError,
    SessionGateway,
    TransportError,
)

__all__ = [
    "DownloadError",
    "GatewayError",
    "SessionGateway",
    "TransportError",
]
