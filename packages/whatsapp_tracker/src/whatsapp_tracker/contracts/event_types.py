"""
Session Event Types

Events emitted by the session gateway and consumed by the ingestion pipeline.
"""

from enum import Enum


class SessionEventType(str, Enum):
    """
    Lifecycle and traffic events from a WhatsApp Web session.

    - QR: a new pairing QR payload was issued
    - AUTHENTICATED: the session was paired / restored
    - AUTH_FAILURE: pairing or restore was rejected
    - READY: the session is ready to exchange messages
    - MESSAGE: a message was received or sent on the account
    - DISCONNECTED: the session dropped; reconnection belongs to the gateway
    """

    QR = "qr"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    READY = "ready"
    MESSAGE = "message"
    DISCONNECTED = "disconnected"

    def __str__(self) -> str:
        return self.value
