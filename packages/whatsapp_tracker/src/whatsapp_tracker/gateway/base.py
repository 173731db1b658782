"""
Session Gateway Base

Abstract interface for the component that holds the live WhatsApp Web
session. Implementations: Evolution API, Stub (for development and tests).

A gateway pushes SessionEvents onto its inbound queue; the dispatcher pulls
them off one at a time with next_event().
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType
from whatsapp_tracker.contracts.payloads import ChatInfo, MediaPayload


class GatewayError(Exception):
    """Error from the session gateway."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class TransportError(GatewayError):
    """Gateway unreachable or session disconnected."""


class DownloadError(GatewayError):
    """Media payload could not be fetched."""


class SessionGateway(ABC):
    """
    Abstract interface for WhatsApp Web session gateways.

    Implementations must handle:
    - Session lifecycle (initialize, logout, destroy)
    - Sending text messages
    - Fetching media and chat details for a MESSAGE event
    - Publishing session events to the inbound queue
    """

    def __init__(self) -> None:
        self._events: asyncio.Queue[SessionEvent | None] = asyncio.Queue()
        self._accepting = True

    # =========================================================================
    # Inbound queue
    # =========================================================================

    def publish(self, event: SessionEvent) -> None:
        """Put an event on the inbound queue."""
        self._events.put_nowait(event)

    def emit(
        self,
        event_type: SessionEventType,
        payload: dict[str, Any] | None = None,
        raw: dict[str, Any] | None = None,
    ) -> SessionEvent:
        event = SessionEvent.create(event_type, payload, raw)
        self.publish(event)
        return event

    @property
    def accepting(self) -> bool:
        """False once the gateway stopped taking new events from its backend."""
        return self._accepting

    async def stop_receiving(self) -> None:
        """
        Stop taking new events from the backend.

        Events already on the queue stay there for the dispatcher to drain.
        """
        self._accepting = False

    def close_stream(self) -> None:
        """Mark the end of the event stream; next_event() returns None after it."""
        self._accepting = False
        self._events.put_nowait(None)

    async def next_event(self) -> SessionEvent | None:
        """Wait for the next event, or None once the stream is closed."""
        return await self._events.get()

    def pending_events(self) -> int:
        return self._events.qsize()

    # =========================================================================
    # Session operations
    # =========================================================================

    @abstractmethod
    async def initialize(self) -> None:
        """
        Start the session.

        QR / authenticated / ready events follow on the inbound queue.

        Raises:
            TransportError: the session backend is unreachable
        """
        ...

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> bool:
        """
        Send a text message.

        Returns:
            True if the session accepted the message
        """
        ...

    @abstractmethod
    async def logout(self) -> bool:
        """Unlink the session from the phone. Returns True if successful."""
        ...

    @abstractmethod
    async def destroy(self) -> None:
        """Release connections and stop receiving events. Safe to call twice."""
        ...

    @abstractmethod
    async def download_media(self, event: SessionEvent) -> MediaPayload:
        """
        Download the attachment of a MESSAGE event.

        Raises:
            DownloadError: the media could not be fetched
            TransportError: the session backend is unreachable
        """
        ...

    @abstractmethod
    async def get_chat(self, event: SessionEvent) -> ChatInfo:
        """
        Resolve the chat a MESSAGE event belongs to.

        Raises:
            TransportError: the session backend is unreachable
        """
        ...
