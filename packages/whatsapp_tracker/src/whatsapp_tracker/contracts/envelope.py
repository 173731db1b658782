"""
Session Event Envelope

Wrapper for every event the gateway puts on the inbound queue.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from whatsapp_tracker.contracts.event_types import SessionEventType


@dataclass
class SessionEvent:
    """
    One event from the session gateway.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Kind of event (SessionEventType)
        payload: Event data. For MESSAGE events this is the generic message
            payload (id, from, body, fromMe, author, timestamp, type,
            hasMedia, hasQuotedMsg); for QR it holds "qr"; for
            AUTH_FAILURE / DISCONNECTED it holds "reason".
        received_at: When the gateway received the event (UTC)
        raw: Provider payload the event was built from
    """

    event_id: UUID
    event_type: SessionEventType
    payload: dict[str, Any]
    received_at: datetime
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: SessionEventType,
        payload: dict[str, Any] | None = None,
        raw: dict[str, Any] | None = None,
    ) -> "SessionEvent":
        """Create a new event with auto-generated event_id and timestamp."""
        return cls(
            event_id=uuid4(),
            event_type=event_type,
            payload=payload or {},
            received_at=datetime.now(timezone.utc),
            raw=raw or {},
        )

    @property
    def message_id(self) -> str | None:
        """Message identifier for MESSAGE events."""
        message_id = self.payload.get("id")
        if isinstance(message_id, dict):
            return message_id.get("_serialized")
        return message_id

    @property
    def chat_id(self) -> str | None:
        return self.payload.get("from")
