"""
Tracker Contracts

Session event types, the event envelope, payload models and the records the
pipeline writes.
"""

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType
from whatsapp_tracker.contracts.payloads import ChatInfo, MediaPayload, MessagePayload
from whatsapp_tracker.contracts.records import (
    ContactRecord,
    MediaMeta,
    MessageRecord,
    MessageValidationError,
    normalize_message,
)

__all__ = [
    "SessionEvent",
    "SessionEventType",
    "ChatInfo",
    "MediaPayload",
    "MessagePayload",
    "ContactRecord",
    "MediaMeta",
    "MessageRecord",
    "MessageValidationError",
    "normalize_message",
]
