"""
Tracker Records

Plain records the ingestion pipeline hands to the metadata store, and the
normalization that turns a raw message payload into a MessageRecord.
"""

import time
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from whatsapp_tracker.contracts.payloads import MessagePayload

UNKNOWN_MESSAGE_TYPE = "unknown"
GROUP_SUFFIX = "@g.us"

# Anything below this is a seconds timestamp (10^12 ms is September 2001)
_MS_THRESHOLD = 10**12


class MessageValidationError(Exception):
    """Message payload could not be normalized into a MessageRecord."""

    def __init__(self, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message)
        self.payload = payload or {}


@dataclass
class MessageRecord:
    id: str
    chat_id: str
    body: str
    from_me: bool
    author: str | None
    timestamp: int  # epoch milliseconds
    type: str
    has_media: bool
    has_quoted_msg: bool


@dataclass
class ContactRecord:
    id: str
    name: str | None = None
    number: str | None = None
    pushname: str | None = None
    is_group: bool = False


@dataclass
class MediaMeta:
    mimetype: str
    filename: str | None
    filesize: int
    caption: str | None = None


def now_ms() -> int:
    return int(time.time() * 1000)


def is_group_chat(chat_id: str | None) -> bool:
    return bool(chat_id) and chat_id.endswith(GROUP_SUFFIX)


def to_epoch_ms(timestamp: int) -> int:
    """Session layers report seconds; the store keeps milliseconds."""
    if timestamp < _MS_THRESHOLD:
        return timestamp * 1000
    return timestamp


def normalize_message(payload: dict[str, Any], received_at_ms: int | None = None) -> MessageRecord:
    """
    Validate a raw message payload and map it to a MessageRecord.

    Defaults:
    - absent body -> ""
    - absent timestamp -> received_at_ms (or now)
    - absent type -> "unknown"
    - author is kept only for incoming messages in group chats

    Raises:
        MessageValidationError: payload has no usable message id, or a field
            has the wrong shape
    """
    try:
        parsed = MessagePayload.model_validate(payload)
    except ValidationError as e:
        raise MessageValidationError(f"Invalid message payload: {e}", payload) from e

    if parsed.timestamp is None:
        timestamp = received_at_ms if received_at_ms is not None else now_ms()
    else:
        timestamp = to_epoch_ms(parsed.timestamp)

    author = None
    if not parsed.from_me and is_group_chat(parsed.chat_id):
        author = parsed.author

    return MessageRecord(
        id=parsed.id,
        chat_id=parsed.chat_id,
        body=parsed.body or "",
        from_me=parsed.from_me,
        author=author,
        timestamp=timestamp,
        type=parsed.type or UNKNOWN_MESSAGE_TYPE,
        has_media=parsed.has_media,
        has_quoted_msg=parsed.has_quoted_msg,
    )
