"""
Session Payload Models

Pydantic models for the payloads a session gateway hands to the pipeline.
Field aliases follow the WhatsApp Web message shape (fromMe, hasMedia, ...)
so gateway adapters can pass provider-normalized dicts straight through.
"""

import base64
import binascii
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessagePayload(BaseModel):
    """
    Incoming message payload as delivered with a MESSAGE event.

    Only `id` is required; every other field has the default the ingestion
    pipeline documents (empty body, unknown type, no media).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Provider message ID")
    chat_id: str = Field("", alias="from", description="Chat the message belongs to")
    body: str | None = Field(None, description="Text body or media caption")
    from_me: bool = Field(False, alias="fromMe", description="Sent by the tracked account")
    author: str | None = Field(None, description="Group participant who wrote it")
    timestamp: int | None = Field(None, description="Epoch seconds or milliseconds")
    type: str | None = Field(None, description="Provider message type tag")
    has_media: bool = Field(False, alias="hasMedia")
    has_quoted_msg: bool = Field(False, alias="hasQuotedMsg")

    @field_validator("id", mode="before")
    @classmethod
    def unwrap_serialized_id(cls, v: Any) -> Any:
        # WhatsApp Web ids arrive as {"_serialized": "...", ...}
        if isinstance(v, dict):
            return v.get("_serialized")
        return v

    @field_validator("chat_id", mode="before")
    @classmethod
    def chat_id_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("author", "type", mode="after")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        return v or None


class MediaPayload(BaseModel):
    """Downloaded attachment: MIME type plus base64-encoded bytes."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    mimetype: str = Field("", description="MIME type reported by the session")
    data: str = Field(..., description="Base64-encoded file content")
    filename: str | None = Field(None, description="Original filename, if any")
    filesize: int | None = Field(None, description="Size reported by the session")

    def decode(self) -> bytes:
        """
        Decode the payload bytes.

        Raises:
            ValueError: data is not valid base64
        """
        try:
            return base64.b64decode(self.data, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 media payload: {e}") from e


class ChatInfo(BaseModel):
    """Chat metadata resolved from the session for contact upserts."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str | None = None
    is_group: bool = Field(False, alias="isGroup")
    pushname: str | None = None
    number: str | None = None
