"""
Tracker Database Models

Tables:
- messages: every inbound/outbound message, keyed by provider message id
- contacts: one row per chat, refreshed as a side effect of messages
- media: attachment metadata, 1:1 with messages, cascades on message delete
"""

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

TrackerBase = declarative_base()


class Message(TrackerBase):
    """
    A WhatsApp message.

    The provider message id is the primary key; re-ingesting a message
    overwrites every other column.
    """

    __tablename__ = "messages"

    id = Column(String(255), primary_key=True)
    chat_id = Column(String(255), nullable=False)
    body = Column(Text, nullable=False, default="")
    from_me = Column(Boolean, nullable=False, default=False)
    author = Column(String(255), nullable=True)  # Incoming group messages only
    timestamp = Column(BigInteger, nullable=False)  # Epoch milliseconds
    type = Column(String(50), nullable=False, default="unknown")
    has_media = Column(Boolean, nullable=False, default=False)
    has_quoted_msg = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_messages_chat_timestamp", "chat_id", "timestamp"),
        Index("idx_messages_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Message {self.id} chat={self.chat_id}>"


class Contact(TrackerBase):
    """
    A chat (individual or group) seen by the tracker.

    last_updated is refreshed on every upsert.
    """

    __tablename__ = "contacts"

    id = Column(String(255), primary_key=True)  # Chat id
    name = Column(String(255), nullable=True)
    number = Column(String(50), nullable=True)
    pushname = Column(String(255), nullable=True)
    is_group = Column(Boolean, nullable=False, default=False)
    last_updated = Column(BigInteger, nullable=False)  # Epoch milliseconds

    __table_args__ = (
        Index("idx_contacts_name", "name"),
        Index("idx_contacts_number", "number"),
        Index("idx_contacts_last_updated", "last_updated"),
    )

    def __repr__(self) -> str:
        return f"<Contact {self.id} name={self.name}>"


class Media(TrackerBase):
    """
    Attachment metadata for a message.

    Only written after the file at file_path was stored successfully.
    """

    __tablename__ = "media"

    message_id = Column(
        String(255),
        ForeignKey("messages.id", ondelete="CASCADE"),
        primary_key=True,
    )
    mimetype = Column(String(100), nullable=False, default="")
    filename = Column(String(255), nullable=True)
    filesize = Column(Integer, nullable=False, default=0)
    caption = Column(Text, nullable=True)
    file_path = Column(String(512), nullable=False)

    def __repr__(self) -> str:
        return f"<Media {self.message_id} {self.mimetype}>"
