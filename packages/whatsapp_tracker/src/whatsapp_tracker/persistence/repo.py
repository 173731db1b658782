"""
Tracker Repository

Repository pattern for the tracker tables.
Provides idempotent upserts for the ingestion pipeline and the read queries
used by the history/export commands.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import Table, delete, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from whatsapp_tracker.contracts.records import ContactRecord, MediaMeta, MessageRecord, now_ms
from whatsapp_tracker.persistence.models import Contact, Media, Message

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (OperationalError, InterfaceError)


class MetadataStoreError(Exception):
    """Base error for the metadata store."""


class ForeignKeyViolation(MetadataStoreError):
    """Media row written for a message that does not exist."""

    def __init__(self, message_id: str):
        super().__init__(f"No message {message_id!r} to attach media to")
        self.message_id = message_id


class DatabaseUnavailable(MetadataStoreError):
    """The database could not be reached or dropped the connection."""


class TrackerRepository:
    """Repository for tracker database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def dialect(self) -> str:
        return self.db.get_bind().dialect.name

    def _upsert_statement(self, table: Table, values: dict[str, Any], key: str):
        """Build an insert that overwrites every non-key column on conflict."""
        update_columns = [name for name in values if name != key]

        if self.dialect == "mysql":
            stmt = mysql.insert(table).values(**values)
            return stmt.on_duplicate_key_update(
                {name: stmt.inserted[name] for name in update_columns}
            )

        if self.dialect == "postgresql":
            stmt = postgresql.insert(table).values(**values)
        elif self.dialect == "sqlite":
            stmt = sqlite.insert(table).values(**values)
        else:
            raise NotImplementedError(f"Upsert not supported for dialect {self.dialect}")

        return stmt.on_conflict_do_update(
            index_elements=[key],
            set_={name: stmt.excluded[name] for name in update_columns},
        )

    async def _execute(self, stmt):
        try:
            return await self.db.execute(stmt)
        except _CONNECTION_ERRORS as e:
            raise DatabaseUnavailable(f"Database unavailable: {e}") from e

    # =========================================================================
    # Messages
    # =========================================================================

    async def upsert_message(self, record: MessageRecord) -> None:
        """Insert a message or overwrite the stored one with the same id."""
        values = {
            "id": record.id,
            "chat_id": record.chat_id,
            "body": record.body,
            "from_me": record.from_me,
            "author": record.author,
            "timestamp": record.timestamp,
            "type": record.type,
            "has_media": record.has_media,
            "has_quoted_msg": record.has_quoted_msg,
        }
        await self._execute(self._upsert_statement(Message.__table__, values, "id"))

    async def get_message(self, message_id: str) -> Message | None:
        result = await self._execute(select(Message).where(Message.id == message_id))
        return result.scalars().first()

    async def messages_by_chat(self, chat_id: str, limit: int = 50) -> list[Message]:
        """Get the latest messages of a chat, newest first."""
        if limit <= 0:
            return []
        result = await self._execute(
            select(Message)
            .where(Message.chat_id == chat_id)
            .order_by(Message.timestamp.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def media_messages_by_chat(self, chat_id: str) -> list[Message]:
        """Get every media-flagged message of a chat, newest first."""
        result = await self._execute(
            select(Message)
            .where(Message.chat_id == chat_id, Message.has_media == True)  # noqa: E712
            .order_by(Message.timestamp.desc())
        )
        return list(result.scalars().all())

    async def delete_message(self, message_id: str) -> bool:
        """Delete a message; its media row goes with it (ON DELETE CASCADE)."""
        result = await self._execute(delete(Message).where(Message.id == message_id))
        return result.rowcount > 0

    # =========================================================================
    # Contacts
    # =========================================================================

    async def upsert_contact(self, record: ContactRecord) -> None:
        """Insert or refresh a contact; last_updated is always set to now."""
        values = {
            "id": record.id,
            "name": record.name,
            "number": record.number,
            "pushname": record.pushname,
            "is_group": record.is_group,
            "last_updated": now_ms(),
        }
        await self._execute(self._upsert_statement(Contact.__table__, values, "id"))

    async def all_contacts(self) -> list[Contact]:
        """Get all contacts, most recently updated first."""
        result = await self._execute(select(Contact).order_by(Contact.last_updated.desc()))
        return list(result.scalars().all())

    # =========================================================================
    # Media
    # =========================================================================

    async def upsert_media(self, message_id: str, meta: MediaMeta, path: str) -> None:
        """
        Insert or overwrite the media row of a message.

        Raises:
            ForeignKeyViolation: the message does not exist; the session is
                rolled back so nothing was written
            IntegrityError: any other constraint failure, re-raised as is
        """
        values = {
            "message_id": message_id,
            "mimetype": meta.mimetype,
            "filename": meta.filename,
            "filesize": meta.filesize,
            "caption": meta.caption,
            "file_path": path,
        }
        try:
            await self._execute(self._upsert_statement(Media.__table__, values, "message_id"))
        except IntegrityError as e:
            await self.db.rollback()
            if await self.get_message(message_id) is None:
                raise ForeignKeyViolation(message_id) from e
            raise

    async def media_by_message(self, message_id: str) -> Media | None:
        result = await self._execute(select(Media).where(Media.message_id == message_id))
        return result.scalars().first()


@asynccontextmanager
async def repository_scope(
    sessions: async_sessionmaker[AsyncSession],
) -> AsyncIterator[TrackerRepository]:
    """
    Open a session, yield a repository over it and commit on exit.

    Each scope is its own transaction: the pipeline uses one per step so a
    later step can never roll back an earlier one.
    """
    async with sessions() as db:
        try:
            yield TrackerRepository(db)
            await db.commit()
        except _CONNECTION_ERRORS as e:
            await db.rollback()
            raise DatabaseUnavailable(f"Database unavailable: {e}") from e
        except Exception:
            await db.rollback()
            raise
