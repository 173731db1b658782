"""
Ingestion Pipeline

Processes session events and commits them to the stores:
1. Normalize the message payload
2. Upsert the message
3. Download and store the attachment (if any)
4. Upsert the media row (only once the bytes are on disk)
5. Resolve the chat and upsert the contact

Every step runs in its own transaction. A failure in a later step is logged
and never undoes an earlier one; a media row is never written before its
file exists, so a crash between steps can leave an orphan file but never a
row pointing at nothing.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from rich import print as rprint
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType
from whatsapp_tracker.contracts.payloads import ChatInfo
from whatsapp_tracker.contracts.records import (
    ContactRecord,
    MediaMeta,
    MessageRecord,
    MessageValidationError,
    is_group_chat,
    normalize_message,
    now_ms,
)
from whatsapp_tracker.gateway.base import DownloadError, GatewayError, SessionGateway
from whatsapp_tracker.media.store import MediaStore, StorageWriteError
from whatsapp_tracker.persistence.repo import (
    DatabaseUnavailable,
    ForeignKeyViolation,
    repository_scope,
)
from whatsapp_tracker.service.qr_file import remove_qr_file, write_qr_file

logger = logging.getLogger(__name__)


@dataclass
class QRState:
    payload: str
    issued_at_ms: int


@dataclass
class IngestionResult:
    """Outcome of one message event, step by step."""

    message_id: str | None
    message_saved: bool = False
    media_path: Path | None = None
    media_saved: bool = False
    contact_saved: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.message_saved and not self.errors


class IngestionPipeline:
    """
    Single writer for the tracker stores.

    Events are handled one at a time by the dispatcher; nothing in here runs
    concurrently with itself.
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        media_store: MediaStore,
        gateway: SessionGateway,
        qr_file_path: str | Path,
        echo_qr: bool = False,
    ):
        self.sessions = sessions
        self.media_store = media_store
        self.gateway = gateway
        self.qr_file_path = Path(qr_file_path)
        self.echo_qr = echo_qr
        self._qr: QRState | None = None
        self.ready = False

    def current_qr(self) -> QRState | None:
        return self._qr

    async def handle_event(self, event: SessionEvent) -> IngestionResult | None:
        """Dispatch one session event. Returns the result for MESSAGE events."""
        event_type = event.event_type

        if event_type == SessionEventType.MESSAGE:
            return await self.handle_message(event)

        if event_type == SessionEventType.QR:
            await self._on_qr(event.payload.get("qr"))
        elif event_type == SessionEventType.AUTHENTICATED:
            await self._on_authenticated()
        elif event_type == SessionEventType.AUTH_FAILURE:
            logger.error(f"Authentication failed: {event.payload.get('reason')}")
        elif event_type == SessionEventType.READY:
            self.ready = True
            logger.info("WhatsApp session ready")
        elif event_type == SessionEventType.DISCONNECTED:
            self.ready = False
            logger.warning(f"WhatsApp session disconnected: {event.payload.get('reason')}")
        else:
            logger.debug(f"Ignoring event type {event_type}")

        return None

    # =========================================================================
    # Message events
    # =========================================================================

    async def handle_message(self, event: SessionEvent) -> IngestionResult:
        result = IngestionResult(message_id=event.message_id)

        # Step 1: normalize
        try:
            record = normalize_message(event.payload, int(event.received_at.timestamp() * 1000))
        except MessageValidationError as e:
            logger.warning(f"Dropping invalid message: {e}")
            result.errors.append(f"validation: {e}")
            return result

        result.message_id = record.id

        # Step 2: message
        try:
            async with repository_scope(self.sessions) as repo:
                await repo.upsert_message(record)
            result.message_saved = True
        except DatabaseUnavailable as e:
            logger.error(f"Could not save message {record.id}: {e}")
            result.errors.append(f"message: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error saving message {record.id}")
            result.errors.append(f"message: {e}")

        # Steps 3 and 4: media bytes, then media row
        if record.has_media:
            await self._ingest_media(event, record, result)

        # Step 5: contact
        await self._ingest_contact(event, record, result)

        logger.debug(
            f"Ingested message {record.id}",
            extra={
                "chat_id": record.chat_id,
                "message_saved": result.message_saved,
                "media_saved": result.media_saved,
                "contact_saved": result.contact_saved,
            },
        )
        return result

    async def _ingest_media(
        self, event: SessionEvent, record: MessageRecord, result: IngestionResult
    ) -> None:
        try:
            media = await self.gateway.download_media(event)
            try:
                raw_bytes = media.decode()
            except ValueError as e:
                raise DownloadError(str(e)) from e
            path = await self.media_store.store(record.id, media.mimetype, raw_bytes)
        except GatewayError as e:
            logger.warning(f"Media download failed for {record.id}: {e}")
            result.errors.append(f"download: {e}")
            return
        except StorageWriteError as e:
            logger.error(f"Media write failed for {record.id}: {e}")
            result.errors.append(f"storage: {e}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error fetching media for {record.id}")
            result.errors.append(f"media: {e}")
            return

        result.media_path = path
        meta = MediaMeta(
            mimetype=media.mimetype,
            filename=media.filename,
            filesize=len(raw_bytes),
            caption=record.body or None,
        )

        try:
            async with repository_scope(self.sessions) as repo:
                await repo.upsert_media(record.id, meta, str(path))
            result.media_saved = True
        except ForeignKeyViolation as e:
            logger.error(
                f"Media row rejected, message {e.message_id} is not stored",
                extra={"message_id": e.message_id, "path": str(path)},
            )
            result.errors.append(f"media: {e}")
        except DatabaseUnavailable as e:
            logger.error(f"Could not save media row for {record.id}: {e}")
            result.errors.append(f"media: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error saving media row for {record.id}")
            result.errors.append(f"media: {e}")

    async def _ingest_contact(
        self, event: SessionEvent, record: MessageRecord, result: IngestionResult
    ) -> None:
        try:
            chat = await self.gateway.get_chat(event)
            contact = contact_from_chat(chat, record.chat_id)
        except GatewayError as e:
            logger.warning(f"Chat lookup failed for {record.chat_id}: {e}")
            result.errors.append(f"chat: {e}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error resolving chat {record.chat_id}")
            result.errors.append(f"chat: {e}")
            return

        try:
            async with repository_scope(self.sessions) as repo:
                await repo.upsert_contact(contact)
            result.contact_saved = True
        except DatabaseUnavailable as e:
            logger.error(f"Could not save contact {contact.id}: {e}")
            result.errors.append(f"contact: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error saving contact {contact.id}")
            result.errors.append(f"contact: {e}")

    # =========================================================================
    # Session lifecycle events
    # =========================================================================

    async def _on_qr(self, payload: str | None) -> None:
        if not payload:
            logger.debug("QR event without payload")
            return

        self._qr = QRState(payload=payload, issued_at_ms=now_ms())
        logger.info(f"QR code received, saved to {self.qr_file_path}")
        if self.echo_qr:
            rprint(f"[bold]Scan this QR payload with WhatsApp:[/bold]\n{payload}")

        try:
            await write_qr_file(self.qr_file_path, payload)
        except OSError as e:
            logger.warning(f"Could not write QR file {self.qr_file_path}: {e}")

    async def _on_authenticated(self) -> None:
        self._qr = None
        logger.info("WhatsApp session authenticated")
        try:
            await remove_qr_file(self.qr_file_path)
        except OSError as e:
            logger.warning(f"Could not remove QR file {self.qr_file_path}: {e}")


def contact_from_chat(chat: ChatInfo, chat_id: str) -> ContactRecord:
    contact_id = chat.id or chat_id
    is_group = chat.is_group or is_group_chat(contact_id)
    number = chat.number
    if number is None and not is_group:
        number = contact_id.split("@", 1)[0]
    return ContactRecord(
        id=contact_id,
        name=chat.name,
        number=number,
        pushname=chat.pushname,
        is_group=is_group,
    )
