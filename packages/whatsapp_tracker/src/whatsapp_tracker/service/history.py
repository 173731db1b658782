"""
History Service

Read-side facade over the tracker stores plus the two session commands the
CLI exposes (send, logout).

Missing rows are reported as None / empty results, never raised. A message
whose media row is not written yet is treated as a message without media.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from whatsapp_tracker.gateway.base import GatewayError, SessionGateway
from whatsapp_tracker.media.store import FileStatus, MediaStore
from whatsapp_tracker.persistence.models import Contact, Media, Message
from whatsapp_tracker.persistence.repo import repository_scope

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


@dataclass
class MediaInfo:
    message: Message
    media: Media | None
    file_status: FileStatus


@dataclass
class ExportResult:
    count: int = 0
    files: list[Path] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)  # Message ids without a resolvable file


def iso_timestamp(timestamp_ms: int) -> str:
    """Epoch ms as an ISO-8601 UTC string with millisecond precision."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp_ms % 1000:03d}Z"


def export_filename(message: Message, media: Media) -> str:
    """`<ISO timestamp>_<original filename>`, safe for every filesystem."""
    stamp = iso_timestamp(message.timestamp).replace(":", "-").replace(".", "-")
    name = media.filename or Path(media.file_path).name
    return f"{stamp}_{Path(name).name}"


class HistoryService:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        media_store: MediaStore,
        gateway: SessionGateway | None = None,
    ):
        self.sessions = sessions
        self.media_store = media_store
        self.gateway = gateway

    async def list_contacts(self) -> list[Contact]:
        async with repository_scope(self.sessions) as repo:
            return await repo.all_contacts()

    async def message_history(self, chat_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[Message]:
        """Latest messages of a chat, newest first."""
        async with repository_scope(self.sessions) as repo:
            return await repo.messages_by_chat(chat_id, limit)

    async def media_info(self, message_id: str) -> MediaInfo | None:
        """
        Media details for a message, or None when the message is unknown.

        file_status tells apart a file on disk, a recorded file that has
        gone missing, and media that was never saved.
        """
        async with repository_scope(self.sessions) as repo:
            message = await repo.get_message(message_id)
            if message is None:
                return None
            media = await repo.media_by_message(message_id)

        status = self.media_store.file_status(media.file_path if media else None)
        return MediaInfo(message=message, media=media, file_status=status)

    async def export_media(self, chat_id: str, target_dir: str | Path) -> ExportResult:
        """
        Copy every resolvable media file of a chat into target_dir.

        The directory is created if needed. Messages whose media row or file
        is missing are skipped.
        """
        target = Path(target_dir)
        await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)

        async with repository_scope(self.sessions) as repo:
            messages = await repo.media_messages_by_chat(chat_id)
            rows = [(message, await repo.media_by_message(message.id)) for message in messages]

        result = ExportResult()
        for message, media in rows:
            if media is None or not self.media_store.exists(media.file_path):
                result.skipped.append(message.id)
                continue

            destination = target / export_filename(message, media)
            try:
                await asyncio.to_thread(shutil.copy2, media.file_path, destination)
            except OSError as e:
                logger.warning(f"Could not export media for {message.id}: {e}")
                result.skipped.append(message.id)
                continue

            result.files.append(destination)
            result.count += 1

        logger.info(
            f"Exported {result.count} media files",
            extra={"chat_id": chat_id, "target": str(target), "skipped": len(result.skipped)},
        )
        return result

    async def send_message(self, chat_id: str, text: str) -> bool:
        if self.gateway is None:
            raise RuntimeError("No session gateway configured")
        try:
            return await self.gateway.send_message(chat_id, text)
        except GatewayError as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
            return False

    async def logout(self) -> bool:
        if self.gateway is None:
            raise RuntimeError("No session gateway configured")
        try:
            return await self.gateway.logout()
        except GatewayError as e:
            logger.error(f"Logout failed: {e}")
            return False
