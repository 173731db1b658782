"""
Stub Session Gateway

Development gateway that logs all operations without a real session.
Useful for local development and testing.
"""

import base64
import logging
from datetime import datetime, timezone
from typing import Any

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType
from whatsapp_tracker.contracts.payloads import ChatInfo, MediaPayload
from whatsapp_tracker.contracts.records import is_group_chat
from whatsapp_tracker.gateway.base import DownloadError, SessionGateway, TransportError

logger = logging.getLogger(__name__)


class StubSessionGateway(SessionGateway):
    """
    Stub gateway for development and testing.

    - Logs all outbound messages
    - Serves media and chats registered with add_media / add_chat
    - Can be told to fail downloads, chat lookups and sends
    - emit_* helpers put events on the inbound queue
    """

    def __init__(self, authenticate_on_init: bool = True):
        super().__init__()
        self.authenticate_on_init = authenticate_on_init
        self.sent_messages: list[dict[str, Any]] = []
        self.initialized = False
        self.destroyed = False
        self.logged_out = False
        self.fail_sends = False
        self._media: dict[str, MediaPayload | Exception] = {}
        self._chats: dict[str, ChatInfo | Exception] = {}

    # =========================================================================
    # Scripting helpers
    # =========================================================================

    def add_media(
        self,
        message_id: str,
        raw_bytes: bytes,
        mimetype: str,
        filename: str | None = None,
    ) -> MediaPayload:
        media = MediaPayload(
            mimetype=mimetype,
            data=base64.b64encode(raw_bytes).decode("ascii"),
            filename=filename,
            filesize=len(raw_bytes),
        )
        self._media[message_id] = media
        return media

    def fail_media(self, message_id: str, error: Exception | None = None) -> None:
        self._media[message_id] = error or DownloadError(f"Stub download failure for {message_id}")

    def add_chat(self, chat: ChatInfo) -> None:
        self._chats[chat.id] = chat

    def fail_chat(self, chat_id: str, error: Exception | None = None) -> None:
        self._chats[chat_id] = error or TransportError(f"Stub chat lookup failure for {chat_id}")

    def emit_qr(self, qr: str) -> SessionEvent:
        return self.emit(SessionEventType.QR, {"qr": qr})

    def emit_authenticated(self) -> SessionEvent:
        return self.emit(SessionEventType.AUTHENTICATED)

    def emit_message(self, payload: dict[str, Any]) -> SessionEvent:
        return self.emit(SessionEventType.MESSAGE, payload, raw=payload)

    def emit_disconnected(self, reason: str = "stub") -> SessionEvent:
        return self.emit(SessionEventType.DISCONNECTED, {"reason": reason})

    # =========================================================================
    # SessionGateway
    # =========================================================================

    async def initialize(self) -> None:
        logger.info("[STUB] Initializing session")
        self.initialized = True
        if self.authenticate_on_init:
            self.emit(SessionEventType.AUTHENTICATED)
            self.emit(SessionEventType.READY)

    async def send_message(self, chat_id: str, text: str) -> bool:
        self.sent_messages.append(
            {
                "chat_id": chat_id,
                "text": text,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

        logger.info(
            f"[STUB] Sending text message",
            extra={
                "chat_id": chat_id,
                "text": text[:100] + "..." if len(text) > 100 else text,
            },
        )

        return not self.fail_sends

    async def logout(self) -> bool:
        logger.info("[STUB] Logging out")
        self.logged_out = True
        return True

    async def destroy(self) -> None:
        if self.destroyed:
            return
        logger.info("[STUB] Destroying session")
        self.destroyed = True
        self.close_stream()

    async def download_media(self, event: SessionEvent) -> MediaPayload:
        media = self._media.get(event.message_id or "")
        if media is None:
            raise DownloadError(f"No media registered for {event.message_id}")
        if isinstance(media, Exception):
            raise media
        return media

    async def get_chat(self, event: SessionEvent) -> ChatInfo:
        chat_id = event.chat_id or ""
        chat = self._chats.get(chat_id)
        if isinstance(chat, Exception):
            raise chat
        if chat is not None:
            return chat

        is_group = is_group_chat(chat_id)
        return ChatInfo(
            id=chat_id,
            name=None,
            is_group=is_group,
            number=None if is_group else chat_id.split("@", 1)[0],
        )

    def get_sent_messages(self) -> list[dict[str, Any]]:
        """Get all sent messages (for testing)."""
        return self.sent_messages.copy()
