"""
Evolution API Session Gateway

Session gateway backed by Evolution API (self-hosted WhatsApp Web bridge
built on Baileys). Session events arrive as webhooks on an in-process
FastAPI listener; commands go out over the Evolution REST API.

Docs: https://doc.evolution-api.com/
"""

import logging
from pathlib import Path
from typing import Any

import httpx

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType
from whatsapp_tracker.contracts.payloads import ChatInfo, MediaPayload
from whatsapp_tracker.contracts.records import is_group_chat
from whatsapp_tracker.gateway.base import (
    DownloadError,
    GatewayError,
    SessionGateway,
    TransportError,
)
from whatsapp_tracker.gateway.evolution.instance_manager import EvolutionInstanceManager
from whatsapp_tracker.gateway.evolution.listener import WebhookListener, create_webhook_app
from whatsapp_tracker.gateway.evolution.webhook import WEBHOOK_EVENTS

logger = logging.getLogger(__name__)

STATE_OPEN = "open"


class EvolutionSessionGateway(SessionGateway):
    """
    Evolution API implementation of SessionGateway.

    Features:
    - Creates the instance on first start, reuses it afterwards
    - Registers the tracker's webhook listener with the instance
    - Sends text messages
    - Fetches media as base64 and resolves chat / contact details
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        instance_name: str,
        webhook_public_url: str | None = None,
        webhook_host: str = "127.0.0.1",
        webhook_port: int = 8090,
        session_path: str | Path | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Evolution gateway.

        Args:
            api_url: Base URL of Evolution API (e.g., http://localhost:8080)
            api_key: Global API key for authentication
            instance_name: Evolution instance holding the session
            webhook_public_url: URL Evolution calls back; defaults to the listener address
            webhook_host: Interface the webhook listener binds to
            webhook_port: Port the webhook listener binds to
            session_path: Directory for local session state
            timeout: HTTP request timeout
            transport: Optional httpx transport (tests use MockTransport)
        """
        super().__init__()
        self.instance_name = instance_name
        self.api_key = api_key
        self.webhook_host = webhook_host
        self.webhook_port = webhook_port
        self.webhook_url = webhook_public_url or f"http://{webhook_host}:{webhook_port}/webhook"
        self.session_path = Path(session_path) if session_path else None
        self.instances = EvolutionInstanceManager(
            api_url=api_url,
            api_key=api_key,
            instance_name=instance_name,
            timeout=timeout,
            transport=transport,
        )
        self._listener: WebhookListener | None = None
        self._destroyed = False

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return await self.instances.request(method, endpoint, json_data, params)

    async def start_listener(self) -> None:
        if self._listener is None:
            app = create_webhook_app(self, self.api_key)
            self._listener = WebhookListener(app, self.webhook_host, self.webhook_port)
        await self._listener.start()

    async def stop_receiving(self) -> None:
        await super().stop_receiving()
        if self._listener is not None:
            await self._listener.stop()

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        if self.session_path is not None:
            self.session_path.mkdir(parents=True, exist_ok=True)

        state = await self.instances.get_connection_state()

        if state is None:
            logger.info(f"Creating Evolution instance {self.instance_name}")
            await self.instances.create_instance(self.webhook_url, WEBHOOK_EVENTS)
        else:
            await self.instances.set_webhook(self.webhook_url, WEBHOOK_EVENTS)

        await self.start_listener()

        if state == STATE_OPEN:
            logger.info(f"Instance {self.instance_name} already connected")
            self.emit(SessionEventType.AUTHENTICATED)
            self.emit(SessionEventType.READY)
            return

        code = await self.instances.get_qr_code()
        if code:
            self.emit(SessionEventType.QR, {"qr": code})

    async def logout(self) -> bool:
        return await self.instances.logout_instance()

    async def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True

        if self._listener is not None:
            await self._listener.stop()
        await self.instances.close()
        self.close_stream()
        logger.info(f"Evolution gateway for {self.instance_name} destroyed")

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_message(self, chat_id: str, text: str) -> bool:
        """
        Send a text message.

        Evolution API endpoint: POST /message/sendText/{instance}
        """
        payload = {"number": chat_id, "text": text}

        try:
            response = await self._request(
                "POST", f"/message/sendText/{self.instance_name}", payload
            )
        except GatewayError as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
            return False

        message_id = ((response or {}).get("key") or {}).get("id")
        logger.info(
            f"Sent text message",
            extra={"chat_id": chat_id, "message_id": message_id},
        )
        return True

    async def download_media(self, event: SessionEvent) -> MediaPayload:
        """
        Download the attachment of a MESSAGE event as base64.

        Evolution API endpoint: POST /chat/getBase64FromMediaMessage/{instance}
        """
        key = event.raw.get("key")
        if not key:
            raise DownloadError(f"Message {event.message_id} has no Evolution key")

        payload = {"message": {"key": key}, "convertToMp4": False}

        try:
            response = await self._request(
                "POST", f"/chat/getBase64FromMediaMessage/{self.instance_name}", payload
            )
        except TransportError:
            raise
        except GatewayError as e:
            raise DownloadError(
                f"Media download failed for {event.message_id}: {e}",
                code=e.code,
                details=e.details,
            ) from e

        data = (response or {}).get("base64")
        if not data:
            raise DownloadError(f"Empty media payload for {event.message_id}")

        return MediaPayload(
            mimetype=response.get("mimetype") or "",
            data=data,
            filename=response.get("fileName") or event.payload.get("filename"),
        )

    async def get_chat(self, event: SessionEvent) -> ChatInfo:
        """
        Resolve chat details for contact upserts.

        Groups: GET /group/findGroupInfos/{instance}?groupJid=...
        Individuals: POST /chat/findContacts/{instance}
        """
        chat_id = event.chat_id or ""

        try:
            if is_group_chat(chat_id):
                response = await self._request(
                    "GET",
                    f"/group/findGroupInfos/{self.instance_name}",
                    params={"groupJid": chat_id},
                )
                return ChatInfo(
                    id=chat_id,
                    name=(response or {}).get("subject"),
                    is_group=True,
                )

            response = await self._request(
                "POST",
                f"/chat/findContacts/{self.instance_name}",
                {"where": {"id": chat_id}},
            )
        except TransportError:
            raise
        except GatewayError as e:
            raise TransportError(
                f"Chat lookup failed for {chat_id}: {e}", code=e.code, details=e.details
            ) from e

        contact: dict[str, Any] = {}
        if isinstance(response, list) and response:
            contact = response[0]
        elif isinstance(response, dict):
            contact = response

        pushname = contact.get("pushName") or event.payload.get("pushName")
        return ChatInfo(
            id=chat_id,
            name=pushname,
            is_group=False,
            pushname=pushname,
            number=chat_id.split("@", 1)[0],
        )
