"""
Evolution API Webhook Utilities

Helper functions for turning Evolution API webhooks into session events.

Evolution webhook format:
{
    "event": "messages.upsert",
    "instance": "instance_name",
    "data": {
        "key": {"id": "...", "remoteJid": "...", "fromMe": false},
        "pushName": "...",
        "message": {...},
        "messageType": "conversation",
        "messageTimestamp": 1234567890,
    }
}
"""

import logging
from typing import Any

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType

logger = logging.getLogger(__name__)

QRCODE_UPDATED = "qrcode.updated"
CONNECTION_UPDATE = "connection.update"
MESSAGES_UPSERT = "messages.upsert"
LOGOUT_INSTANCE = "logout.instance"

WEBHOOK_EVENTS = ["QRCODE_UPDATED", "CONNECTION_UPDATE", "MESSAGES_UPSERT", "LOGOUT_INSTANCE"]

# Evolution message types -> message type tags stored with each message
MESSAGE_TYPE_TAGS = {
    "conversation": "chat",
    "extendedTextMessage": "chat",
    "imageMessage": "image",
    "videoMessage": "video",
    "audioMessage": "audio",
    "documentMessage": "document",
    "documentWithCaptionMessage": "document",
    "stickerMessage": "sticker",
    "locationMessage": "location",
    "contactMessage": "vcard",
    "contactsArrayMessage": "multi_vcard",
    "reactionMessage": "reaction",
    "buttonsResponseMessage": "buttons_response",
    "listResponseMessage": "list_response",
}

MEDIA_MESSAGE_TYPES = {
    "imageMessage",
    "videoMessage",
    "audioMessage",
    "documentMessage",
    "documentWithCaptionMessage",
    "stickerMessage",
}

UNAUTHORIZED_STATUS = 401


def normalize_event_name(event: str | None) -> str:
    """'MESSAGES_UPSERT' and 'messages.upsert' are the same event."""
    if not event:
        return ""
    return event.lower().replace("_", ".")


def extract_instance_name(payload: dict[str, Any]) -> str | None:
    return payload.get("instance")


def validate_api_key(request_headers: dict[str, str], expected_api_key: str) -> bool:
    """
    Validate API key from request headers.

    Evolution API can send API key in:
    - Header: "apikey"
    - Header: "Authorization: Bearer <key>"
    """
    apikey_header = request_headers.get("apikey") or request_headers.get("Apikey")
    if apikey_header == expected_api_key:
        return True

    auth_header = request_headers.get("authorization") or request_headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
        if token == expected_api_key:
            return True

    return False


def _inner_message(message: dict[str, Any], message_type: str | None) -> dict[str, Any]:
    if not message_type:
        return {}
    inner = message.get(message_type) or {}
    if message_type == "documentWithCaptionMessage":
        inner = (inner.get("message") or {}).get("documentMessage") or {}
    return inner if isinstance(inner, dict) else {}


def message_to_payload(data: dict[str, Any]) -> dict[str, Any]:
    """
    Convert an Evolution message into the generic message payload.

    The result uses the keys the ingestion pipeline validates: id, from,
    body, fromMe, author, timestamp, type, hasMedia, hasQuotedMsg.
    """
    key = data.get("key", {})
    message = data.get("message") or {}
    message_type = data.get("messageType")
    inner = _inner_message(message, message_type)

    body = (
        message.get("conversation")
        or (message.get("extendedTextMessage") or {}).get("text")
        or inner.get("caption")
        or ""
    )

    context_info = data.get("contextInfo") or inner.get("contextInfo") or {}

    return {
        "id": key.get("id"),
        "from": key.get("remoteJid", ""),
        "body": body,
        "fromMe": bool(key.get("fromMe", False)),
        "author": key.get("participant") or data.get("participant"),
        "timestamp": data.get("messageTimestamp"),
        "type": MESSAGE_TYPE_TAGS.get(message_type or "", message_type),
        "hasMedia": message_type in MEDIA_MESSAGE_TYPES,
        "hasQuotedMsg": bool(context_info.get("quotedMessage")),
        "pushName": data.get("pushName"),
        "filename": inner.get("fileName"),
    }


def parse_evolution_webhook(payload: dict[str, Any]) -> list[SessionEvent]:
    """
    Translate one Evolution webhook into session events.

    - qrcode.updated -> QR
    - connection.update open -> AUTHENTICATED, READY
    - connection.update close -> AUTH_FAILURE (401) or DISCONNECTED
    - messages.upsert -> MESSAGE
    - logout.instance -> DISCONNECTED

    Unknown events yield an empty list.
    """
    events: list[SessionEvent] = []

    event = normalize_event_name(payload.get("event"))
    data = payload.get("data") or {}
    if not isinstance(data, (dict, list)):
        data = {}
    fields = data if isinstance(data, dict) else {}

    if event == QRCODE_UPDATED:
        qrcode = fields.get("qrcode")
        if not isinstance(qrcode, dict):
            qrcode = {}
        code = qrcode.get("code") or fields.get("code")
        if code:
            events.append(SessionEvent.create(SessionEventType.QR, {"qr": code}, raw=fields))

    elif event == CONNECTION_UPDATE:
        state = fields.get("state")
        if state == "open":
            events.append(SessionEvent.create(SessionEventType.AUTHENTICATED, raw=fields))
            events.append(SessionEvent.create(SessionEventType.READY, raw=fields))
        elif state == "close":
            reason = fields.get("statusReason")
            if reason == UNAUTHORIZED_STATUS:
                events.append(
                    SessionEvent.create(SessionEventType.AUTH_FAILURE, {"reason": reason}, raw=fields)
                )
            else:
                events.append(
                    SessionEvent.create(SessionEventType.DISCONNECTED, {"reason": reason}, raw=fields)
                )

    elif event == MESSAGES_UPSERT:
        # Some Evolution versions batch messages in a list
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict) or not item.get("key"):
                continue
            events.append(
                SessionEvent.create(SessionEventType.MESSAGE, message_to_payload(item), raw=item)
            )

    elif event == LOGOUT_INSTANCE:
        events.append(
            SessionEvent.create(SessionEventType.DISCONNECTED, {"reason": "logout"}, raw=fields)
        )

    else:
        logger.debug(f"Ignoring Evolution event: {payload.get('event')}")

    return events
