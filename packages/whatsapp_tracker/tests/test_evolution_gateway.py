"""
Tests for the Evolution API session gateway.
"""

import asyncio
import base64
import json
import signal

import httpx
import pytest
from fastapi.testclient import TestClient

from whatsapp_tracker.contracts.envelope import SessionEvent
from whatsapp_tracker.contracts.event_types import SessionEventType
from whatsapp_tracker.gateway.base import DownloadError, TransportError
from whatsapp_tracker.gateway.evolution import (
    EvolutionSessionGateway,
    WebhookListener,
    create_webhook_app,
    parse_evolution_webhook,
    validate_api_key,
)
from whatsapp_tracker.gateway.evolution.webhook import extract_instance_name, message_to_payload

API_URL = "https://evolution.test"
INSTANCE = "tracker"


@pytest.fixture
def evolution_text_message_webhook():
    """Sample Evolution API webhook for a text message."""
    return {
        "event": "messages.upsert",
        "instance": INSTANCE,
        "data": {
            "key": {
                "id": "msg_123",
                "remoteJid": "5511888888888@s.whatsapp.net",
                "fromMe": False,
            },
            "pushName": "Maria",
            "message": {"conversation": "Oi, tudo bem?"},
            "messageType": "conversation",
            "messageTimestamp": 1704067200,
        },
    }


@pytest.fixture
def evolution_image_webhook():
    """Sample Evolution API webhook for a captioned image in a group."""
    return {
        "event": "MESSAGES_UPSERT",
        "instance": INSTANCE,
        "data": {
            "key": {
                "id": "img_1",
                "remoteJid": "120363000000@g.us",
                "fromMe": False,
                "participant": "5511777777777@s.whatsapp.net",
            },
            "message": {
                "imageMessage": {
                    "caption": "Foto da obra",
                    "mimetype": "image/jpeg",
                    "contextInfo": {"quotedMessage": {"conversation": "manda foto"}},
                }
            },
            "messageType": "imageMessage",
            "messageTimestamp": 1704067300,
        },
    }


def make_gateway(handler, **kwargs) -> EvolutionSessionGateway:
    return EvolutionSessionGateway(
        api_url=API_URL,
        api_key="test-key",
        instance_name=INSTANCE,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def message_event(payload: dict) -> SessionEvent:
    events = parse_evolution_webhook(payload)
    assert len(events) == 1
    return events[0]


class TestEvolutionWebhookParsing:
    """Tests for translating Evolution webhooks into session events."""

    def test_text_message(self, evolution_text_message_webhook):
        event = message_event(evolution_text_message_webhook)

        assert event.event_type == SessionEventType.MESSAGE
        assert event.message_id == "msg_123"
        assert event.chat_id == "5511888888888@s.whatsapp.net"
        assert event.payload["body"] == "Oi, tudo bem?"
        assert event.payload["fromMe"] is False
        assert event.payload["timestamp"] == 1704067200
        assert event.payload["type"] == "chat"
        assert event.payload["hasMedia"] is False
        assert event.raw["key"]["id"] == "msg_123"

    def test_image_message(self, evolution_image_webhook):
        event = message_event(evolution_image_webhook)

        assert event.payload["type"] == "image"
        assert event.payload["hasMedia"] is True
        assert event.payload["hasQuotedMsg"] is True
        assert event.payload["body"] == "Foto da obra"
        assert event.payload["author"] == "5511777777777@s.whatsapp.net"

    def test_batched_messages(self, evolution_text_message_webhook):
        data = evolution_text_message_webhook["data"]
        second = {**data, "key": {**data["key"], "id": "msg_456"}}
        payload = {**evolution_text_message_webhook, "data": [data, second]}

        events = parse_evolution_webhook(payload)

        assert [e.message_id for e in events] == ["msg_123", "msg_456"]

    def test_batched_non_object_items_are_skipped(self, evolution_text_message_webhook):
        data = evolution_text_message_webhook["data"]
        payload = {**evolution_text_message_webhook, "data": ["junk", 42, data]}

        events = parse_evolution_webhook(payload)

        assert [e.message_id for e in events] == ["msg_123"]

    def test_list_data_for_connection_update(self):
        assert parse_evolution_webhook({"event": "connection.update", "data": []}) == []

    def test_qrcode_updated(self):
        events = parse_evolution_webhook(
            {"event": "qrcode.updated", "data": {"qrcode": {"code": "2@abc,def"}}}
        )

        assert len(events) == 1
        assert events[0].event_type == SessionEventType.QR
        assert events[0].payload["qr"] == "2@abc,def"

    def test_connection_open(self):
        events = parse_evolution_webhook({"event": "connection.update", "data": {"state": "open"}})

        assert [e.event_type for e in events] == [
            SessionEventType.AUTHENTICATED,
            SessionEventType.READY,
        ]

    def test_connection_close_unauthorized(self):
        events = parse_evolution_webhook(
            {"event": "connection.update", "data": {"state": "close", "statusReason": 401}}
        )
        assert [e.event_type for e in events] == [SessionEventType.AUTH_FAILURE]

    def test_connection_close(self):
        events = parse_evolution_webhook(
            {"event": "connection.update", "data": {"state": "close", "statusReason": 428}}
        )
        assert [e.event_type for e in events] == [SessionEventType.DISCONNECTED]

    def test_connecting_is_ignored(self):
        assert parse_evolution_webhook({"event": "connection.update", "data": {"state": "connecting"}}) == []

    def test_logout(self):
        events = parse_evolution_webhook({"event": "logout.instance", "data": {}})
        assert [e.event_type for e in events] == [SessionEventType.DISCONNECTED]

    def test_unknown_event(self):
        assert parse_evolution_webhook({"event": "presence.update", "data": {}}) == []

    def test_message_to_payload_defaults(self):
        payload = message_to_payload({"key": {"id": "x", "remoteJid": "c1"}})

        assert payload["body"] == ""
        assert payload["hasMedia"] is False
        assert payload["timestamp"] is None

    def test_extract_instance_name(self, evolution_text_message_webhook):
        assert extract_instance_name(evolution_text_message_webhook) == INSTANCE
        assert extract_instance_name({}) is None

    def test_validate_api_key(self):
        assert validate_api_key({"apikey": "test-key"}, "test-key") is True
        assert validate_api_key({"apikey": "test-key"}, "wrong-key") is False

    def test_validate_api_key_bearer(self):
        headers = {"authorization": "Bearer test-key"}
        assert validate_api_key(headers, "test-key") is True
        assert validate_api_key(headers, "wrong-key") is False


class TestEvolutionGateway:
    """Tests for Evolution REST calls (httpx MockTransport)."""

    async def test_send_message(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"key": {"id": "sent_1"}})

        gateway = make_gateway(handler)
        assert await gateway.send_message("5511888888888", "hello") is True

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == f"/message/sendText/{INSTANCE}"
        assert request.headers["apikey"] == "test-key"
        assert json.loads(request.content) == {"number": "5511888888888", "text": "hello"}
        await gateway.destroy()

    async def test_send_message_api_error(self):
        gateway = make_gateway(lambda request: httpx.Response(500, json={"message": "boom"}))
        assert await gateway.send_message("5511888888888", "hello") is False
        await gateway.destroy()

    async def test_download_media(self, evolution_image_webhook):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "mimetype": "image/jpeg",
                    "fileName": "obra.jpg",
                    "base64": base64.b64encode(b"jpeg-bytes").decode(),
                },
            )

        gateway = make_gateway(handler)
        event = message_event(evolution_image_webhook)

        media = await gateway.download_media(event)

        assert media.mimetype == "image/jpeg"
        assert media.filename == "obra.jpg"
        assert media.decode() == b"jpeg-bytes"
        assert requests[0].url.path == f"/chat/getBase64FromMediaMessage/{INSTANCE}"
        assert json.loads(requests[0].content)["message"]["key"]["id"] == "img_1"
        await gateway.destroy()

    async def test_download_media_failure(self, evolution_image_webhook):
        gateway = make_gateway(lambda request: httpx.Response(400, json={"error": "gone"}))

        with pytest.raises(DownloadError):
            await gateway.download_media(message_event(evolution_image_webhook))
        await gateway.destroy()

    async def test_transport_failure(self, evolution_image_webhook):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(TransportError):
            await gateway.download_media(message_event(evolution_image_webhook))
        await gateway.destroy()

    async def test_get_chat_individual(self, evolution_text_message_webhook):
        gateway = make_gateway(
            lambda request: httpx.Response(200, json=[{"pushName": "Maria Silva"}])
        )

        chat = await gateway.get_chat(message_event(evolution_text_message_webhook))

        assert chat.id == "5511888888888@s.whatsapp.net"
        assert chat.is_group is False
        assert chat.pushname == "Maria Silva"
        assert chat.number == "5511888888888"
        await gateway.destroy()

    async def test_get_chat_group(self, evolution_image_webhook):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "120363000000@g.us", "subject": "Obra"})

        gateway = make_gateway(handler)
        chat = await gateway.get_chat(message_event(evolution_image_webhook))

        assert chat.is_group is True
        assert chat.name == "Obra"
        assert requests[0].url.params["groupJid"] == "120363000000@g.us"
        await gateway.destroy()

    async def test_get_chat_failure(self, evolution_text_message_webhook):
        gateway = make_gateway(lambda request: httpx.Response(404, json={"message": "nope"}))

        with pytest.raises(TransportError):
            await gateway.get_chat(message_event(evolution_text_message_webhook))
        await gateway.destroy()

    async def test_initialize_creates_instance_and_emits_qr(self, monkeypatch, tmp_path):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            if request.url.path.startswith("/instance/connectionState"):
                return httpx.Response(404, json={"message": "instance not found"})
            if request.url.path == "/instance/create":
                return httpx.Response(201, json={"instance": {"instanceName": INSTANCE}})
            if request.url.path.startswith("/instance/connect"):
                return httpx.Response(200, json={"code": "2@qr,payload"})
            return httpx.Response(404)

        gateway = make_gateway(handler, session_path=tmp_path / "session")

        async def no_listener():
            return None

        monkeypatch.setattr(gateway, "start_listener", no_listener)
        await gateway.initialize()

        assert ("POST", "/instance/create") in calls
        assert (tmp_path / "session").is_dir()
        event = await gateway.next_event()
        assert event.event_type == SessionEventType.QR
        assert event.payload["qr"] == "2@qr,payload"
        await gateway.destroy()

    async def test_initialize_already_connected(self, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/instance/connectionState"):
                return httpx.Response(200, json={"instance": {"state": "open"}})
            return httpx.Response(200, json={})

        gateway = make_gateway(handler)

        async def no_listener():
            return None

        monkeypatch.setattr(gateway, "start_listener", no_listener)
        await gateway.initialize()

        first = await gateway.next_event()
        second = await gateway.next_event()
        assert [first.event_type, second.event_type] == [
            SessionEventType.AUTHENTICATED,
            SessionEventType.READY,
        ]
        await gateway.destroy()

    async def test_destroy_is_idempotent(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={}))

        await gateway.destroy()
        await gateway.destroy()

        assert await gateway.next_event() is None
        assert gateway.pending_events() == 0


class TestWebhookListener:
    """Tests for the FastAPI webhook app."""

    @pytest.fixture
    def gateway(self):
        return make_gateway(lambda request: httpx.Response(200, json={}))

    @pytest.fixture
    def client(self, gateway):
        return TestClient(create_webhook_app(gateway, api_key="test-key"))

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_accepts_valid_webhook(self, client, gateway, evolution_text_message_webhook):
        response = client.post(
            "/webhook", json=evolution_text_message_webhook, headers={"apikey": "test-key"}
        )

        assert response.status_code == 200
        assert response.json() == {"status": "accepted", "events": 1}
        assert gateway.pending_events() == 1

    def test_rejects_wrong_api_key(self, client, gateway, evolution_text_message_webhook):
        response = client.post(
            "/webhook", json=evolution_text_message_webhook, headers={"apikey": "nope"}
        )

        assert response.status_code == 403
        assert gateway.pending_events() == 0

    def test_ignores_other_instance(self, client, gateway, evolution_text_message_webhook):
        payload = {**evolution_text_message_webhook, "instance": "someone-else"}
        response = client.post("/webhook", json=payload, headers={"apikey": "test-key"})

        assert response.json()["status"] == "ignored"
        assert gateway.pending_events() == 0

    def test_invalid_json(self, client):
        response = client.post(
            "/webhook",
            content=b"{not json",
            headers={"apikey": "test-key", "content-type": "application/json"},
        )
        assert response.status_code == 400

    def test_non_object_payload(self, client, gateway):
        response = client.post("/webhook", json=[], headers={"apikey": "test-key"})

        assert response.status_code == 400
        assert gateway.pending_events() == 0

    def test_refuses_webhooks_once_receiving_stopped(
        self, client, gateway, evolution_text_message_webhook
    ):
        asyncio.run(gateway.stop_receiving())

        response = client.post(
            "/webhook", json=evolution_text_message_webhook, headers={"apikey": "test-key"}
        )

        assert response.status_code == 503
        assert gateway.pending_events() == 0

    def test_listener_leaves_process_signals_alone(self, gateway):
        listener = WebhookListener(create_webhook_app(gateway), "127.0.0.1", 8090)
        before = signal.getsignal(signal.SIGTERM)

        with listener._server.capture_signals():
            assert signal.getsignal(signal.SIGTERM) is before
