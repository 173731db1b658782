"""
Tests for message payload normalization.
"""

import pytest

from whatsapp_tracker.contracts.payloads import MediaPayload
from whatsapp_tracker.contracts.records import (
    MessageValidationError,
    normalize_message,
    to_epoch_ms,
)


class TestNormalizeMessage:
    """Tests for normalize_message defaults and validation."""

    def test_minimal_payload_gets_defaults(self):
        record = normalize_message({"id": "m1", "from": "c1"}, received_at_ms=1234)

        assert record.id == "m1"
        assert record.chat_id == "c1"
        assert record.body == ""
        assert record.timestamp == 1234
        assert record.type == "unknown"
        assert record.from_me is False
        assert record.has_media is False
        assert record.has_quoted_msg is False

    def test_full_payload(self):
        record = normalize_message(
            {
                "id": "m1",
                "from": "c1",
                "body": "hello",
                "fromMe": True,
                "timestamp": 1704067200123,
                "type": "chat",
                "hasMedia": True,
                "hasQuotedMsg": True,
            }
        )

        assert record.body == "hello"
        assert record.from_me is True
        assert record.timestamp == 1704067200123
        assert record.type == "chat"
        assert record.has_media is True
        assert record.has_quoted_msg is True

    def test_seconds_timestamp_converted_to_ms(self):
        record = normalize_message({"id": "m1", "from": "c1", "timestamp": 1704067200})
        assert record.timestamp == 1704067200000

    def test_to_epoch_ms(self):
        assert to_epoch_ms(1704067200) == 1704067200000
        assert to_epoch_ms(1704067200000) == 1704067200000

    def test_serialized_id_unwrapped(self):
        record = normalize_message({"id": {"_serialized": "true_c1_ABC"}, "from": "c1"})
        assert record.id == "true_c1_ABC"

    def test_missing_id_raises(self):
        with pytest.raises(MessageValidationError):
            normalize_message({"from": "c1", "body": "no id"})

    def test_empty_id_raises(self):
        with pytest.raises(MessageValidationError):
            normalize_message({"id": "", "from": "c1"})

    def test_author_kept_for_incoming_group_messages(self):
        record = normalize_message(
            {"id": "m1", "from": "123@g.us", "author": "555@c.us", "fromMe": False}
        )
        assert record.author == "555@c.us"

    def test_author_dropped_outside_groups(self):
        record = normalize_message({"id": "m1", "from": "555@c.us", "author": "555@c.us"})
        assert record.author is None

    def test_author_dropped_for_own_group_messages(self):
        record = normalize_message(
            {"id": "m1", "from": "123@g.us", "author": "me@c.us", "fromMe": True}
        )
        assert record.author is None


class TestMediaPayload:
    """Tests for MediaPayload decoding."""

    def test_decode(self):
        payload = MediaPayload(mimetype="image/png", data="aGVsbG8=")
        assert payload.decode() == b"hello"

    def test_decode_invalid_base64(self):
        payload = MediaPayload(mimetype="image/png", data="not base64!!")
        with pytest.raises(ValueError):
            payload.decode()
