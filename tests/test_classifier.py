"""Tests for the message classifier."""

from datetime import datetime, timezone

import pytest

from savebot.whatsapp.classifier import classify, classify_deletion, decode_payload
from savebot.whatsapp.models import (
    InboundMessage,
    MediaKind,
    RecordKind,
    UnknownPayload,
)

from .helpers import SENDER

TS = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _msg(envelope: dict, sender: str = SENDER) -> InboundMessage:
    return InboundMessage(sender_id=sender, timestamp=TS, envelope=envelope)


class TestTextMessages:
    """Plain and extended text."""

    def test_conversation_is_text(self):
        record = classify(_msg({"conversation": "hello"}))

        assert record.kind is RecordKind.TEXT
        assert record.sender_id == SENDER
        assert record.text == "hello"
        assert record.media is None

    def test_extended_text_message(self):
        record = classify(_msg({"extendedTextMessage": {"text": "quoted reply"}}))

        assert record.kind is RecordKind.TEXT
        assert record.text == "quoted reply"

    def test_extended_text_without_text_is_unknown(self):
        record = classify(_msg({"extendedTextMessage": {"contextInfo": {}}}))
        assert record.kind is RecordKind.UNKNOWN

    def test_non_string_conversation_is_unknown(self):
        record = classify(_msg({"conversation": 42}))
        assert record.kind is RecordKind.UNKNOWN

    def test_message_context_info_is_ignored(self):
        record = classify(
            _msg({"conversation": "hi", "messageContextInfo": {"deviceListMetadata": {}}})
        )
        assert record.kind is RecordKind.TEXT


class TestMediaMessages:
    """Media payloads and view-once wrappers."""

    def test_image_uses_canonical_mime(self):
        record = classify(_msg({"imageMessage": {"mimetype": "image/png", "url": "u"}}))

        assert record.kind is RecordKind.MEDIA
        assert record.media.kind is MediaKind.IMAGE
        assert record.media.declared_mime == "image/jpeg"
        assert record.media.is_ephemeral is False
        assert record.media.payload_ref == {"mimetype": "image/png", "url": "u"}

    def test_document_keeps_declared_mime(self):
        record = classify(_msg({"documentMessage": {"mimetype": "application/pdf"}}))

        assert record.media.kind is MediaKind.DOCUMENT
        assert record.media.declared_mime == "application/pdf"

    def test_document_without_mime_gets_generic(self):
        record = classify(_msg({"documentMessage": {"fileName": "x"}}))
        assert record.media.declared_mime == "application/octet-stream"

    def test_image_caption_becomes_text(self):
        record = classify(_msg({"imageMessage": {"caption": "look"}}))

        assert record.kind is RecordKind.MEDIA
        assert record.text == "look"

    def test_audio_never_has_caption(self):
        record = classify(_msg({"audioMessage": {"caption": "ignored"}}))
        assert record.text is None

    def test_view_once_video_is_ephemeral(self):
        record = classify(
            _msg({"viewOnceMessageV2": {"message": {"videoMessage": {"url": "v"}}}})
        )

        assert record.kind is RecordKind.MEDIA
        assert record.media.kind is MediaKind.VIDEO
        assert record.media.is_ephemeral is True

    def test_nested_view_once_is_unknown(self):
        envelope = {
            "viewOnceMessage": {
                "message": {"viewOnceMessageV2": {"message": {"imageMessage": {}}}}
            }
        }
        assert classify(_msg(envelope)).kind is RecordKind.UNKNOWN

    def test_view_once_without_inner_is_unknown(self):
        assert classify(_msg({"viewOnceMessage": {}})).kind is RecordKind.UNKNOWN

    @pytest.mark.parametrize(
        "field,kind",
        [
            ("imageMessage", MediaKind.IMAGE),
            ("videoMessage", MediaKind.VIDEO),
            ("audioMessage", MediaKind.AUDIO),
            ("documentMessage", MediaKind.DOCUMENT),
        ],
    )
    @pytest.mark.parametrize("wrapper", [None, "viewOnceMessage", "viewOnceMessageV2"])
    def test_ephemeral_flag_matches_wrapper(self, field, kind, wrapper):
        envelope = {field: {"url": "x"}}
        if wrapper:
            envelope = {wrapper: {"message": envelope}}

        record = classify(_msg(envelope))

        assert record.media.kind is kind
        assert record.media.is_ephemeral is (wrapper is not None)


class TestUnknownAndSkipped:
    """Shapes that do not classify."""

    def test_two_payload_fields_is_unknown(self):
        record = classify(_msg({"conversation": "a", "imageMessage": {"url": "x"}}))
        assert record.kind is RecordKind.UNKNOWN

    def test_no_populated_field_is_unknown(self):
        record = classify(_msg({"conversation": None, "imageMessage": {}}))
        assert record.kind is RecordKind.UNKNOWN

    def test_unrecognized_field_is_unknown(self):
        record = classify(_msg({"reactionMessage": {"text": "+1"}}))
        assert record.kind is RecordKind.UNKNOWN

    def test_status_broadcast_is_skipped(self):
        assert classify(_msg({"conversation": "x"}, sender="status@broadcast")) is None

    def test_decode_inner_wrapper_without_recursion(self):
        payload = decode_payload({"viewOnceMessage": {"message": {}}}, allow_wrapper=False)
        assert payload == UnknownPayload(fields=("viewOnceMessage",))


class TestInboundMessage:
    """Wire message boundary."""

    def test_missing_body_is_none(self):
        assert InboundMessage.from_wire({"key": {"remoteJid": SENDER}}) is None
        assert InboundMessage.from_wire({"key": {}, "message": {}}) is None

    def test_long_timestamp(self):
        msg = InboundMessage.from_wire(
            {
                "key": {"remoteJid": SENDER, "id": "A"},
                "messageTimestamp": {"low": 1700000000, "high": 0, "unsigned": True},
                "message": {"conversation": "x"},
            }
        )
        assert msg.timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    @pytest.mark.parametrize(
        "raw_ts",
        [1700000000000, "99999999999999999", {"low": 0, "high": 0x7FFFFFFF}],
    )
    def test_out_of_range_timestamp_uses_receipt_time(self, raw_ts):
        before = datetime.now(timezone.utc)

        msg = InboundMessage.from_wire(
            {"key": {"remoteJid": SENDER}, "messageTimestamp": raw_ts, "message": {"conversation": "x"}}
        )

        assert msg is not None
        assert msg.timestamp >= before
        assert classify(msg).text == "x"

    def test_missing_sender_defaults(self):
        msg = InboundMessage.from_wire({"message": {"conversation": "x"}})
        assert msg.sender_id == "unknown"


class TestDeletion:
    """messages.delete payloads."""

    def test_one_record_per_key(self):
        keys = [
            {"remoteJid": SENDER, "id": "A"},
            {"remoteJid": "999@s.whatsapp.net", "id": "B"},
        ]
        records = classify_deletion({"keys": keys}, received_at=TS)

        assert [r.kind for r in records] == [RecordKind.DELETION, RecordKind.DELETION]
        assert [r.sender_id for r in records] == [SENDER, "999@s.whatsapp.net"]
        assert records[0].reference == keys[0]

    def test_whole_chat_form(self):
        payload = {"jid": SENDER, "all": True}
        records = classify_deletion(payload, received_at=TS)

        assert len(records) == 1
        assert records[0].reference == payload

    def test_broadcast_keys_skipped(self):
        records = classify_deletion({"keys": [{"remoteJid": "status@broadcast"}]})
        assert records == []
