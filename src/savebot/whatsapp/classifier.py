"""Message Classifier - turn one inbound envelope into a NormalizedRecord.

An envelope should carry exactly one populated payload field. Anything that
does not decode cleanly becomes an unknown record instead of an error.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from savebot.errors import ClassificationAmbiguity
from savebot.infra.time import utc_now
from savebot.observability.logging import get_logger
from savebot.observability.redaction import safe_log_context

from .models import (
    CANONICAL_MIME,
    GENERIC_MIME,
    UNKNOWN_SENDER,
    InboundMessage,
    MediaDescriptor,
    MediaKind,
    MediaPayload,
    NormalizedRecord,
    Payload,
    RecordKind,
    TextPayload,
    UnknownPayload,
    ViewOncePayload,
)

logger = get_logger(__name__)

BROADCAST_SUFFIX = "@broadcast"

MEDIA_FIELDS: dict[str, MediaKind] = {
    "imageMessage": MediaKind.IMAGE,
    "videoMessage": MediaKind.VIDEO,
    "audioMessage": MediaKind.AUDIO,
    "documentMessage": MediaKind.DOCUMENT,
}
VIEW_ONCE_FIELDS = frozenset(
    {"viewOnceMessage", "viewOnceMessageV2", "viewOnceMessageV2Extension"}
)
# Protocol bookkeeping that rides alongside the real payload.
METADATA_FIELDS = frozenset({"messageContextInfo", "senderKeyDistributionMessage"})

_CAPTIONED = (MediaKind.IMAGE, MediaKind.VIDEO)


def is_broadcast(sender_id: str) -> bool:
    """True for status updates and broadcast lists."""
    return sender_id.endswith(BROADCAST_SUFFIX)


def _is_populated(value: Any) -> bool:
    return value is not None and value != "" and value != {}


def populated_fields(message: dict[str, Any]) -> list[str]:
    """Payload fields that carry a value, ignoring protocol metadata."""
    return [
        name
        for name, value in message.items()
        if name not in METADATA_FIELDS and _is_populated(value)
    ]


def decode_payload(message: dict[str, Any], *, allow_wrapper: bool = True) -> Payload:
    """Decode an envelope into one payload variant.

    Only one level of view-once wrapping is unwrapped; a wrapper found
    inside a wrapper decodes as UnknownPayload.

    Raises:
        ClassificationAmbiguity: If zero or several fields are populated,
            or the populated field has the wrong shape.
    """
    fields = populated_fields(message)
    if len(fields) != 1:
        raise ClassificationAmbiguity(
            "expected exactly one payload field", {"fields": fields}
        )
    name = fields[0]
    value = message[name]

    if name == "conversation":
        if not isinstance(value, str):
            raise ClassificationAmbiguity("conversation is not a string")
        return TextPayload(field=name, text=value)

    if name == "extendedTextMessage":
        text = value.get("text") if isinstance(value, dict) else None
        if not isinstance(text, str) or not text:
            raise ClassificationAmbiguity("extendedTextMessage without text")
        return TextPayload(field=name, text=text)

    if name in MEDIA_FIELDS:
        if not isinstance(value, dict):
            raise ClassificationAmbiguity("media payload is not an object", {"field": name})
        kind = MEDIA_FIELDS[name]
        caption = value.get("caption") if kind in _CAPTIONED else None
        return MediaPayload(
            kind=kind,
            content=value,
            caption=caption if isinstance(caption, str) and caption else None,
        )

    if name in VIEW_ONCE_FIELDS:
        if not allow_wrapper:
            return UnknownPayload(fields=(name,))
        inner = value.get("message") if isinstance(value, dict) else None
        if not isinstance(inner, dict):
            raise ClassificationAmbiguity("view-once wrapper without inner message")
        return ViewOncePayload(field=name, inner=decode_payload(inner, allow_wrapper=False))

    return UnknownPayload(fields=(name,))


def _declared_mime(payload: MediaPayload) -> str:
    if payload.kind is MediaKind.DOCUMENT:
        mime = payload.content.get("mimetype")
        return mime if isinstance(mime, str) and mime else GENERIC_MIME
    return CANONICAL_MIME[payload.kind]


def _to_record(message: InboundMessage, payload: Payload, *, ephemeral: bool) -> NormalizedRecord:
    if isinstance(payload, TextPayload):
        return NormalizedRecord(
            kind=RecordKind.TEXT,
            sender_id=message.sender_id,
            timestamp=message.timestamp,
            text=payload.text,
        )
    if isinstance(payload, MediaPayload):
        return NormalizedRecord(
            kind=RecordKind.MEDIA,
            sender_id=message.sender_id,
            timestamp=message.timestamp,
            text=payload.caption,
            media=MediaDescriptor(
                kind=payload.kind,
                payload_ref=payload.content,
                declared_mime=_declared_mime(payload),
                is_ephemeral=ephemeral,
            ),
        )
    if isinstance(payload, ViewOncePayload):
        return _to_record(message, payload.inner, ephemeral=True)
    return _unknown(message)


def _unknown(message: InboundMessage) -> NormalizedRecord:
    return NormalizedRecord(
        kind=RecordKind.UNKNOWN,
        sender_id=message.sender_id,
        timestamp=message.timestamp,
    )


def classify(message: InboundMessage) -> NormalizedRecord | None:
    """Classify one inbound message.

    Returns:
        None for broadcast/status senders (skipped), otherwise a record.
        Unrecognized shapes yield kind=unknown, never an exception.
    """
    if is_broadcast(message.sender_id):
        return None
    try:
        payload = decode_payload(message.envelope)
    except ClassificationAmbiguity as e:
        logger.debug(
            "envelope downgraded to unknown",
            extra={"extra_fields": safe_log_context(reason=e.message, **e.details)},
        )
        return _unknown(message)
    return _to_record(message, payload, ephemeral=False)


def classify_deletion(payload: Any, received_at: datetime | None = None) -> list[NormalizedRecord]:
    """Turn a messages-delete event into deletion records.

    The event carries either {"keys": [...]} (one record per key) or
    {"jid": ..., "all": true} (one record for the whole chat). The raw
    reference is kept verbatim.
    """
    at = received_at or utc_now()
    records: list[NormalizedRecord] = []
    keys = payload.get("keys") if isinstance(payload, dict) else None
    if isinstance(keys, list):
        for key in keys:
            sender = key.get("remoteJid") if isinstance(key, dict) else None
            sender = str(sender or UNKNOWN_SENDER)
            if is_broadcast(sender):
                continue
            records.append(
                NormalizedRecord(
                    kind=RecordKind.DELETION, sender_id=sender, timestamp=at, reference=key
                )
            )
        return records
    jid = payload.get("jid") if isinstance(payload, dict) else None
    sender = str(jid or UNKNOWN_SENDER)
    if is_broadcast(sender):
        return records
    records.append(
        NormalizedRecord(kind=RecordKind.DELETION, sender_id=sender, timestamp=at, reference=payload)
    )
    return records
