"""WhatsApp message models.

ATTENTION PII: sender_id and text are PII. They go to the archive only,
never to the process log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from savebot.infra.time import from_epoch_seconds, utc_now

UNKNOWN_SENDER = "unknown"


class RecordKind(str, Enum):
    TEXT = "text"
    MEDIA = "media"
    DELETION = "deletion"
    UNKNOWN = "unknown"


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


CANONICAL_MIME: dict[MediaKind, str] = {
    MediaKind.IMAGE: "image/jpeg",
    MediaKind.VIDEO: "video/mp4",
    MediaKind.AUDIO: "audio/ogg",
}
GENERIC_MIME = "application/octet-stream"


def _parse_timestamp(value: Any) -> datetime | None:
    # protobuf Longs arrive as {"low": .., "high": .., "unsigned": ..}
    if isinstance(value, dict) and isinstance(value.get("low"), int):
        high = value.get("high") or 0
        value = (high << 32) | (value["low"] & 0xFFFFFFFF)
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        return None
    try:
        return from_epoch_seconds(value)
    except (ValueError, OverflowError, OSError):
        # millisecond epochs and corrupt Longs fall back to receipt time
        return None


@dataclass(frozen=True)
class InboundMessage:
    """One message as delivered in a messages-upsert batch.

    Transient: only its normalized record is ever archived.
    """

    sender_id: str
    timestamp: datetime
    envelope: dict[str, Any]

    @classmethod
    def from_wire(cls, raw: Any) -> InboundMessage | None:
        """Build from a wire message ({key, message, messageTimestamp}).

        Returns None when there is no message body to classify.
        """
        if not isinstance(raw, dict):
            return None
        envelope = raw.get("message")
        if not isinstance(envelope, dict) or not envelope:
            return None
        key = raw.get("key") if isinstance(raw.get("key"), dict) else {}
        sender_id = key.get("remoteJid") or UNKNOWN_SENDER
        return cls(
            sender_id=str(sender_id),
            timestamp=_parse_timestamp(raw.get("messageTimestamp")) or utc_now(),
            envelope=envelope,
        )


@dataclass(frozen=True)
class MediaDescriptor:
    """Where to fetch a media payload and how to label it."""

    kind: MediaKind
    payload_ref: dict[str, Any] = field(repr=False)
    declared_mime: str
    is_ephemeral: bool = False


@dataclass(frozen=True)
class NormalizedRecord:
    """Classifier output. Immutable once archived."""

    kind: RecordKind
    sender_id: str
    timestamp: datetime
    text: str | None = None
    media: MediaDescriptor | None = None
    # opaque deleted-message reference, serialized as-is for correlation
    reference: Any = None


# Tagged union of payload shapes, decoded once from the envelope.


@dataclass(frozen=True)
class TextPayload:
    field: str
    text: str


@dataclass(frozen=True)
class MediaPayload:
    kind: MediaKind
    content: dict[str, Any] = field(repr=False)
    caption: str | None = None


@dataclass(frozen=True)
class ViewOncePayload:
    field: str
    inner: Payload


@dataclass(frozen=True)
class UnknownPayload:
    fields: tuple[str, ...] = ()


Payload = Union[TextPayload, MediaPayload, ViewOncePayload, UnknownPayload]
