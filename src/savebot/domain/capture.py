"""Capture pipeline: classify inbound messages and archive them.

Each message is its own fault boundary. A failure is written to the error
log and the rest of the batch carries on.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from savebot.errors import PersistenceError, RetrievalError
from savebot.infra.archive import NO_SENDER, ArchiveWriter, LogKind, LogLine, serialize_payload
from savebot.infra.time import epoch_millis
from savebot.observability.logging import get_logger
from savebot.observability.redaction import hash_identifier, safe_log_context
from savebot.whatsapp.classifier import classify, classify_deletion
from savebot.whatsapp.media import MediaFetcher, extension_for, media_filename
from savebot.whatsapp.models import InboundMessage, MediaDescriptor, NormalizedRecord, RecordKind

logger = get_logger(__name__)

TEXT_LINE_KIND = "text"
CAPTION_LINE_KIND = "caption"
DELETION_LINE_KIND = "deletion"
VIEW_ONCE_MARK = "view-once"


class MessageCapture:
    """Archives normalized records, routing media through a fetcher."""

    def __init__(self, archive: ArchiveWriter) -> None:
        self._archive = archive

    async def process_batch(self, messages: Sequence[Any], fetcher: MediaFetcher) -> None:
        """Process a notify batch in delivery order."""
        for raw in messages:
            await self.process(raw, fetcher)

    async def process(self, raw: Any, fetcher: MediaFetcher) -> NormalizedRecord | None:
        """Classify and archive one wire message. Never raises."""
        sender = NO_SENDER
        try:
            message = InboundMessage.from_wire(raw)
            if message is None:
                return None
            sender = message.sender_id
            record = classify(message)
            if record is None:
                return None
            await self.archive_record(record, fetcher)
            return record
        except Exception as e:
            await self._archive.record_error("message", e, sender=sender)
            return None

    async def archive_record(self, record: NormalizedRecord, fetcher: MediaFetcher) -> None:
        if record.kind is RecordKind.UNKNOWN:
            logger.info(
                "unrecognized message skipped",
                extra={"extra_fields": {"sender_hash": hash_identifier(record.sender_id)}},
            )
            return

        if record.text is not None:
            line_kind = TEXT_LINE_KIND if record.kind is RecordKind.TEXT else CAPTION_LINE_KIND
            try:
                await self._archive.append(
                    LogKind.MESSAGE,
                    LogLine(
                        timestamp=record.timestamp,
                        sender=record.sender_id,
                        kind=line_kind,
                        payload=record.text,
                    ),
                )
            except PersistenceError as e:
                if record.media is None:
                    raise
                # media capture does not depend on the caption line
                await self._archive.record_error("message.caption", e, sender=record.sender_id)

        if record.media is not None:
            await self.capture_media(record, record.media, fetcher)

    async def capture_media(
        self, record: NormalizedRecord, media: MediaDescriptor, fetcher: MediaFetcher
    ) -> Path | None:
        """Fetch, store, then log one media payload.

        Ends with either a blob plus a media-log line, or an error-log line
        and no blob. View-once blobs are marked in the line's payload.
        """
        sender = record.sender_id
        try:
            data = await fetcher.fetch(media)
        except RetrievalError as e:
            await self._archive.record_error("media.fetch", e, sender=sender)
            return None

        filename = media_filename(
            sender,
            epoch_millis(),
            extension_for(media.kind, media.declared_mime),
            ephemeral=media.is_ephemeral,
        )
        try:
            path = await self._archive.store_media(data, filename)
        except PersistenceError as e:
            await self._archive.record_error("media.store", e, sender=sender)
            return None

        try:
            await self._archive.append(
                LogKind.MEDIA,
                LogLine(
                    timestamp=record.timestamp,
                    sender=sender,
                    kind=media.kind.value,
                    payload=f"{VIEW_ONCE_MARK} {path.name}" if media.is_ephemeral else path.name,
                ),
            )
        except PersistenceError as e:
            # an unlogged blob would break the blob <-> media-log pairing
            path.unlink(missing_ok=True)
            await self._archive.record_error("media.log", e, sender=sender)
            return None

        logger.info(
            "media saved",
            extra={
                "extra_fields": {
                    **safe_log_context(
                        kind=media.kind.value,
                        ephemeral=media.is_ephemeral,
                        size=len(data),
                    ),
                    "sender_hash": hash_identifier(sender),
                }
            },
        )
        return path

    async def process_deletion(self, payload: Any) -> int:
        """Archive a messages-delete event. Returns lines written. Never raises."""
        written = 0
        try:
            for record in classify_deletion(payload):
                await self._archive.append(
                    LogKind.MESSAGE,
                    LogLine(
                        timestamp=record.timestamp,
                        sender=record.sender_id,
                        kind=DELETION_LINE_KIND,
                        payload=serialize_payload(record.reference),
                    ),
                )
                written += 1
        except Exception as e:
            await self._archive.record_error("deletion", e)
        return written
