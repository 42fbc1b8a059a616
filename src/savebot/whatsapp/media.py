"""Media Fetcher - retrieve decrypted media bytes through the transport.

Retrieval only: storing the blob is the archive's job, so each side can be
retried and tested on its own.
"""

from __future__ import annotations

import asyncio
import re

from savebot.errors import RetrievalError
from savebot.observability.logging import get_logger
from savebot.observability.redaction import safe_log_context

from .models import MediaDescriptor, MediaKind
from .transport import Transport

logger = get_logger(__name__)

GENERIC_EXTENSION = ".bin"

_FIXED_EXTENSIONS = {
    MediaKind.IMAGE: ".jpg",
    MediaKind.VIDEO: ".mp4",
    MediaKind.AUDIO: ".ogg",
}

# Checked in order against the declared document mime.
_DOCUMENT_EXTENSIONS = (
    ("pdf", ".pdf"),
    ("zip", ".zip"),
    ("png", ".png"),
    ("jpeg", ".jpg"),
    ("jpg", ".jpg"),
)

_UNSAFE_CHARS = re.compile(r"[:/\\<>|?*\"\x00-\x1f]")


def extension_for(kind: MediaKind, declared_mime: str | None = None) -> str:
    """Best-effort file extension. A label only, never a content check."""
    if kind in _FIXED_EXTENSIONS:
        return _FIXED_EXTENSIONS[kind]
    mime = (declared_mime or "").lower()
    for needle, ext in _DOCUMENT_EXTENSIONS:
        if needle in mime:
            return ext
    return GENERIC_EXTENSION


def sanitize_sender(sender_id: str) -> str:
    """Replace path- and filesystem-hostile characters with underscores."""
    safe = _UNSAFE_CHARS.sub("_", sender_id).strip(" .")
    return safe or "unknown"


def media_filename(sender_id: str, millis: int, ext: str, *, ephemeral: bool = False) -> str:
    """<sanitized-sender>_<epoch-millis>[_ephemeral]<ext>"""
    suffix = "_ephemeral" if ephemeral else ""
    return f"{sanitize_sender(sender_id)}_{millis}{suffix}{ext}"


class MediaFetcher:
    """Fetches media bytes from one transport, with a fixed-delay retry."""

    def __init__(
        self,
        transport: Transport,
        *,
        timeout: float = 60.0,
        retries: int = 1,
        retry_delay: float = 0.5,
    ) -> None:
        self._transport = transport
        self._timeout = timeout
        self._retries = retries
        self._retry_delay = retry_delay

    async def fetch(self, media: MediaDescriptor) -> bytes:
        """Return the decrypted bytes for media.

        Raises:
            RetrievalError: Network failure, expired reference, decryption
                failure or an empty payload, after all attempts.
        """
        attempt = 0
        while True:
            try:
                data = await asyncio.wait_for(
                    self._transport.download_media(media.payload_ref, media.kind.value),
                    timeout=self._timeout or None,
                )
                if not data:
                    raise RetrievalError("empty media payload", {"kind": media.kind.value})
                return bytes(data)
            except asyncio.CancelledError:
                raise
            except RetrievalError:
                if attempt >= self._retries:
                    raise
                error_type = RetrievalError.__name__
            except Exception as e:
                if attempt >= self._retries:
                    raise RetrievalError(
                        "media retrieval failed",
                        {"kind": media.kind.value, "error_type": type(e).__name__},
                    ) from e
                error_type = type(e).__name__
            logger.warning(
                "media retrieval failed, retrying",
                extra={
                    "extra_fields": safe_log_context(
                        kind=media.kind.value, attempt=attempt, error_type=error_type
                    )
                },
            )
            attempt += 1
            await asyncio.sleep(self._retry_delay)
