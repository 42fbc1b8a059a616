"""Credential Store - persists the opaque session authentication blob.

The blob is a JSON object. bytes values (keys, signatures) are stored as
{"type": "Buffer", "data": <base64>} and restored on load, so the blob
comes back exactly as it was saved.
"""

from __future__ import annotations

import asyncio
import base64
import json
from pathlib import Path
from typing import Any

from savebot.errors import PersistenceError, StartupError
from savebot.observability.logging import get_logger
from savebot.observability.redaction import safe_log_context

from .fs import atomic_write

logger = get_logger(__name__)

CREDS_FILENAME = "creds.json"


def _encode_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return {"type": "Buffer", "data": base64.b64encode(bytes(obj)).decode("ascii")}
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _decode_hook(obj: dict[str, Any]) -> Any:
    if obj.get("type") == "Buffer" and isinstance(obj.get("data"), str) and len(obj) == 2:
        return base64.b64decode(obj["data"])
    return obj


def dumps_blob(blob: dict[str, Any]) -> bytes:
    """Serialize a credential blob."""
    return json.dumps(blob, default=_encode_default, sort_keys=True).encode("utf-8")


def loads_blob(raw: bytes) -> dict[str, Any]:
    """Deserialize a credential blob. Raises ValueError on malformed input."""
    blob = json.loads(raw.decode("utf-8"), object_hook=_decode_hook)
    if not isinstance(blob, dict):
        raise ValueError("credential blob must be a JSON object")
    return blob


class CredentialStore:
    """Loads and saves the credential blob under a directory."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def path(self) -> Path:
        return self._directory / CREDS_FILENAME

    def load_sync(self) -> dict[str, Any]:
        """Load the blob. A missing file means a fresh, unpaired session.

        Raises:
            StartupError: If the file exists but cannot be read or parsed.
        """
        path = self.path
        if not path.exists():
            logger.info("no stored credentials, starting unpaired")
            return {}
        try:
            raw = path.read_bytes()
            blob = loads_blob(raw)
        except (OSError, ValueError) as e:
            raise StartupError(
                "credential store unreadable",
                {"path": str(path), "error": type(e).__name__},
            ) from e
        logger.info(
            "credentials loaded",
            extra={"extra_fields": safe_log_context(fields=blob)},
        )
        return blob

    def save_sync(self, blob: dict[str, Any]) -> None:
        """Replace the stored blob (last writer wins on the whole file).

        Raises:
            PersistenceError: If the blob cannot be serialized or written.
        """
        try:
            atomic_write(self.path, dumps_blob(blob))
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(
                "credential save failed",
                {"path": str(self.path), "error": type(e).__name__},
            ) from e

    async def load(self) -> dict[str, Any]:
        return await asyncio.to_thread(self.load_sync)

    async def save(self, blob: dict[str, Any]) -> None:
        await asyncio.to_thread(self.save_sync, blob)
