"""Archive Writer - append-only logs plus a media blob directory.

Layout under the archive root:

    messages.log   text, captions and deletions
    media.log      one line per stored media blob
    events.log     connection transitions
    errors.log     per-item failures
    media/         blob files

Every log line is ``timestamp | sender | kind | payload``.
"""

from __future__ import annotations

import asyncio
import base64
import dataclasses
import json
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from savebot.errors import PersistenceError, SaveBotError
from savebot.observability.logging import get_logger
from savebot.observability.redaction import safe_log_context

from .fs import append_record
from .time import utc_now

logger = get_logger(__name__)

MEDIA_DIRNAME = "media"
NO_SENDER = "-"


class LogKind(str, Enum):
    EVENT = "events.log"
    MESSAGE = "messages.log"
    MEDIA = "media.log"
    ERROR = "errors.log"


@dataclass(frozen=True)
class LogLine:
    """One archive record."""

    timestamp: datetime
    sender: str
    kind: str
    payload: str

    def render(self) -> str:
        fields = (self.timestamp.isoformat(), self.sender, self.kind, self.payload)
        return " | ".join(_escape(f) for f in fields) + "\n"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r")


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return {"type": "Buffer", "data": base64.b64encode(bytes(obj)).decode("ascii")}
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, BaseException):
        data: dict[str, Any] = {"type": type(obj).__name__, "message": str(obj)}
        # transport errors carry diagnostics as attributes (status codes, output)
        data.update({k: v for k, v in vars(obj).items() if not k.startswith("_")})
        return data
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=repr)
    return repr(obj)


def serialize_payload(value: Any) -> str:
    """Serialize a transport payload to JSON without dropping information."""
    return json.dumps(value, default=_json_default, sort_keys=True, ensure_ascii=False)


class ArchiveWriter:
    """Writes archive logs and media blobs under a root directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._media_dir = self._root / MEDIA_DIRNAME
        self._media_lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def media_dir(self) -> Path:
        return self._media_dir

    def log_path(self, kind: LogKind) -> Path:
        return self._root / kind.value

    def ensure_dirs(self) -> None:
        self._media_dir.mkdir(parents=True, exist_ok=True)

    async def append(self, kind: LogKind, line: LogLine) -> None:
        """Append one record atomically.

        Raises:
            PersistenceError: If the write fails. No partial line is left.
        """
        data = line.render().encode("utf-8")
        try:
            await asyncio.to_thread(append_record, self.log_path(kind), data)
        except OSError as e:
            raise PersistenceError(
                "archive append failed", {"log": kind.value, "error": type(e).__name__}
            ) from e

    async def store_media(self, data: bytes, filename: str) -> Path:
        """Write a blob fully, then make it visible under filename.

        Returns the final path, which gets a -N suffix if filename is taken.

        Raises:
            PersistenceError: If the blob is empty or cannot be written.
        """
        if not data:
            raise PersistenceError("refusing to store empty media blob", {"file": filename})
        try:
            return await asyncio.to_thread(self._store_media_sync, data, filename)
        except OSError as e:
            raise PersistenceError(
                "media write failed", {"file": filename, "error": type(e).__name__}
            ) from e

    def _store_media_sync(self, data: bytes, filename: str) -> Path:
        self._media_dir.mkdir(parents=True, exist_ok=True)
        tmp = self._media_dir / f".{uuid.uuid4().hex}.part"
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            with self._media_lock:
                final = self._free_path(filename)
                os.replace(tmp, final)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        return final

    def _free_path(self, filename: str) -> Path:
        candidate = self._media_dir / filename
        stem, dot, ext = filename.rpartition(".")
        if not dot:
            stem, ext = filename, ""
        n = 1
        while candidate.exists():
            name = f"{stem}-{n}.{ext}" if dot else f"{stem}-{n}"
            candidate = self._media_dir / name
            n += 1
        return candidate

    async def record_error(
        self,
        context: str,
        error: BaseException,
        sender: str = NO_SENDER,
    ) -> None:
        """Append an error-log line. Never raises.

        If the error log itself cannot be written, the failure goes to the
        process log instead.
        """
        payload: dict[str, Any] = {
            "error_type": type(error).__name__,
            "error": str(error),
        }
        if isinstance(error, SaveBotError) and error.details:
            payload["details"] = error.details
        line = LogLine(
            timestamp=utc_now(),
            sender=sender,
            kind=context,
            payload=serialize_payload(payload),
        )
        try:
            await self.append(LogKind.ERROR, line)
        except PersistenceError:
            logger.exception(
                "error log unwritable",
                extra={
                    "extra_fields": safe_log_context(
                        context=context, error_type=type(error).__name__
                    )
                },
            )
            return
        logger.warning(
            "error recorded",
            extra={
                "extra_fields": safe_log_context(
                    context=context, error_type=type(error).__name__
                )
            },
        )

    def list_files(self) -> list[Path]:
        """Archived files: the logs, then media blobs by name."""
        files = [self.log_path(kind) for kind in LogKind if self.log_path(kind).is_file()]
        if self._media_dir.is_dir():
            files.extend(
                sorted(
                    p
                    for p in self._media_dir.iterdir()
                    if p.is_file() and not p.name.startswith(".")
                )
            )
        return files

    def resolve(self, name: str) -> Path | None:
        """Map a plain file name to an archived file, or None.

        Names with path separators or leading dots never resolve.
        """
        if not name or name.startswith(".") or "/" in name or "\\" in name:
            return None
        for base in (self._media_dir, self._root):
            candidate = base / name
            if candidate.is_file() and candidate.resolve().parent == base.resolve():
                return candidate
        return None
