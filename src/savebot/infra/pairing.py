"""Pairing-code artifact slot.

A single file holds the raw pairing code while the session awaits pairing.
Absence means no pairing is needed (already paired, or not yet requested).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from savebot.errors import PersistenceError

from .fs import atomic_write


@dataclass(frozen=True)
class PairingArtifact:
    """A pairing code and when it was issued."""

    code: str
    issued_at: datetime


class PairingArtifactStore:
    """Reads, replaces and clears the pairing-code file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def write_sync(self, artifact: PairingArtifact) -> None:
        """Overwrite any previous artifact."""
        try:
            atomic_write(self._path, artifact.code.encode("utf-8"))
        except OSError as e:
            raise PersistenceError(
                "pairing artifact write failed", {"error": type(e).__name__}
            ) from e

    def clear_sync(self) -> None:
        """Delete the artifact. Deleting an absent artifact is not an error."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(
                "pairing artifact delete failed", {"error": type(e).__name__}
            ) from e

    def read(self) -> PairingArtifact | None:
        """Return the current artifact, or None when no code is pending."""
        try:
            code = self._path.read_text(encoding="utf-8")
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            return None
        if not code:
            return None
        return PairingArtifact(
            code=code,
            issued_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
        )

    async def write(self, artifact: PairingArtifact) -> None:
        await asyncio.to_thread(self.write_sync, artifact)

    async def clear(self) -> None:
        await asyncio.to_thread(self.clear_sync)
