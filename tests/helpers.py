"""Shared test helpers: an in-memory transport and wire-message builders.

These are NOT fixtures - they are regular functions and classes.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable

SENDER = "1234@s.whatsapp.net"


class FakeTransport:
    """Transport double. Tests push events with emit()."""

    def __init__(self, credentials: dict, media: dict | None = None) -> None:
        self.credentials = dict(credentials)
        self.listeners: dict[str, list[Callable[[Any], None]]] = defaultdict(list)
        self.media = media if media is not None else {}
        self.downloads: list[tuple[dict, str]] = []
        self.connected = False
        self.disconnected = False
        self.connect_error: Exception | None = None

    def on(self, event: str, listener: Callable[[Any], None]) -> None:
        self.listeners[event].append(listener)

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnected = True

    async def download_media(self, payload_ref: dict, kind: str) -> bytes:
        self.downloads.append((payload_ref, kind))
        result = self.media.get(payload_ref.get("url"), b"")
        if isinstance(result, Exception):
            raise result
        return result

    def emit(self, event: str, payload: Any) -> None:
        for listener in list(self.listeners[event]):
            listener(payload)


class FakeTransportFactory:
    """Records every transport it builds."""

    def __init__(
        self,
        media: dict | None = None,
        on_create: Callable[[FakeTransport], None] | None = None,
        connect_errors: list[Exception] | None = None,
    ) -> None:
        self.media = media if media is not None else {}
        self.on_create = on_create
        self.connect_errors = list(connect_errors or [])
        self.created: list[FakeTransport] = []

    def __call__(self, credentials: dict) -> FakeTransport:
        transport = FakeTransport(credentials, media=self.media)
        if self.connect_errors:
            transport.connect_error = self.connect_errors.pop(0)
        if self.on_create is not None:
            self.on_create(transport)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]


def wire_message(message: dict | None, sender: str = SENDER, ts: int = 1700000000) -> dict:
    """Build a wire message as delivered in messages.upsert."""
    return {
        "key": {"remoteJid": sender, "id": "MSG001", "fromMe": False},
        "messageTimestamp": ts,
        "message": message,
    }


def upsert(*messages: dict, delivery: str = "notify") -> dict:
    return {"type": delivery, "messages": list(messages)}


def read_lines(path: Path) -> list[str]:
    if not path.exists():
        return []
    return path.read_text(encoding="utf-8").splitlines()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until true, failing the test after timeout."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
