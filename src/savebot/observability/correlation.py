"""Correlation IDs tying log lines to the transport event or request that caused them.

HTTP requests take the ID from the X-Correlation-ID header when present.
Transport events get one derived from their connection generation, so all
lines emitted while handling an event (including its capture tasks) can be
grouped and traced back to the socket that produced it.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# Tasks spawned inside a scope inherit the ID (asyncio copies the context).
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def event_correlation_id(kind: str, generation: int) -> str:
    """ID for one transport event, e.g. "g3-messages.upsert-1a2b3c4d"."""
    return f"g{generation}-{kind}-{uuid.uuid4().hex[:8]}"


def get_correlation_id() -> str:
    return correlation_id_var.get()


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind cid (or a fresh ID) for the duration of the block."""
    value = cid or generate_correlation_id()
    token = correlation_id_var.set(value)
    try:
        yield value
    finally:
        correlation_id_var.reset(token)
