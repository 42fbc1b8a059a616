"""Transport capability consumed by the session manager.

The wire protocol, encryption and device pairing live in an external client
library. The bot only needs: subscribe to events, connect, disconnect, and
download media. Any client can be adapted to this Protocol and exposed via
a factory named in SAVEBOT_TRANSPORT_FACTORY ("package.module:callable").
"""

from __future__ import annotations

import importlib
from typing import Any, Callable, Protocol

from savebot.errors import ConfigError

CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"
MESSAGES_UPSERT = "messages.upsert"
MESSAGES_DELETE = "messages.delete"

EVENT_KINDS = (CONNECTION_UPDATE, CREDS_UPDATE, MESSAGES_UPSERT, MESSAGES_DELETE)

Listener = Callable[[Any], None]


class Transport(Protocol):
    """One live connection to the messaging service."""

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener. Listeners must not block."""
        ...

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def download_media(self, payload_ref: dict[str, Any], kind: str) -> bytes:
        """Download and decrypt one media payload."""
        ...


class TransportFactory(Protocol):
    """Builds a fresh transport from the stored credential blob."""

    def __call__(self, credentials: dict[str, Any]) -> Transport:
        ...


def load_transport_factory(path: str) -> TransportFactory:
    """Resolve "package.module:callable" to a transport factory.

    Raises:
        ConfigError: If the path is empty, malformed or does not resolve.
    """
    if not path:
        raise ConfigError("SAVEBOT_TRANSPORT_FACTORY not configured")
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError("transport factory must look like 'module:callable'", {"value": path})
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError("transport factory module not importable", {"value": path}) from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigError("transport factory is not callable", {"value": path})
    return factory
