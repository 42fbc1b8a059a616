"""Session state, transport events and the effects reducers ask for."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from savebot.infra.pairing import PairingArtifact


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Session:
    """The one session owned by the SessionManager.

    Attributes:
        credentials: Opaque credential blob, mirrored to the credential store.
        status: Current connection status.
        close_reason: Diagnostic supplied with the last close, if any.
        pairing: Current pairing artifact (only while awaiting pairing).
        generation: Increments per connection attempt. Events from older
            attempts are stale and dropped.
    """

    credentials: dict[str, Any] = field(default_factory=dict)
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    close_reason: Any = None
    pairing: PairingArtifact | None = None
    generation: int = 0


@dataclass(frozen=True)
class TransportEvent:
    kind: str
    payload: Any
    generation: int
    received_at: datetime


# Effects. Ordered ones are awaited by the consumer before the next event;
# capture effects run as background tasks.


@dataclass(frozen=True)
class PersistCredentials:
    credentials: dict[str, Any]


@dataclass(frozen=True)
class WritePairing:
    artifact: PairingArtifact


@dataclass(frozen=True)
class ClearPairing:
    pass


@dataclass(frozen=True)
class LogTransition:
    name: str
    payload: Any
    at: datetime


@dataclass(frozen=True)
class ScheduleRestart:
    reason: Any


@dataclass(frozen=True)
class CaptureMessages:
    messages: tuple[Any, ...]


@dataclass(frozen=True)
class CaptureDeletion:
    payload: Any


Effect = Union[
    PersistCredentials,
    WritePairing,
    ClearPairing,
    LogTransition,
    ScheduleRestart,
    CaptureMessages,
    CaptureDeletion,
]
