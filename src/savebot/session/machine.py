"""Connection state machine as pure reducers.

Each reducer maps (Session, TransportEvent) to (Session', [Effect]) and
performs no I/O. The SessionManager executes the effects.

    Disconnected -> Connecting -> AwaitingPairing | Open
    AwaitingPairing -> Open | Closed
    Open -> Closed
    Closed -> Connecting    (after the reconnect delay)
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

from savebot.infra.pairing import PairingArtifact
from savebot.whatsapp.transport import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MESSAGES_DELETE,
    MESSAGES_UPSERT,
)

from .models import (
    CaptureDeletion,
    CaptureMessages,
    ClearPairing,
    ConnectionStatus,
    Effect,
    LogTransition,
    PersistCredentials,
    ScheduleRestart,
    Session,
    TransportEvent,
    WritePairing,
)

NOTIFY = "notify"
LOGGED_OUT_STATUS = 401

Reducer = Callable[[Session, TransportEvent], tuple[Session, list[Effect]]]


def begin_connecting(session: Session) -> Session:
    """Start a new connection attempt under a fresh generation."""
    return replace(
        session,
        status=ConnectionStatus.CONNECTING,
        close_reason=None,
        pairing=None,
        generation=session.generation + 1,
    )


def close_status_code(reason: Any) -> int | None:
    """Status code from a close reason ({"error": {"output": {"statusCode": ..}}})."""
    error = reason.get("error") if isinstance(reason, dict) else reason
    if isinstance(error, dict):
        output = error.get("output")
        code = output.get("statusCode") if isinstance(output, dict) else error.get("statusCode")
    else:
        output = getattr(error, "output", None)
        if isinstance(output, dict):
            code = output.get("statusCode")
        else:
            code = getattr(output, "status_code", None) or getattr(error, "status_code", None)
    return code if isinstance(code, int) else None


def is_logged_out(reason: Any) -> bool:
    return close_status_code(reason) == LOGGED_OUT_STATUS


def on_connection_update(session: Session, event: TransportEvent) -> tuple[Session, list[Effect]]:
    update = event.payload if isinstance(event.payload, dict) else {}
    connection = update.get("connection")
    qr = update.get("qr")

    if connection == "close":
        if session.status is ConnectionStatus.CLOSED:
            # one restart per connection
            return session, []
        reason = update.get("lastDisconnect")
        closed = replace(
            session, status=ConnectionStatus.CLOSED, close_reason=reason, pairing=None
        )
        return closed, [
            ClearPairing(),
            LogTransition(name="close", payload=reason, at=event.received_at),
            ScheduleRestart(reason=reason),
        ]

    effects: list[Effect] = []
    if isinstance(qr, str) and qr:
        artifact = PairingArtifact(code=qr, issued_at=event.received_at)
        session = replace(session, status=ConnectionStatus.AWAITING_PAIRING, pairing=artifact)
        effects.append(WritePairing(artifact=artifact))
        # the code itself is a secret, keep it out of the event log
        effects.append(LogTransition(name="pairing", payload=None, at=event.received_at))

    if connection == "open":
        session = replace(
            session, status=ConnectionStatus.OPEN, pairing=None, close_reason=None
        )
        details = {k: v for k, v in update.items() if k != "qr"}
        effects.append(ClearPairing())
        effects.append(LogTransition(name="open", payload=details, at=event.received_at))
    elif connection == "connecting" and session.status is not ConnectionStatus.AWAITING_PAIRING:
        session = replace(session, status=ConnectionStatus.CONNECTING)

    return session, effects


def on_creds_update(session: Session, event: TransportEvent) -> tuple[Session, list[Effect]]:
    if not isinstance(event.payload, dict):
        raise TypeError(f"creds.update payload must be a dict, got {type(event.payload).__name__}")
    credentials = {**session.credentials, **event.payload}
    return replace(session, credentials=credentials), [PersistCredentials(credentials=credentials)]


def on_messages_upsert(session: Session, event: TransportEvent) -> tuple[Session, list[Effect]]:
    upsert = event.payload if isinstance(event.payload, dict) else {}
    if upsert.get("type") != NOTIFY:
        return session, []
    messages = upsert.get("messages")
    if not isinstance(messages, list) or not messages:
        return session, []
    return session, [CaptureMessages(messages=tuple(messages))]


def on_messages_delete(session: Session, event: TransportEvent) -> tuple[Session, list[Effect]]:
    return session, [CaptureDeletion(payload=event.payload)]


DISPATCH: dict[str, Reducer] = {
    CONNECTION_UPDATE: on_connection_update,
    CREDS_UPDATE: on_creds_update,
    MESSAGES_UPSERT: on_messages_upsert,
    MESSAGES_DELETE: on_messages_delete,
}
