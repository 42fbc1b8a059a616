"""Session Manager - owns the session and drives the connection lifecycle.

Transport listeners only enqueue events. A single consumer reads the queue,
runs the reducer for each event and executes the resulting effects:
credential, pairing and event-log writes are awaited in order, message
capture runs in background tasks. Reconnection is a loop, one transport
per iteration. Events the ending transport queued behind its close are
still handled once it is torn down; anything it emits later is dropped.
"""

from __future__ import annotations

import asyncio
import enum
import functools
from dataclasses import replace
from typing import Any, Coroutine

from savebot.config import Settings
from savebot.domain.capture import MessageCapture
from savebot.errors import PersistenceError, StartupError, TransportError
from savebot.infra.archive import NO_SENDER, ArchiveWriter, LogKind, LogLine, serialize_payload
from savebot.infra.credential_store import CredentialStore
from savebot.infra.pairing import PairingArtifactStore
from savebot.infra.time import utc_now
from savebot.observability.correlation import correlation_scope, event_correlation_id
from savebot.observability.logging import get_logger
from savebot.observability.redaction import safe_log_context
from savebot.whatsapp.media import MediaFetcher
from savebot.whatsapp.transport import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    EVENT_KINDS,
    Transport,
    TransportFactory,
)

from .machine import DISPATCH, begin_connecting, close_status_code, is_logged_out
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

logger = get_logger(__name__)


class _Outcome(enum.Enum):
    RESTART = "restart"
    STOP = "stop"


class SessionManager:
    """Runs the connect / pair / capture / reconnect loop."""

    def __init__(
        self,
        *,
        transport_factory: TransportFactory,
        credentials: CredentialStore,
        pairing: PairingArtifactStore,
        archive: ArchiveWriter,
        capture: MessageCapture | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._transport_factory = transport_factory
        self._credentials = credentials
        self._pairing = pairing
        self._archive = archive
        self._capture = capture or MessageCapture(archive)
        self._settings = settings or Settings()

        self._session = Session()
        self._queue: asyncio.Queue[TransportEvent | None] = asyncio.Queue()
        self._transport: Transport | None = None
        self._fetcher: MediaFetcher | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._stopping = asyncio.Event()
        self._prepared = False
        self._running = False
        self._restarts = 0

    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> ConnectionStatus:
        return self._session.status

    @property
    def running(self) -> bool:
        return self._running

    @property
    def restarts(self) -> int:
        return self._restarts

    async def prepare(self) -> None:
        """Load credentials and reset local artifacts.

        Raises:
            StartupError: If the credential store is unreadable, or the
                archive / pairing locations are not writable.
        """
        credentials = await self._credentials.load()
        try:
            self._archive.ensure_dirs()
            # a code left by a previous process is stale
            await self._pairing.clear()
        except (OSError, PersistenceError) as e:
            raise StartupError("archive or pairing location unusable", {"error": str(e)}) from e
        self._session = Session(credentials=credentials)
        self._prepared = True

    async def run(self) -> None:
        """Run until stop() is called or a non-retriable close is seen."""
        if not self._prepared:
            await self.prepare()
        self._running = True
        try:
            while not self._stopping.is_set():
                outcome = await self._run_connection()
                if outcome is _Outcome.STOP or self._stopping.is_set():
                    break
                self._restarts += 1
                if await self._wait_for_stop(self._settings.reconnect_delay):
                    break
        finally:
            self._running = False
            await self._shutdown()

    async def stop(self) -> None:
        self._stopping.set()
        self._queue.put_nowait(None)

    async def _wait_for_stop(self, delay: float) -> bool:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    def _enqueue(self, generation: int, kind: str, payload: Any) -> None:
        self._queue.put_nowait(
            TransportEvent(kind=kind, payload=payload, generation=generation, received_at=utc_now())
        )

    async def _run_connection(self) -> _Outcome:
        self._session = begin_connecting(self._session)
        generation = self._session.generation
        logger.info(
            "connecting",
            extra={"extra_fields": safe_log_context(generation=generation)},
        )
        try:
            transport = self._transport_factory(self._session.credentials)
            for kind in EVENT_KINDS:
                transport.on(kind, functools.partial(self._enqueue, generation, kind))
            self._transport = transport
            self._fetcher = MediaFetcher(
                transport,
                timeout=self._settings.media_timeout,
                retries=self._settings.media_retries,
                retry_delay=self._settings.media_retry_delay,
            )
            await transport.connect()
        except Exception as e:
            error = TransportError("connect failed", {"error_type": type(e).__name__})
            await self._archive.record_error("session.connect", error)
            # goes through the same close path as a transport-reported drop
            self._enqueue(
                generation,
                CONNECTION_UPDATE,
                {"connection": "close", "lastDisconnect": {"error": e, "date": utc_now()}},
            )

        try:
            return await self._consume(generation)
        finally:
            await self._teardown()
            await self._drain(generation)

    async def _consume(self, generation: int) -> _Outcome:
        while True:
            event = await self._queue.get()
            if event is None:
                return _Outcome.STOP
            if event.generation != generation:
                await self._drop_stale(event)
                continue
            outcome = await self._dispatch(event)
            if outcome is not None:
                return outcome

    async def _drain(self, generation: int) -> None:
        """Handle what the ending transport queued behind its close.

        The transport is already disconnected, so nothing else can write
        the credential store. Connection updates are discarded.
        """
        pending: list[TransportEvent | None] = []
        while not self._queue.empty():
            pending.append(self._queue.get_nowait())
        for event in pending:
            if event is None:
                self._queue.put_nowait(None)
            elif event.generation != generation:
                await self._drop_stale(event)
            elif event.kind != CONNECTION_UPDATE:
                await self._dispatch(event)

    async def _drop_stale(self, event: TransportEvent) -> None:
        if event.kind == CREDS_UPDATE:
            await self._archive.record_error(
                f"event.{event.kind}",
                TransportError(
                    "credential update from a superseded connection dropped",
                    {"generation": event.generation},
                ),
            )
            return
        logger.debug(
            "stale event dropped",
            extra={"extra_fields": safe_log_context(kind=event.kind, generation=event.generation)},
        )

    async def _dispatch(self, event: TransportEvent) -> _Outcome | None:
        with correlation_scope(event_correlation_id(event.kind, event.generation)):
            return await self._handle(event)

    async def _handle(self, event: TransportEvent) -> _Outcome | None:
        reducer = DISPATCH.get(event.kind)
        if reducer is None:
            logger.debug("unhandled event kind", extra={"extra_fields": {"kind": event.kind}})
            return None
        try:
            session, effects = reducer(self._session, event)
        except Exception as e:
            await self._archive.record_error(f"event.{event.kind}", e)
            return None

        previous = self._session.status
        self._session = session
        if session.status is not previous:
            logger.info(
                "connection status changed",
                extra={"extra_fields": {"from": previous.value, "to": session.status.value}},
            )

        outcome: _Outcome | None = None
        for effect in effects:
            result = await self._apply(effect)
            if result is not None:
                outcome = result
        return outcome

    async def _apply(self, effect: Effect) -> _Outcome | None:
        if isinstance(effect, CaptureMessages):
            if self._fetcher is None:
                await self._archive.record_error(
                    "effect.CaptureMessages", TransportError("no transport to fetch media from")
                )
                return None
            self._spawn(self._capture.process_batch(effect.messages, self._fetcher))
            return None
        if isinstance(effect, CaptureDeletion):
            self._spawn(self._capture.process_deletion(effect.payload))
            return None

        try:
            if isinstance(effect, PersistCredentials):
                await self._credentials.save(effect.credentials)
            elif isinstance(effect, WritePairing):
                await self._pairing.write(effect.artifact)
                logger.info("pairing code issued, waiting for scan")
            elif isinstance(effect, ClearPairing):
                await self._pairing.clear()
            elif isinstance(effect, LogTransition):
                await self._archive.append(
                    LogKind.EVENT,
                    LogLine(
                        timestamp=effect.at,
                        sender=NO_SENDER,
                        kind=effect.name,
                        payload=serialize_payload(effect.payload),
                    ),
                )
            elif isinstance(effect, ScheduleRestart):
                return self._restart_or_stop(effect)
        except Exception as e:
            await self._archive.record_error(f"effect.{type(effect).__name__}", e)
        return None

    def _restart_or_stop(self, effect: ScheduleRestart) -> _Outcome:
        code = close_status_code(effect.reason)
        if is_logged_out(effect.reason) and not self._settings.reconnect_on_logged_out:
            logger.error(
                "logged out by remote, not reconnecting",
                extra={"extra_fields": safe_log_context(status_code=code)},
            )
            return _Outcome.STOP
        logger.warning(
            "connection closed, reconnecting",
            extra={
                "extra_fields": safe_log_context(
                    status_code=code, delay=self._settings.reconnect_delay
                )
            },
        )
        return _Outcome.RESTART

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "capture task failed",
                exc_info=error,
                extra={"extra_fields": {"error_type": type(error).__name__}},
            )

    async def _teardown(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.disconnect()
        except Exception as e:
            logger.warning(
                "transport disconnect failed",
                extra={"extra_fields": {"error_type": type(e).__name__}},
            )

    async def _shutdown(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        try:
            await self._pairing.clear()
        except PersistenceError as e:
            await self._archive.record_error("session.shutdown", e)
        self._session = replace(self._session, status=ConnectionStatus.DISCONNECTED, pairing=None)
        logger.info("session stopped")
