"""Process entry point: run the capture session and the HTTP adapter.

Usage:
    SAVEBOT_TRANSPORT_FACTORY=mypackage.transport:build savebot

Exits non-zero if startup fails (bad config, unreadable credentials).
"""

from __future__ import annotations

import asyncio
import sys

import uvicorn

from savebot.api.factory import create_app
from savebot.config import Settings
from savebot.errors import StartupError
from savebot.infra.archive import ArchiveWriter
from savebot.infra.credential_store import CredentialStore
from savebot.infra.pairing import PairingArtifactStore
from savebot.observability.logging import get_logger
from savebot.observability.redaction import safe_log_context
from savebot.session.manager import SessionManager
from savebot.whatsapp.transport import load_transport_factory

logger = get_logger(__name__)


def build_manager(settings: Settings) -> SessionManager:
    """Wire the session manager from settings.

    Raises:
        StartupError: If the transport factory cannot be loaded.
    """
    return SessionManager(
        transport_factory=load_transport_factory(settings.transport_factory),
        credentials=CredentialStore(settings.auth_dir),
        pairing=PairingArtifactStore(settings.pairing_file),
        archive=ArchiveWriter(settings.archive_dir),
        settings=settings,
    )


async def serve(settings: Settings) -> None:
    manager = build_manager(settings)
    await manager.prepare()

    app = create_app(
        pairing_store=PairingArtifactStore(settings.pairing_file),
        archive=ArchiveWriter(settings.archive_dir),
        status_provider=lambda: manager.status if manager.running else None,
    )
    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    )

    session_task = asyncio.create_task(manager.run())
    logger.info(
        "server starting",
        extra={"extra_fields": safe_log_context(port=settings.port)},
    )
    try:
        await server.serve()
    finally:
        await manager.stop()
        await session_task


def main() -> None:
    try:
        settings = Settings.from_env()
        asyncio.run(serve(settings))
    except StartupError as e:
        logger.error(
            "startup failed",
            exc_info=e,
            extra={"extra_fields": {"error": e.message, "error_type": type(e).__name__}},
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
