"""FastAPI application factory for the presentation adapter."""

from __future__ import annotations

from fastapi import FastAPI, Request, Response

from savebot.infra.archive import ArchiveWriter
from savebot.infra.pairing import PairingArtifactStore
from savebot.observability.correlation import CORRELATION_ID_HEADER, correlation_scope

from .deps import StatusProvider
from .routes import archive as archive_routes
from .routes import session as session_routes


def create_app(
    *,
    pairing_store: PairingArtifactStore,
    archive: ArchiveWriter,
    status_provider: StatusProvider,
) -> FastAPI:
    """Create the HTTP app over the pairing slot and the archive.

    Args:
        pairing_store: Pairing-code artifact slot.
        archive: Archive whose files are listed and served.
        status_provider: Returns the live connection status, or None when
            no session is running.
    """
    app = FastAPI(title="SaveBot", docs_url=None, redoc_url=None)
    app.state.pairing_store = pairing_store
    app.state.archive = archive
    app.state.status_provider = status_provider

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(session_routes.router)
    app.include_router(archive_routes.router)

    return app
