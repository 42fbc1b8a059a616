"""Shared dependencies for the HTTP adapter, read from app.state."""

from __future__ import annotations

from typing import Callable

from fastapi import Request

from savebot.infra.archive import ArchiveWriter
from savebot.infra.pairing import PairingArtifactStore
from savebot.session.models import ConnectionStatus

# Returns None when no session is running.
StatusProvider = Callable[[], ConnectionStatus | None]


def get_pairing_store(request: Request) -> PairingArtifactStore:
    return request.app.state.pairing_store


def get_archive(request: Request) -> ArchiveWriter:
    return request.app.state.archive


def get_session_status(request: Request) -> ConnectionStatus | None:
    provider: StatusProvider = request.app.state.status_provider
    return provider()
