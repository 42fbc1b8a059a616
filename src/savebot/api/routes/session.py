"""Session surface: liveness, pairing code and connection status.

/health only says the HTTP process is up. "No pairing code available"
(404) and "session not running" (503) on /qr are reported separately so
an operator can tell paired from broken.
"""

from __future__ import annotations

import html
from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from savebot.api.deps import get_pairing_store, get_session_status
from savebot.infra.pairing import PairingArtifactStore
from savebot.session.models import ConnectionStatus

router = APIRouter(tags=["session"])

QR_IMAGE_URL = "https://api.qrserver.com/v1/create-qr-code/?size=300x300&data="


class StatusResponse(BaseModel):
    running: bool
    status: str | None = None
    pairing_available: bool = False
    pairing_issued_at: datetime | None = None


def _page(title: str, body: str = "") -> str:
    return f"<center><h3>{html.escape(title)}</h3>{body}</center>"


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/qr", response_class=HTMLResponse)
def qr_page(
    pairing: PairingArtifactStore = Depends(get_pairing_store),
    status: ConnectionStatus | None = Depends(get_session_status),
) -> HTMLResponse:
    """Render the current pairing code as a QR image."""
    if status is None:
        return HTMLResponse(
            _page("Session not running. Check the bot logs."), status_code=503
        )
    artifact = pairing.read() if status is ConnectionStatus.AWAITING_PAIRING else None
    if artifact is None:
        return HTMLResponse(
            _page(
                "No pairing code available.",
                f"<p>Session status: {html.escape(status.value)}. "
                "If the bot is not paired yet, wait a few seconds and refresh.</p>",
            ),
            status_code=404,
        )
    img = html.escape(QR_IMAGE_URL + quote(artifact.code, safe=""), quote=True)
    return HTMLResponse(
        _page(
            "Scan this QR with WhatsApp: Linked devices, Link a device",
            f'<img src="{img}" alt="QR Code"/>',
        )
    )


@router.get("/status", response_model=StatusResponse)
def session_status(
    pairing: PairingArtifactStore = Depends(get_pairing_store),
    status: ConnectionStatus | None = Depends(get_session_status),
) -> StatusResponse:
    if status is None:
        return StatusResponse(running=False)
    artifact = pairing.read() if status is ConnectionStatus.AWAITING_PAIRING else None
    return StatusResponse(
        running=True,
        status=status.value,
        pairing_available=artifact is not None,
        pairing_issued_at=artifact.issued_at if artifact else None,
    )
