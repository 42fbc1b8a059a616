"""HTTP adapter tests."""

import pytest
from fastapi.testclient import TestClient

from savebot.api.factory import create_app
from savebot.infra.archive import ArchiveWriter, LogKind
from savebot.infra.pairing import PairingArtifact, PairingArtifactStore
from savebot.infra.time import utc_now
from savebot.observability.correlation import CORRELATION_ID_HEADER
from savebot.session.models import ConnectionStatus


class _Status:
    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


@pytest.fixture
def status():
    return _Status(ConnectionStatus.AWAITING_PAIRING)


@pytest.fixture
def pairing(tmp_path):
    return PairingArtifactStore(tmp_path / "qr.txt")


@pytest.fixture
def archive(tmp_path):
    writer = ArchiveWriter(tmp_path / "saved")
    writer.ensure_dirs()
    return writer


@pytest.fixture
def client(pairing, archive, status):
    return TestClient(create_app(pairing_store=pairing, archive=archive, status_provider=status))


class TestHealth:
    """GET /health."""

    def test_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={CORRELATION_ID_HEADER: "abc-123"})
        assert response.headers[CORRELATION_ID_HEADER] == "abc-123"

    def test_correlation_id_generated(self, client):
        response = client.get("/health")
        assert response.headers[CORRELATION_ID_HEADER]


class TestQrPage:
    """GET /qr."""

    def test_not_running_is_503(self, client, status):
        status.value = None
        response = client.get("/qr")
        assert response.status_code == 503
        assert "Session not running" in response.text

    def test_no_code_is_404(self, client):
        response = client.get("/qr")
        assert response.status_code == 404
        assert "No pairing code available" in response.text

    def test_code_rendered_as_image(self, client, pairing):
        pairing.write_sync(PairingArtifact(code="2@A+b/c==,x", issued_at=utc_now()))

        response = client.get("/qr")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "api.qrserver.com" in response.text
        assert "2%40A%2Bb%2Fc%3D%3D%2Cx" in response.text

    def test_code_not_served_once_open(self, client, pairing, status):
        pairing.write_sync(PairingArtifact(code="old", issued_at=utc_now()))
        status.value = ConnectionStatus.OPEN

        response = client.get("/qr")

        assert response.status_code == 404
        assert "open" in response.text


class TestStatus:
    """GET /status."""

    def test_not_running(self, client, status):
        status.value = None
        assert client.get("/status").json() == {
            "running": False,
            "status": None,
            "pairing_available": False,
            "pairing_issued_at": None,
        }

    def test_awaiting_pairing(self, client, pairing):
        pairing.write_sync(PairingArtifact(code="code", issued_at=utc_now()))

        body = client.get("/status").json()

        assert body["running"] is True
        assert body["status"] == "awaiting_pairing"
        assert body["pairing_available"] is True
        assert body["pairing_issued_at"] is not None

    def test_open(self, client, status):
        status.value = ConnectionStatus.OPEN
        body = client.get("/status").json()
        assert body["status"] == "open"
        assert body["pairing_available"] is False


class TestArchiveFiles:
    """GET /files and /download/{name}."""

    def test_empty(self, client):
        assert client.get("/files").json() == {"files": []}

    def test_lists_logs_then_media(self, client, archive):
        archive.log_path(LogKind.MESSAGE).write_text("line\n")
        (archive.media_dir / "a_1.jpg").write_bytes(b"jpg")
        (archive.media_dir / ".tmp.part").write_bytes(b"partial")

        files = client.get("/files").json()["files"]

        assert files == [
            {"name": "messages.log", "size": 5, "kind": "log"},
            {"name": "a_1.jpg", "size": 3, "kind": "media"},
        ]

    def test_download_media(self, client, archive):
        (archive.media_dir / "a_1.jpg").write_bytes(b"jpgdata")

        response = client.get("/download/a_1.jpg")

        assert response.status_code == 200
        assert response.content == b"jpgdata"

    def test_download_log(self, client, archive):
        archive.log_path(LogKind.EVENT).write_text("x | - | open | {}\n")
        response = client.get("/download/events.log")
        assert response.status_code == 200
        assert response.text.startswith("x | - | open")

    @pytest.mark.parametrize("name", ["missing.jpg", ".tmp.part", "..%2Fqr.txt", "%2E%2E"])
    def test_download_rejected(self, client, archive, name):
        (archive.media_dir / ".tmp.part").write_bytes(b"partial")
        response = client.get(f"/download/{name}")
        assert response.status_code == 404
