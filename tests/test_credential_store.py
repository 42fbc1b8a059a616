"""Tests for the credential store."""

import pytest

from savebot.errors import StartupError
from savebot.infra.credential_store import CredentialStore


class TestCredentialStore:
    """Load / save of the credential blob."""

    def test_missing_file_is_empty_session(self, tmp_path):
        assert CredentialStore(tmp_path / "auth").load_sync() == {}

    def test_blob_reloaded_verbatim(self, tmp_path):
        store = CredentialStore(tmp_path / "auth")
        blob = {
            "noiseKey": {"private": b"\x01\x02\x03", "public": b"\xff"},
            "registrationId": 1234,
            "me": {"id": "1234@s.whatsapp.net"},
        }

        store.save_sync(blob)

        assert CredentialStore(tmp_path / "auth").load_sync() == blob

    def test_save_replaces_whole_file(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.save_sync({"a": 1})
        store.save_sync({"b": 2})

        assert store.load_sync() == {"b": 2}
        assert [p.name for p in tmp_path.iterdir()] == ["creds.json"]

    def test_corrupt_file_is_startup_error(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.path.write_text("{not json")

        with pytest.raises(StartupError, match="credential store unreadable"):
            store.load_sync()

    def test_non_object_is_startup_error(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.path.write_text("[1, 2]")

        with pytest.raises(StartupError):
            store.load_sync()

    @pytest.mark.asyncio
    async def test_async_round_trip(self, tmp_path):
        store = CredentialStore(tmp_path)
        await store.save({"k": b"v"})
        assert await store.load() == {"k": b"v"}
