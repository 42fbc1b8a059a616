"""Shared pytest fixtures for SaveBot tests."""
import os
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_savebot_env(monkeypatch):
    """Keep the developer's SAVEBOT_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("SAVEBOT_"):
            monkeypatch.delenv(name, raising=False)
    yield
