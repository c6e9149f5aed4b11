"""
Shared pytest fixtures for facematch tests.
"""
import pytest

from facematch.config import reset_settings
from tests.fakes import FakeEngine, FakeFetcher


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Every test starts from default settings in production mode."""
    for name in ("APP_ENV", "NODE_ENV", "FACE_MATCH_THRESHOLD", "REQUEST_TIMEOUT", "MAX_BODY_SIZE"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def fake_engine():
    return FakeEngine()
