from unittest.mock import AsyncMock

import pytest

from billrelay.config import Settings, get_settings
from billrelay.database import get_db
from billrelay.main import app

TEST_CHANNEL_SECRET = "test-channel-secret"
TEST_PROMPTPAY_ID = "0812345678"
TEST_QR_URL = "https://relay.example.com/artifacts/qrcodes/qr_U123_1.png"


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        CHANNEL_SECRET=TEST_CHANNEL_SECRET,
        PROMPTPAY_ID=TEST_PROMPTPAY_ID,
        APP_ENV="development",
    )


@pytest.fixture
def mock_db():
    """An AsyncMock that behaves like an AsyncSession."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


@pytest.fixture
def line_client():
    """A LineClient stand-in whose multicast echoes the retry key."""
    client = AsyncMock()

    async def _multicast(to, messages, retry_key=None):
        return retry_key

    client.multicast.side_effect = _multicast
    return client


@pytest.fixture
def artifact_store():
    store = AsyncMock()
    store.upload.return_value = TEST_QR_URL
    return store


@pytest.fixture
def wired_app(test_settings, mock_db, line_client, artifact_store):
    """The FastAPI app with DB, settings and external clients replaced."""

    async def override_get_db():
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.line_client = line_client
    app.state.artifact_store = artifact_store

    yield app

    app.dependency_overrides.clear()
    del app.state.line_client
    del app.state.artifact_store
