"""
Test Configuration and Fixtures

Shared fixtures for the session manager, provider client and route tests.
The environment is filled in before the app module is imported, because
``tiktok_relay.main`` loads its settings at import time.

To run:
    pip install -e .[test]
    pytest
"""

import asyncio
import os
import tempfile
from pathlib import Path

os.environ.setdefault("TIKTOK_CLIENT_KEY", "test-client-key")
os.environ.setdefault("TIKTOK_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("TIKTOK_REDIRECT_URI", "https://relay.example.com/auth/callback")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="tiktok_relay_uploads_"))

import pytest
from fastapi.testclient import TestClient

from tiktok_relay.config import Settings
from tiktok_relay.main import app, get_session_manager
from tiktok_relay.provider import ProviderCallError
from tiktok_relay.session_manager import AuthorizationSessionManager


# =============================================================================
# FAKE PROVIDER
# =============================================================================

class FakeProvider:
    """
    Stands in for TikTokClient. Records every call and answers with the
    configured payload, or raises the error queued in ``failures``.
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self.exchange_response = {"access_token": "A1", "refresh_token": "B1", "open_id": "user-1"}
        self.refresh_response = {"access_token": "A2", "refresh_token": "B2"}
        self.upload_response = {"data": {"upload_id": "U1"}, "error": {"code": "ok"}}
        self.publish_response = {"data": {"publish_id": "P1"}, "error": {"code": "ok"}}
        self.uploaded_bytes = None

    def _reply(self, operation, payload):
        if operation in self.failures:
            raise self.failures[operation]
        return payload

    async def exchange_code(self, code, redirect_uri):
        self.calls.append(("exchange_code", code, redirect_uri))
        return self._reply("exchange_code", self.exchange_response)

    async def refresh_access_token(self, refresh_token):
        self.calls.append(("refresh_access_token", refresh_token))
        await asyncio.sleep(0)
        return self._reply("refresh_access_token", self.refresh_response)

    async def upload_video(self, access_token, file_path, filename, content_type):
        self.calls.append(("upload_video", access_token, filename, content_type))
        self.uploaded_bytes = Path(file_path).read_bytes()
        return self._reply("upload_video", self.upload_response)

    async def publish_video(self, access_token, upload_id, caption):
        self.calls.append(("publish_video", access_token, upload_id, caption))
        return self._reply("publish_video", self.publish_response)

    def fail(self, operation, detail, status_code=400):
        self.failures[operation] = ProviderCallError(detail, status_code=status_code)

    def call_names(self):
        return [call[0] for call in self.calls]


# =============================================================================
# SETTINGS / MANAGER FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    """Settings built explicitly, independent of the process environment."""
    return Settings(
        TIKTOK_CLIENT_KEY="test-client-key",
        TIKTOK_CLIENT_SECRET="test-client-secret",
        TIKTOK_REDIRECT_URI="https://relay.example.com/auth/callback",
        UPLOAD_DIR=tmp_path / "uploads",
    )


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def manager(settings, fake_provider):
    """
    A fresh, unauthenticated session manager backed by the fake provider.

    Usage:
        def test_something(manager):
            url = manager.begin_authorization()
    """
    return AuthorizationSessionManager(settings, fake_provider)


@pytest.fixture
def authed_manager(manager):
    """Session manager that already holds an access and refresh token."""
    manager.session.access_token = "A0"
    manager.session.refresh_token = "R0"
    return manager


@pytest.fixture
def temp_video_file(tmp_path):
    """A small spooled upload standing in for a file the route layer saved."""
    path = tmp_path / "upload_clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42 fake video bytes")
    return path


# =============================================================================
# HTTP FIXTURES
# =============================================================================

@pytest.fixture
def upload_dir():
    return Path(os.environ["UPLOAD_DIR"])


@pytest.fixture
def client(manager):
    """
    TestClient whose routes see ``manager`` instead of the process-wide one.

    Usage:
        def test_health(client):
            assert client.get("/health").json() == {"ok": True}
    """
    app.dependency_overrides[get_session_manager] = lambda: manager
    yield TestClient(app)
    app.dependency_overrides.clear()
