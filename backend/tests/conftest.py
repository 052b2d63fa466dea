"""
Pytest configuration and shared test helpers for backend tests.
"""
import base64
import os

# Fixed test key: 32 bytes, base64. Never used outside tests.
os.environ.setdefault("SSN_ENCRYPTION_KEY", base64.b64encode(b"k" * 32).decode("ascii"))
os.environ.setdefault("PREPARER_EMAIL_DOMAIN", "firm.test")

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient
from middleware import get_identity_provider
from server import app
from services.storage_adapter import StorageAdapter, StorageError, StoredObject, get_storage_adapter
from utils.errors import Unauthorized

CLIENT_TOKEN = "client-token"
OTHER_CLIENT_TOKEN = "other-client-token"
PREPARER_TOKEN = "preparer-token"

TEST_USERS = {
    CLIENT_TOKEN: {"id": "user-1", "email": "client@example.com"},
    OTHER_CLIENT_TOKEN: {"id": "user-2", "email": "other@example.com"},
    PREPARER_TOKEN: {"id": "prep-1", "email": "ada@firm.test"},
}


class StubIdentityProvider:
    """Token -> user lookup standing in for the auth endpoint."""
    configured = True

    def __init__(self, users=None):
        self.users = users if users is not None else TEST_USERS

    async def fetch_user(self, token):
        user = self.users.get(token)
        if not user:
            raise Unauthorized("Invalid auth token.")
        return user


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def make_db():
    """MagicMock motor database with async collection methods."""
    db = MagicMock()
    for name in (
        "intake_submissions",
        "upload_records",
        "upload_visibility",
        "client_profiles",
        "audit_events",
    ):
        collection = getattr(db, name)
        collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="x"))
        collection.find_one = AsyncMock(return_value=None)
        collection.find_one_and_update = AsyncMock(return_value=None)
        collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
        collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
        collection.count_documents = AsyncMock(return_value=0)
        collection.find = MagicMock(return_value=cursor([]))
    return db


def cursor(rows):
    """Chainable find() cursor stub: .sort().limit().to_list()."""
    mock = MagicMock()
    mock.sort.return_value = mock
    mock.limit.return_value = mock
    mock.to_list = AsyncMock(return_value=list(rows))
    return mock


@pytest.fixture
def identity_provider_stub():
    return StubIdentityProvider()


@pytest.fixture
def client(identity_provider_stub):
    """TestClient for server:app with stubbed auth.

    Built without a context manager, so the lifespan (codec init, MongoDB) never runs.
    """
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider_stub
    app.state.api_rate_limiter.reset()
    app.state.intake_rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def mock_db():
    return make_db()


class FakeStorage(StorageAdapter):
    """In-memory object store; can be told to fail on the Nth upload."""

    def __init__(self, configured=True, fail_on=None):
        self._configured = configured
        self.fail_on = fail_on
        self.objects = {}
        self.calls = []

    @property
    def configured(self):
        return self._configured

    async def upload_file(self, path, data, content_type):
        self.calls.append(path)
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise StorageError("connection reset")
        self.objects[path] = (data, content_type)

    async def list_files(self, prefix, limit=200):
        return [
            StoredObject(name=path.split("/")[-1], created_at="2025-03-01T00:00:00Z", size=len(data))
            for path, (data, _) in self.objects.items()
            if path.startswith(prefix + "/")
        ][:limit]


@pytest.fixture
def fake_storage():
    storage = FakeStorage()
    app.dependency_overrides[get_storage_adapter] = lambda: storage
    yield storage
    app.dependency_overrides.pop(get_storage_adapter, None)
