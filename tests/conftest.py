"""Pytest configuration and fixtures."""
import os
import tempfile

# Set test env BEFORE any imports that use config
_scratch = tempfile.mkdtemp(prefix="tagger-tests-")
os.environ["DATABASE_PATH"] = os.path.join(_scratch, "db", "auth.db")
os.environ["LEGACY_DATABASE_PATH"] = os.path.join(_scratch, "temp", "auth.db")
os.environ["OUTPUT_DIR"] = os.path.join(_scratch, "uploads")
os.environ["TEMP_DIR"] = os.path.join(_scratch, "temp")
os.environ["SESSION_SECRET"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOGIN_WINDOW_SECONDS"] = "60"
os.environ["LOGIN_MAX_ATTEMPTS"] = "3"
os.environ["LOGIN_SKIP_SUCCESSFUL"] = "true"

import pytest
from httpx import ASGITransport, AsyncClient

from tagger.errors import TagEngineError
from tagger.models import Database
from tagger.services.credential_store import CredentialStore
from tagger.services.tag_engine import classify_failure
from web.api.main import create_app, init_services


class FakeTagEngine:
    """Records calls. `errors[kind]` is a list of messages to fail with, one per call."""

    def __init__(self):
        self.calls = []
        self.errors = {"clear": [], "primary": [], "alternate": []}
        self.read_error = None

    @staticmethod
    def _kind(tags, options):
        if options.clear and not tags:
            return "clear"
        if any(name.startswith("XMP") for name in tags):
            return "alternate"
        return "primary"

    def fail(self, kind, *messages):
        self.errors[kind].extend(messages)

    async def read(self, path):
        self.calls.append(("read", path, None, None))
        if self.read_error:
            raise TagEngineError(self.read_error)
        return {"SourceFile": str(path), "File:FileSize": path.stat().st_size}

    async def write(self, path, tags, options):
        kind = self._kind(tags, options)
        self.calls.append((kind, path, dict(tags), options))
        pending = self.errors[kind]
        if pending:
            message = pending.pop(0)
            raise TagEngineError(message, classify_failure(message))

    @property
    def kinds(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def tag_engine():
    return FakeTagEngine()


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await database.init()
    yield database
    await database.dispose()


@pytest.fixture
def store(db):
    return CredentialStore(db)


@pytest.fixture
async def app(tmp_path, tag_engine):
    """App with services wired (ASGI lifespan doesn't run with httpx)."""
    application = create_app()
    await init_services(
        application,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        output_dir=tmp_path / "uploads",
        temp_dir=tmp_path / "temp",
        tag_engine=tag_engine,
    )
    yield application
    await application.state.db.dispose()


@pytest.fixture
async def client(app):
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def logged_in(app, client):
    """Provision a user and log the client in (session cookie kept by the client)."""
    await app.state.credentials.create_user("alice", "wonderland")
    r = await client.post("/api/auth/login", json={"username": "alice", "password": "wonderland"})
    assert r.status_code == 200, f"Login failed: {r.text}"
    return r.json()
