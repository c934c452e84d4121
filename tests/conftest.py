import httpx
import pytest
import pytest_asyncio

from flix.core.api_client import MediaServerClient
from flix.database.db import CredentialStore
from flix.database.models import User

SERVER_URL = "http://jellyfin.test"
TOKEN = "tok-123"
USER_ID = "user-1"

class FakeServer:
    """In-memory stand-in for the media server, served through httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, body=None, status=200):
        self.routes[(method, path)] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            return route(request)
        status, body = route
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body if body is not None else {})

    def last(self, path):
        matches = [r for r in self.requests if r.url.path == path]
        return matches[-1] if matches else None

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

@pytest.fixture
def server():
    return FakeServer()

@pytest_asyncio.fixture
async def store(tmp_path):
    s = CredentialStore(str(tmp_path / "credentials.db"))
    await s.initialize()
    return s

@pytest_asyncio.fixture
async def logged_in_store(store):
    await store.save(TOKEN, User(id=USER_ID, name="alice"))
    return store

@pytest_asyncio.fixture
async def api(store, server):
    client = MediaServerClient(store, SERVER_URL, folder_map={}, transport=server.transport)
    yield client
    await client.aclose()
