import httpx
import pytest
import pytest_asyncio

from flix.api.server import app, get_tmdb_token, get_tmdb_client

class FakeTmdb:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {"results": [{"id": 1, "backdrop_path": "/heat.jpg"}]}
        self.requests = []

    def handler(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)

def install(tmdb, token="secret-token"):
    async def client_override():
        async with httpx.AsyncClient(base_url="https://tmdb.test/3",
                                     transport=httpx.MockTransport(tmdb.handler)) as client:
            yield client

    app.dependency_overrides[get_tmdb_token] = lambda: token
    app.dependency_overrides[get_tmdb_client] = client_override

@pytest_asyncio.fixture
async def relay():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://relay") as client:
        yield client
    app.dependency_overrides.clear()

@pytest.mark.asyncio
async def test_forwards_request_with_server_side_token(relay):
    tmdb = FakeTmdb()
    install(tmdb)

    response = await relay.get("/api/movies", params={"endpoint": "discover/movie", "language": "en-US", "page": "2"})

    assert response.status_code == 200
    assert response.json()["results"][0]["backdrop_path"] == "/heat.jpg"
    forwarded = tmdb.requests[0]
    assert forwarded.url.path == "/3/discover/movie"
    assert forwarded.headers["Authorization"] == "Bearer secret-token"
    assert forwarded.url.params["language"] == "en-US"
    assert forwarded.url.params["page"] == "2"
    assert forwarded.url.params["sort_by"] == "popularity.desc"

@pytest.mark.asyncio
async def test_defaults(relay):
    tmdb = FakeTmdb()
    install(tmdb)

    await relay.get("/api/movies")

    params = tmdb.requests[0].url.params
    assert params["language"] == "pt-BR"
    assert params["page"] == "1"
    assert params["include_adult"] == "false"

@pytest.mark.asyncio
async def test_missing_token(relay):
    tmdb = FakeTmdb()
    install(tmdb, token="")

    response = await relay.get("/api/movies")

    assert response.status_code == 500
    assert response.json() == {"error": "API Token not configured"}
    assert tmdb.requests == []

@pytest.mark.asyncio
async def test_invalid_endpoint_rejected(relay):
    tmdb = FakeTmdb()
    install(tmdb)

    response = await relay.get("/api/movies", params={"endpoint": "../account"})

    assert response.status_code == 400
    assert tmdb.requests == []

@pytest.mark.asyncio
async def test_upstream_failure(relay):
    install(FakeTmdb(status=503, body={}))

    response = await relay.get("/api/movies")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to fetch data from TMDb API"}
