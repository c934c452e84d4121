import httpx
import pytest

from flix.core.background_feed import LoginBackgroundFeed
from flix.database.models import BackdropMovie

RELAY = "http://relay.test/api/movies"

def relay_with(results, status=200):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(status, json={"results": results})
    return httpx.MockTransport(handler), requests

@pytest.mark.asyncio
async def test_load_keeps_movies_with_backdrops():
    transport, requests = relay_with([
        {"id": 1, "title": "Heat", "backdrop_path": "/heat.jpg", "poster_path": "/heat-p.jpg"},
        {"id": 2, "title": "No Backdrop", "backdrop_path": None},
        {"id": 3, "title": "Ronin", "backdrop_path": "/ronin.jpg"},
    ])
    feed = LoginBackgroundFeed(RELAY, language="en-US", transport=transport)

    movies = await feed.load()

    assert [m.title for m in movies] == ["Heat", "Ronin"]
    params = requests[0].url.params
    assert params["endpoint"] == "discover/movie"
    assert params["language"] == "en-US"
    assert params["sort_by"] == "popularity.desc"
    assert params["include_adult"] == "false"

@pytest.mark.asyncio
async def test_advance_wraps_around():
    transport, _ = relay_with([
        {"id": 1, "title": "Heat", "backdrop_path": "/heat.jpg"},
        {"id": 3, "title": "Ronin", "backdrop_path": "/ronin.jpg"},
    ])
    feed = LoginBackgroundFeed(RELAY, transport=transport)
    await feed.load()

    assert feed.current.title == "Heat"
    assert feed.advance().title == "Ronin"
    assert feed.advance().title == "Heat"

@pytest.mark.asyncio
async def test_relay_failure_leaves_feed_empty():
    transport, _ = relay_with([], status=500)
    feed = LoginBackgroundFeed(RELAY, transport=transport)

    assert await feed.load() == []
    assert feed.current is None
    assert feed.advance() is None

@pytest.mark.asyncio
async def test_unreachable_relay_leaves_feed_empty():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    feed = LoginBackgroundFeed(RELAY, transport=httpx.MockTransport(handler))
    assert await feed.load() == []

def test_image_urls():
    heat = BackdropMovie(id=1, title="Heat", backdrop_path="/heat.jpg")

    assert LoginBackgroundFeed.backdrop_url(heat) == "https://image.tmdb.org/t/p/original/heat.jpg"
    assert LoginBackgroundFeed.backdrop_url(heat, "w1280") == "https://image.tmdb.org/t/p/w1280/heat.jpg"
    assert LoginBackgroundFeed.poster_url(heat) is None
