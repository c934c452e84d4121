import httpx
import pytest

from flix.core.api_client import MediaServerClient
from flix.core.errors import AuthenticationFailure, NegotiationFailure, TransientFetchFailure
from flix.database.models import StreamingMode
from flix.config import PLACEHOLDER_IMAGE
from conftest import SERVER_URL, TOKEN, USER_ID

ITEMS_PATH = f"/Users/{USER_ID}/Items"

@pytest.mark.asyncio
async def test_authenticate_persists_token(api, store, server):
    server.add("POST", "/Users/AuthenticateByName", {
        "AccessToken": "fresh-token",
        "User": {"Id": "u-9", "Name": "bob", "PrimaryImageTag": "abc"},
    })

    token, user = await api.authenticate_by_name("bob", "hunter2")

    assert token == "fresh-token"
    assert user.id == "u-9"
    assert user.image_url == f"{SERVER_URL}/Users/u-9/Images/Primary?tag=abc"
    assert store.token == "fresh-token"
    assert store.user.name == "bob"

    request = server.last("/Users/AuthenticateByName")
    assert "X-MediaBrowser-Token" not in request.headers
    assert "Token=" not in request.headers["X-Emby-Authorization"]
    assert b'"Pw"' in request.content

@pytest.mark.asyncio
async def test_authenticate_rejected(api, store, server):
    server.add("POST", "/Users/AuthenticateByName", {"error": "nope"}, status=401)

    with pytest.raises(AuthenticationFailure):
        await api.authenticate_by_name("bob", "wrong")
    assert store.token is None

@pytest.mark.asyncio
async def test_authenticate_without_token_in_response(api, store, server):
    server.add("POST", "/Users/AuthenticateByName", {"User": {"Id": "u-9"}})

    with pytest.raises(AuthenticationFailure):
        await api.authenticate_by_name("bob", "hunter2")
    assert store.token is None

@pytest.mark.asyncio
async def test_authenticated_request_carries_token(api, logged_in_store, server):
    server.add("GET", "/Users/Me", {"Id": USER_ID, "Name": "alice"})

    user = await api.get_user_info()

    assert user.name == "alice"
    request = server.last("/Users/Me")
    assert request.headers["X-MediaBrowser-Token"] == TOKEN
    assert f'Token="{TOKEN}"' in request.headers["X-Emby-Authorization"]

@pytest.mark.asyncio
async def test_no_token_fails_without_network(api, server):
    with pytest.raises(AuthenticationFailure):
        await api.get_items(include_item_types="Movie")
    with pytest.raises(AuthenticationFailure):
        await api.negotiate("movie-42")
    assert server.requests == []

@pytest.mark.asyncio
async def test_logout_takes_effect_for_next_request(api, logged_in_store, server):
    server.add("GET", "/Users/Me", {"Id": USER_ID, "Name": "alice"})
    await api.get_user_info()

    await logged_in_store.clear()

    with pytest.raises(AuthenticationFailure):
        await api.get_user_info()
    assert len(server.requests) == 1

@pytest.mark.asyncio
async def test_rejected_token_maps_to_authentication_failure(api, logged_in_store, server):
    server.add("GET", f"/Users/{USER_ID}/Items/abc", {}, status=401)

    with pytest.raises(AuthenticationFailure):
        await api.get_item_details("abc")

@pytest.mark.asyncio
async def test_server_error_is_transient(api, logged_in_store, server):
    server.add("GET", f"/Users/{USER_ID}/Items/abc", {}, status=500)

    with pytest.raises(TransientFetchFailure):
        await api.get_item_details("abc")

@pytest.mark.asyncio
async def test_network_error_is_transient(logged_in_store):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = MediaServerClient(logged_in_store, SERVER_URL, folder_map={},
                               transport=httpx.MockTransport(unreachable))
    try:
        with pytest.raises(TransientFetchFailure):
            await client.get_seasons("series-1")
    finally:
        await client.aclose()

@pytest.mark.asyncio
async def test_resumable_items_are_fetched_across_libraries(api, logged_in_store, server):
    server.add("GET", ITEMS_PATH, {"Items": [{"Id": "m1", "Name": "Heat", "Type": "Movie"}]})

    items = await api.get_items(filters="IsResumable", sort_by="DatePlayed", sort_order="Descending", limit=10)

    assert [i.id for i in items] == ["m1"]
    params = server.last(ITEMS_PATH).url.params
    assert params["filters"] == "IsResumable"
    assert params["recursive"] == "true"
    assert params["limit"] == "10"
    assert "parentId" not in params
    assert "includeItemTypes" not in params

@pytest.mark.asyncio
async def test_items_resolved_through_collection_type(api, logged_in_store, server):
    def items(request):
        if request.url.params.get("parentId") == "lib-movies":
            return httpx.Response(200, json={"Items": [{"Id": "m1", "Name": "Heat", "Type": "Movie"}]})
        return httpx.Response(200, json={"Items": [
            {"Id": "lib-shows", "Name": "Shows", "CollectionType": "tvshows"},
            {"Id": "lib-movies", "Name": "Films", "CollectionType": "movies"},
        ]})
    server.routes[("GET", ITEMS_PATH)] = items

    result = await api.get_items(include_item_types="Movie", sort_by="SortName", sort_order="Ascending", limit=20)

    assert [i.id for i in result] == ["m1"]
    params = server.last(ITEMS_PATH).url.params
    assert params["parentId"] == "lib-movies"
    assert params["includeItemTypes"] == "Movie"
    assert params["sortBy"] == "SortName"

@pytest.mark.asyncio
async def test_explicit_folder_map_skips_folder_lookup(logged_in_store, server):
    server.add("GET", ITEMS_PATH, {"Items": [{"Id": "s1", "Name": "Dark", "Type": "Series"}]})
    client = MediaServerClient(logged_in_store, SERVER_URL, folder_map={"Series": "lib-tv"},
                               transport=server.transport)
    try:
        result = await client.get_items(include_item_types="Series")
    finally:
        await client.aclose()

    assert [i.id for i in result] == ["s1"]
    assert len(server.requests) == 1
    assert server.requests[0].url.params["parentId"] == "lib-tv"

@pytest.mark.asyncio
async def test_explicit_parent_lists_its_direct_children(api, logged_in_store, server):
    server.add("GET", ITEMS_PATH, {"Items": [{"Id": "s1", "Name": "Season 1", "Type": "Season"}]})

    result = await api.get_items(parent_id="series-1", recursive=False, sort_by="SortName")

    assert [i.id for i in result] == ["s1"]
    assert len(server.requests) == 1
    params = server.requests[0].url.params
    assert params["parentId"] == "series-1"
    assert params["recursive"] == "false"
    assert params["sortBy"] == "SortName"

@pytest.mark.asyncio
async def test_unresolved_type_returns_folders(api, logged_in_store, server):
    server.add("GET", ITEMS_PATH, {"Items": [{"Id": "lib-music", "Name": "Music", "CollectionType": "music"}]})

    result = await api.get_items(include_item_types="Movie")

    assert [i.id for i in result] == ["lib-music"]

@pytest.mark.asyncio
async def test_item_details_include_image_urls(api, logged_in_store, server):
    server.add("GET", f"{ITEMS_PATH}/m1", {"Id": "m1", "Name": "Heat", "Type": "Movie", "ProductionYear": 1995})

    item = await api.get_item_details("m1")

    assert item.production_year == 1995
    assert item.primary_image_url.startswith(f"{SERVER_URL}/Items/m1/Images/Primary?")
    assert f"api_key={TOKEN}" in item.backdrop_image_url

@pytest.mark.asyncio
async def test_seasons_and_episodes(api, logged_in_store, server):
    server.add("GET", "/Shows/s1/Seasons", {"Items": [{"Id": "season-1", "Name": "Season 1", "SeriesId": "s1"}]})
    server.add("GET", "/Shows/Seasons/season-1/Episodes", {"Items": [
        {"Id": "e1", "Name": "Pilot", "SeasonId": "season-1", "IndexNumber": 1},
    ]})

    seasons = await api.get_seasons("s1")
    episodes = await api.get_season_episodes("season-1")

    assert seasons[0].name == "Season 1"
    assert episodes[0].index_number == 1
    assert server.last("/Shows/s1/Seasons").url.params["userId"] == USER_ID

@pytest.mark.asyncio
async def test_image_url_placeholder_for_missing_id(api):
    assert api.image_url("") == PLACEHOLDER_IMAGE

@pytest.mark.asyncio
async def test_image_url_format(api, logged_in_store):
    url = api.image_url("m1", "Backdrop")
    assert url == (f"{SERVER_URL}/Items/m1/Images/Backdrop"
                   f"?fillHeight=400&fillWidth=270&quality=90&api_key={TOKEN}")

@pytest.mark.asyncio
async def test_fetch_image_failure_is_transient(api, logged_in_store, server):
    server.add("GET", "/Items/m1/Images/Primary", b"", status=404)
    with pytest.raises(TransientFetchFailure):
        await api.fetch_image("m1")

@pytest.mark.asyncio
async def test_fetch_image_returns_bytes(api, logged_in_store, server):
    server.add("GET", "/Items/m1/Images/Primary", b"\x89PNG")
    assert await api.fetch_image("m1") == b"\x89PNG"

@pytest.mark.asyncio
async def test_negotiate_prefers_direct_file(api, logged_in_store, server):
    server.add("GET", "/Items/movie-42/PlaybackInfo", {"MediaSources": [{"SupportsDirectStream": True}]})

    result = await api.negotiate("movie-42")

    assert result.supports_direct_stream
    assert result.candidate_urls[0] == f"{SERVER_URL}/Videos/movie-42/stream.mp4?static=true&api_key={TOKEN}"
    assert result.candidate_urls[1] == f"{SERVER_URL}/Videos/movie-42/master.m3u8?static=true&api_key={TOKEN}"
    params = server.last("/Items/movie-42/PlaybackInfo").url.params
    assert params["maxStreamingBitrate"] == "140000000"
    assert params["mediaSourceId"] == "movie-42"

@pytest.mark.asyncio
async def test_negotiate_without_media_sources_uses_manifest(api, logged_in_store, server):
    server.add("GET", "/Items/movie-42/PlaybackInfo", {"MediaSources": []})

    result = await api.negotiate("movie-42")

    assert not result.supports_direct_stream
    assert "master.m3u8" in result.candidate_urls[0]
    assert "stream.mp4" in result.candidate_urls[1]

@pytest.mark.asyncio
async def test_negotiate_server_error(api, logged_in_store, server):
    server.add("GET", "/Items/movie-42/PlaybackInfo", {}, status=500)
    with pytest.raises(NegotiationFailure):
        await api.negotiate("movie-42")

@pytest.mark.asyncio
async def test_stream_url_requires_token(api):
    with pytest.raises(AuthenticationFailure):
        api.stream_url("movie-42", StreamingMode.DIRECT_FILE)

@pytest.mark.asyncio
async def test_subtitle_streams(api, logged_in_store, server):
    server.add("GET", "/Items/movie-42", {"MediaSources": [{"MediaStreams": [
        {"Type": "Video", "Index": 0},
        {"Type": "Subtitle", "Index": 2, "DisplayTitle": "English - SRT", "Language": "eng", "IsDefault": True},
        {"Type": "Subtitle", "Index": 3, "Language": "por", "Title": "Forced"},
        {"Type": "Subtitle", "Index": 4},
    ]}]})

    tracks = await api.get_subtitle_streams("movie-42")

    assert [t.id for t in tracks] == ["2", "3", "4"]
    assert tracks[0].display_title == "English - SRT"
    assert tracks[0].is_default
    assert tracks[1].display_title == "por Forced"
    assert tracks[2].display_title == "Unknown"
    assert tracks[2].language == "und"

@pytest.mark.asyncio
async def test_subtitle_streams_failure_is_empty(api, logged_in_store, server):
    server.add("GET", "/Items/movie-42", {}, status=500)
    assert await api.get_subtitle_streams("movie-42") == []
