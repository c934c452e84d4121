import pytest

from flix.core.errors import AuthenticationFailure
from flix.core.session_context import SessionContext
from flix.database.db import CredentialStore
from flix.database.models import User
from conftest import TOKEN, USER_ID

def auth_response(server):
    server.add("POST", "/Users/AuthenticateByName", {
        "AccessToken": TOKEN,
        "User": {"Id": USER_ID, "Name": "alice"},
    })

@pytest.mark.asyncio
async def test_login_then_fetch_uses_persisted_token(api, store, server):
    auth_response(server)
    server.add("GET", "/Users/Me", {"Id": USER_ID, "Name": "alice"})
    ctx = SessionContext(store, api)

    user = await ctx.login("alice", "secret")

    assert user.name == "alice"
    assert ctx.is_authenticated

    reopened = CredentialStore(store.db_path)
    await reopened.initialize()
    assert reopened.token == TOKEN

    await api.get_user_info()
    assert server.last("/Users/Me").headers["X-MediaBrowser-Token"] == TOKEN

@pytest.mark.asyncio
async def test_failed_login_leaves_session_empty(api, store, server):
    server.add("POST", "/Users/AuthenticateByName", {}, status=401)
    ctx = SessionContext(store, api)

    with pytest.raises(AuthenticationFailure):
        await ctx.login("alice", "wrong")
    assert not ctx.is_authenticated
    assert store.token is None

@pytest.mark.asyncio
async def test_logout_clears_credentials_and_navigates(api, logged_in_store, server):
    routes = []
    ctx = SessionContext(logged_in_store, api, navigate=routes.append)
    ctx.user = User(id=USER_ID, name="alice")

    await ctx.logout()

    assert routes == ["/login"]
    assert not ctx.is_authenticated
    assert logged_in_store.token is None
    with pytest.raises(AuthenticationFailure):
        await api.get_items(include_item_types="Movie")
    assert server.requests == []

@pytest.mark.asyncio
async def test_initialize_without_token(api, store, server):
    ctx = SessionContext(store, api)
    await ctx.initialize()

    assert not ctx.is_authenticated
    assert not ctx.is_loading
    assert server.requests == []

@pytest.mark.asyncio
async def test_initialize_restores_session(api, logged_in_store, server):
    server.add("GET", "/Users/Me", {"Id": USER_ID, "Name": "alice"})
    ctx = SessionContext(logged_in_store, api)

    await ctx.initialize()

    assert ctx.is_authenticated
    assert ctx.user.id == USER_ID
    assert not ctx.is_loading

@pytest.mark.asyncio
async def test_initialize_with_rejected_token_clears_store(api, logged_in_store, server):
    server.add("GET", "/Users/Me", {}, status=401)
    ctx = SessionContext(logged_in_store, api)

    await ctx.initialize()

    assert not ctx.is_authenticated
    assert not ctx.is_loading
    assert logged_in_store.token is None

@pytest.mark.asyncio
async def test_route_gating(api, store):
    ctx = SessionContext(store, api)

    assert ctx.resolve_route("/") == "/login"
    assert ctx.resolve_route("/home") == "/login"
    assert ctx.resolve_route("/details/abc") == "/login"
    assert ctx.resolve_route("/watch/abc") == "/login"
    assert ctx.resolve_route("/login") == "/login"
    with pytest.raises(AuthenticationFailure):
        ctx.require_auth()

    ctx.user = User(id=USER_ID, name="alice")

    assert ctx.resolve_route("/") == "/home"
    assert ctx.resolve_route("/login") == "/home"
    assert ctx.resolve_route("/watch/abc") == "/watch/abc"
    ctx.require_auth()
