import pytest

from flix.database.db import CredentialStore, USER_KEY
from flix.database.models import User

@pytest.mark.asyncio
async def test_empty_store(store):
    assert store.token is None
    assert store.user is None

@pytest.mark.asyncio
async def test_save_persists_across_instances(store):
    user = User(id="user-1", name="alice", email="alice@example.com")
    await store.save("tok-123", user)

    assert store.token == "tok-123"
    assert store.user == user

    reopened = CredentialStore(store.db_path)
    await reopened.initialize()
    assert reopened.token == "tok-123"
    assert reopened.user.name == "alice"
    assert reopened.user.email == "alice@example.com"

@pytest.mark.asyncio
async def test_save_replaces_previous_credentials(store):
    await store.save("old", User(id="u1", name="old"))
    await store.save("new", User(id="u2", name="new"))

    reopened = CredentialStore(store.db_path)
    await reopened.initialize()
    assert reopened.token == "new"
    assert reopened.user.id == "u2"

@pytest.mark.asyncio
async def test_clear_removes_everything(store):
    await store.save("tok-123", User(id="user-1", name="alice"))
    await store.clear()

    assert store.token is None
    assert store.user is None

    reopened = CredentialStore(store.db_path)
    await reopened.initialize()
    assert reopened.token is None
    assert reopened.user is None

@pytest.mark.asyncio
async def test_corrupt_user_entry_reads_as_none(store):
    store._cache[USER_KEY] = "{not json"
    assert store.user is None
