import asyncio
from datetime import timedelta

import pytest

from gemini_api.errors import (
    IdentityMismatchError,
    InvalidModelError,
    SessionExpiredError,
    SessionNotFoundError,
)
from gemini_api.services.session_store import SessionStore


@pytest.mark.asyncio
async def test_create_session_starts_empty(store, fake_client, clock):
    session = await store.create("10.0.0.1", "gemini-2.0-flash-001")

    assert session.total_tokens == 0
    assert session.history == []
    assert session.model_id == "gemini-2.0-flash-001"
    assert session.created_at == session.last_accessed_at == clock.now
    assert session.expires_at == clock.now + timedelta(hours=3)
    assert session.session_id in store

    opened = fake_client.opened[-1]
    assert session.conversation is opened
    assert opened.region == "global"
    assert opened.system_preamble == "You are a helpful assistant."


@pytest.mark.asyncio
async def test_create_uses_default_model_and_explicit_preamble(store, fake_client):
    session = await store.create("10.0.0.1", None, "Answer in French.")

    assert session.model_id == "gemini-2.0-flash-001"
    assert fake_client.opened[-1].system_preamble == "Answer in French."


@pytest.mark.asyncio
async def test_create_with_invalid_model_leaves_store_unchanged(store, fake_client):
    existing = await store.create("10.0.0.1", "gemini-2.0-flash-001")

    with pytest.raises(InvalidModelError):
        await store.create("10.0.0.1", "not-a-real-model")

    assert len(store) == 1
    assert existing.session_id in store
    assert len(fake_client.opened) == 1


@pytest.mark.asyncio
async def test_second_create_replaces_first_for_same_identity(store):
    first = await store.create("10.0.0.1")
    second = await store.create("10.0.0.1")

    assert first.session_id != second.session_id
    assert await store.lookup(first.session_id, "10.0.0.1") is None
    assert await store.lookup(second.session_id, "10.0.0.1") is second
    assert len(store) == 1


@pytest.mark.asyncio
async def test_create_keeps_sessions_of_other_identities(store):
    other = await store.create("10.0.0.2")
    await store.create("10.0.0.1")
    await store.create("10.0.0.1")

    assert await store.lookup(other.session_id, "10.0.0.2") is other
    assert len(store) == 2


@pytest.mark.asyncio
async def test_concurrent_creates_leave_one_session_per_identity(store):
    sessions = await asyncio.gather(*(store.create("10.0.0.1") for _ in range(5)))

    assert len(store) == 1
    live = [s for s in sessions if s.session_id in store]
    assert len(live) == 1


@pytest.mark.asyncio
async def test_lookup_with_other_identity_is_not_found(store):
    session = await store.create("10.0.0.1")

    assert await store.lookup(session.session_id, "10.0.0.2") is None
    with pytest.raises(IdentityMismatchError):
        await store.resolve(session.session_id, "10.0.0.2")
    # the owner still sees it
    assert await store.lookup(session.session_id, "10.0.0.1") is session


@pytest.mark.asyncio
async def test_resolve_unknown_session(store):
    with pytest.raises(SessionNotFoundError):
        await store.resolve("missing", "10.0.0.1")
    assert await store.lookup("missing", "10.0.0.1") is None


@pytest.mark.asyncio
async def test_expired_session_is_evicted_when_observed(store, clock):
    session = await store.create("10.0.0.1")
    clock.advance(hours=3, seconds=1)

    with pytest.raises(SessionExpiredError):
        await store.resolve(session.session_id, "10.0.0.1")

    assert session.session_id not in store
    with pytest.raises(SessionNotFoundError):
        await store.resolve(session.session_id, "10.0.0.1")


@pytest.mark.asyncio
async def test_expired_session_observed_by_other_identity_is_evicted(store, clock):
    session = await store.create("10.0.0.1")
    clock.advance(hours=4)

    assert await store.lookup(session.session_id, "10.0.0.2") is None
    assert session.session_id not in store


@pytest.mark.asyncio
async def test_session_is_live_right_at_expiry(store, clock):
    session = await store.create("10.0.0.1")
    clock.advance(hours=3)

    assert await store.lookup(session.session_id, "10.0.0.1") is session


@pytest.mark.asyncio
async def test_touch_extends_expiry_from_now(store, clock):
    session = await store.create("10.0.0.1")
    before = session.expires_at
    clock.advance(hours=1)

    assert await store.touch(session.session_id) is True

    assert session.last_accessed_at == clock.now
    assert session.expires_at == clock.now + timedelta(hours=3)
    assert session.expires_at > before


@pytest.mark.asyncio
async def test_touch_never_moves_expiry_backwards(store, clock):
    session = await store.create("10.0.0.1")
    clock.advance(hours=2)
    await store.touch(session.session_id)
    expires = session.expires_at

    clock.advance(hours=-1)
    await store.touch(session.session_id)

    assert session.expires_at == expires
    assert session.expires_at == session.last_accessed_at + timedelta(hours=3)


@pytest.mark.asyncio
async def test_ensure_live_rejects_removed_or_expired_sessions(store, clock):
    session = await store.create("10.0.0.1")
    await store.ensure_live(session)

    clock.advance(hours=3, seconds=1)
    with pytest.raises(SessionExpiredError):
        await store.ensure_live(session)
    assert session.session_id not in store

    replaced = await store.create("10.0.0.2")
    await store.create("10.0.0.2")
    with pytest.raises(SessionNotFoundError):
        await store.ensure_live(replaced)


@pytest.mark.asyncio
async def test_touch_unknown_session(store):
    assert await store.touch("missing") is False


@pytest.mark.asyncio
async def test_delete_requires_matching_identity(store):
    session = await store.create("10.0.0.1")

    assert await store.delete(session.session_id, "10.0.0.2") is False
    assert session.session_id in store

    assert await store.delete(session.session_id, "10.0.0.1") is True
    assert session.session_id not in store
    assert await store.delete(session.session_id, "10.0.0.1") is False


@pytest.mark.asyncio
async def test_delete_all_for_identity(store):
    await store.create("10.0.0.1")
    other = await store.create("10.0.0.2")

    assert await store.delete_all_for_identity("10.0.0.1") == 1
    assert await store.delete_all_for_identity("10.0.0.1") == 0
    assert other.session_id in store


@pytest.mark.asyncio
async def test_list_for_identity_skips_expired_and_foreign_sessions(store, clock):
    mine = await store.create("10.0.0.1")
    await store.create("10.0.0.2")

    assert await store.list_for_identity("10.0.0.1") == [mine]

    clock.advance(hours=5)
    assert await store.list_for_identity("10.0.0.1") == []
    assert mine.session_id not in store


@pytest.mark.asyncio
async def test_sweep_evicts_only_expired_sessions(store, clock):
    stale = await store.create("10.0.0.1")
    fresh = await store.create("10.0.0.2")

    clock.advance(hours=2)
    await store.touch(fresh.session_id)
    clock.advance(hours=2)

    assert await store.sweep() == 1
    assert stale.session_id not in store
    assert fresh.session_id in store


@pytest.mark.asyncio
async def test_sweep_skips_session_with_turn_in_flight(store, clock):
    session = await store.create("10.0.0.1")
    clock.advance(hours=4)

    async with session.turn_lock:
        assert await store.sweep() == 0
        assert session.session_id in store

    assert await store.sweep() == 1
    assert session.session_id not in store


@pytest.mark.asyncio
async def test_record_turn_reports_removed_session(store):
    session = await store.create("10.0.0.1")
    await store.create("10.0.0.1")

    assert await store.record_turn(session, [], 7) is False
    assert session.total_tokens == 7


@pytest.mark.asyncio
async def test_background_sweeper_runs_until_stopped(fake_client, clock):
    store = SessionStore(
        fake_client,
        ttl=timedelta(hours=3),
        cleanup_interval=timedelta(milliseconds=10),
        clock=clock,
    )
    session = await store.create("10.0.0.1")
    clock.advance(hours=4)

    store.start()
    store.start()
    assert store.is_running
    await asyncio.sleep(0.1)

    assert session.session_id not in store

    await store.stop()
    assert not store.is_running
    await store.stop()
