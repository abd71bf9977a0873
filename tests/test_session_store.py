import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeClock
from discourse_mcp.models import SessionState, Topic
from discourse_mcp.services.redis import RedisClient
from discourse_mcp.services.session_store import (
    SessionStore,
    dict_to_session,
    session_to_dict,
)
from discourse_mcp.settings import Settings

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_redis() -> MagicMock:
    """Mock RedisClient with async get_json/set_json/delete."""
    m = MagicMock(spec=RedisClient)
    m.get_json = AsyncMock(return_value=None)
    m.set_json = AsyncMock(return_value=True)
    m.delete = AsyncMock(return_value=True)
    m.connect = AsyncMock(return_value=None)
    m.close = AsyncMock(return_value=None)
    return m


@pytest.fixture
def store(mock_redis: MagicMock) -> SessionStore:
    """SessionStore with mocked Redis and TTL 3600."""
    return SessionStore(redis=mock_redis, ttl_seconds=3600)


def _populated_state() -> SessionState:
    state = SessionState(session_id="s1")
    state.record_request(NOW)
    state.cache_topics((Topic(id=1, title="One", views=3),), NOW + timedelta(minutes=5))
    return state


def test_session_dict_roundtrip_keeps_cache_pair() -> None:
    state = _populated_state()
    restored = dict_to_session(json.loads(json.dumps(session_to_dict(state))))
    assert restored == state


def test_dict_to_session_drops_half_cache() -> None:
    """A cached listing without its expiry is not restored."""
    restored = dict_to_session(
        {"session_id": "s", "request_count": 3, "cached_topics": [], "cache_expiry": None}
    )
    assert restored.request_count == 3
    assert restored.cached_topics is None
    assert restored.cache_expiry is None


@pytest.mark.asyncio
async def test_get_creates_zero_valued_state(store: SessionStore) -> None:
    state = await store.get("new-session")
    assert state == SessionState(session_id="new-session")
    store._redis.get_json.assert_called_once_with("discourse-session:new-session")


@pytest.mark.asyncio
async def test_get_returns_same_instance(store: SessionStore) -> None:
    first = await store.get("s1")
    first.record_request(NOW)
    second = await store.get("s1")
    assert second is first
    assert store._redis.get_json.call_count == 1


@pytest.mark.asyncio
async def test_get_rehydrates_from_redis(store: SessionStore) -> None:
    store._redis.get_json.return_value = session_to_dict(_populated_state())
    state = await store.get("s1")
    assert state.request_count == 1
    assert state.cached_topics[0].title == "One"
    assert state.cache_expiry == NOW + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_get_ignores_invalid_session_document(store: SessionStore) -> None:
    store._redis.get_json.return_value = {"session_id": "s1", "request_count": "many"}
    state = await store.get("s1")
    assert state.request_count == 0


@pytest.mark.asyncio
async def test_save_writes_with_ttl(store: SessionStore) -> None:
    ok = await store.save(_populated_state())
    assert ok is True
    call_args = store._redis.set_json.call_args
    assert call_args[0][0] == "discourse-session:s1"
    assert call_args[0][1]["request_count"] == 1
    assert call_args[1]["ttl_seconds"] == 3600


@pytest.mark.asyncio
async def test_drop_forgets_session(store: SessionStore) -> None:
    state = await store.get("gone")
    state.record_request(NOW)
    await store.drop("gone")
    store._redis.delete.assert_called_once_with("discourse-session:gone")
    assert (await store.get("gone")).request_count == 0


@pytest.mark.asyncio
async def test_memory_only_store() -> None:
    """Without Redis the store keeps sessions in memory and save is a no-op."""
    store = SessionStore.from_settings(Settings(_env_file=None, redis_url=None))
    state = await store.get("s")
    assert await store.save(state) is False
    assert len(store) == 1


@pytest.mark.asyncio
async def test_connect_failure_falls_back_to_memory(mock_redis: MagicMock) -> None:
    mock_redis.connect.side_effect = ConnectionError("refused")
    store = SessionStore(redis=mock_redis)
    await store.connect()
    assert store._redis is None
    assert await store.save(SessionState(session_id="x")) is False


@pytest.mark.asyncio
async def test_idle_session_is_dropped_after_ttl(mock_redis: MagicMock) -> None:
    clock = FakeClock()
    store = SessionStore(redis=mock_redis, ttl_seconds=3600, clock=clock)
    await store.get("old")
    clock.advance(minutes=30)
    await store.get("recent")

    clock.advance(minutes=31)
    fresh = await store.get("another")

    assert len(store) == 2
    mock_redis.delete.assert_called_once_with("discourse-session:old")
    assert fresh.request_count == 0


@pytest.mark.asyncio
async def test_access_keeps_session_alive(mock_redis: MagicMock) -> None:
    clock = FakeClock()
    store = SessionStore(redis=mock_redis, ttl_seconds=60, clock=clock)
    state = await store.get("busy")
    for _ in range(5):
        clock.advance(seconds=50)
        assert await store.get("busy") is state
    mock_redis.delete.assert_not_called()


@pytest.mark.asyncio
async def test_evict_expired_returns_ended_sessions() -> None:
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    for i in range(1000):
        await store.get(f"s{i}")
    clock.advance(seconds=61)

    ended = await store.evict_expired()

    assert len(ended) == 1000
    assert len(store) == 0


@pytest.mark.asyncio
async def test_store_is_bounded_by_max_sessions(mock_redis: MagicMock) -> None:
    """Overflow leaves memory only; the Redis copy is kept for rehydration."""
    store = SessionStore(redis=mock_redis, max_sessions=3, clock=FakeClock())
    for i in range(5):
        await store.get(f"s{i}")

    assert len(store) == 3
    assert list(store._sessions) == ["s2", "s3", "s4"]
    mock_redis.delete.assert_not_called()


@pytest.mark.asyncio
async def test_recently_used_session_survives_overflow() -> None:
    store = SessionStore(max_sessions=2, clock=FakeClock())
    keep = await store.get("keep")
    await store.get("other")
    await store.get("keep")
    await store.get("newcomer")

    assert list(store._sessions) == ["keep", "newcomer"]
    assert await store.get("keep") is keep
