from datetime import timedelta

from conftest import FakeClock
from discourse_mcp.models import CacheStatus, SessionState, Topic
from discourse_mcp.services.cache import TopicCache

TOPICS = (Topic(id=1, title="One"), Topic(id=2, title="Two"))


def test_empty_cache_is_a_miss(clock: FakeClock) -> None:
    cache = TopicCache()
    state = SessionState(session_id="s")
    assert cache.status(state, clock()) is CacheStatus.EMPTY
    assert cache.lookup(state, True, clock()) is None


def test_store_makes_cache_valid_for_ttl(clock: FakeClock) -> None:
    """A stored listing is served until the TTL elapses."""
    cache = TopicCache(ttl=timedelta(minutes=5))
    state = SessionState(session_id="s")
    cache.store(state, TOPICS, clock())

    assert state.cache_expiry == clock() + timedelta(minutes=5)
    assert cache.status(state, clock()) is CacheStatus.VALID
    assert cache.lookup(state, True, clock()) == TOPICS

    clock.advance(minutes=4, seconds=59)
    assert cache.lookup(state, True, clock()) == TOPICS


def test_expiry_is_observed_at_read_time(clock: FakeClock) -> None:
    """At exactly the expiry instant the data is stale and never served."""
    cache = TopicCache()
    state = SessionState(session_id="s")
    cache.store(state, TOPICS, clock())

    clock.advance(minutes=5)
    assert cache.status(state, clock()) is CacheStatus.EXPIRED
    assert cache.lookup(state, True, clock()) is None
    # Stale data stays in the slot until overwritten.
    assert state.cached_topics == TOPICS


def test_use_cache_false_always_misses(clock: FakeClock) -> None:
    cache = TopicCache()
    state = SessionState(session_id="s")
    cache.store(state, TOPICS, clock())
    assert cache.lookup(state, False, clock()) is None


def test_store_overwrites_previous_listing(clock: FakeClock) -> None:
    """Last write wins; the new expiry replaces the old one."""
    cache = TopicCache()
    state = SessionState(session_id="s")
    cache.store(state, TOPICS, clock())
    clock.advance(minutes=10)
    fresh = (Topic(id=3, title="Three"),)
    cache.store(state, fresh, clock())

    assert state.cached_topics == fresh
    assert state.cache_expiry == clock() + timedelta(minutes=5)
    assert cache.lookup(state, True, clock()) == fresh


def test_record_request_counts_attempts(clock: FakeClock) -> None:
    state = SessionState(session_id="s")
    state.record_request(clock())
    clock.advance(seconds=3)
    state.record_request(clock())
    assert state.request_count == 2
    assert state.last_request_time == clock()
