import logging
from datetime import datetime, timedelta
from typing import Iterable, Tuple

from ..models import CacheStatus, SessionState, Topic

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


class TopicCache:
    """Single-slot TTL cache for the latest topics listing, stored on SessionState.

    Expiry is observed lazily at read time; expired data is never served.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL) -> None:
        self.ttl = ttl

    def status(self, state: SessionState, now: datetime) -> CacheStatus:
        if state.cached_topics is None or state.cache_expiry is None:
            return CacheStatus.EMPTY
        if now < state.cache_expiry:
            return CacheStatus.VALID
        return CacheStatus.EXPIRED

    def lookup(
        self, state: SessionState, use_cache: bool, now: datetime
    ) -> Tuple[Topic, ...] | None:
        """Return the cached topics on a hit, None on a miss."""
        if not use_cache:
            return None
        status = self.status(state, now)
        if status is not CacheStatus.VALID:
            logger.debug("Topic cache miss for %s (%s)", state.session_id, status.value)
            return None
        return state.cached_topics

    def store(self, state: SessionState, topics: Iterable[Topic], now: datetime) -> None:
        """Overwrite the slot with a fresh listing valid for ``ttl``."""
        state.cache_topics(tuple(topics), now + self.ttl)
