import logging
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Tuple

from redis.exceptions import RedisError

from ..models import SessionState, Topic
from ..settings import Settings
from .redis import RedisClient

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "discourse-session:"
MAX_SESSIONS = 10_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def session_to_dict(state: SessionState) -> Dict[str, Any]:
    """Serialize SessionState to a JSON-serializable dict."""
    return {
        "session_id": state.session_id,
        "request_count": state.request_count,
        "last_request_time": (
            state.last_request_time.isoformat() if state.last_request_time else None
        ),
        "cached_topics": (
            [t.to_dict() for t in state.cached_topics]
            if state.cached_topics is not None
            else None
        ),
        "cache_expiry": state.cache_expiry.isoformat() if state.cache_expiry else None,
    }


def dict_to_session(data: Dict[str, Any]) -> SessionState:
    """Build SessionState from a dict (e.g. from Redis)."""
    state = SessionState(
        session_id=data.get("session_id", ""),
        request_count=int(data.get("request_count", 0)),
        last_request_time=_dt(data.get("last_request_time")),
    )
    topics = data.get("cached_topics")
    expiry = _dt(data.get("cache_expiry"))
    if topics is not None and expiry is not None:
        state.cache_topics(tuple(Topic(**t) for t in topics), expiry)
    return state


class SessionStore:
    """Session-keyed map of SessionState, optionally backed by Redis with a TTL.

    A session untouched for ``ttl_seconds`` has ended: it is dropped from memory
    and from Redis. Past ``max_sessions`` the least recently used sessions leave
    memory only; their Redis copy can still rehydrate them.
    """

    def __init__(
        self,
        redis: RedisClient | None = None,
        ttl_seconds: int = 86400,
        max_sessions: int = MAX_SESSIONS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        # session id -> (state, last access), least recently used first
        self._sessions: "OrderedDict[str, Tuple[SessionState, datetime]]" = OrderedDict()
        self._redis = redis
        self._ttl = ttl_seconds
        self._max_sessions = max_sessions
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        redis = None
        if settings.redis_url and settings.redis_url.strip():
            redis = RedisClient(settings.redis_url.strip())
        return cls(
            redis=redis,
            ttl_seconds=settings.context_ttl_seconds,
            max_sessions=settings.max_sessions,
        )

    def _key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{session_id}"

    def __len__(self) -> int:
        return len(self._sessions)

    async def connect(self) -> None:
        """Connect the Redis backend if configured; fall back to memory-only on failure."""
        if self._redis is None:
            return
        try:
            await self._redis.connect()
        except (RedisError, OSError) as e:
            logger.warning("Session persistence unavailable (Redis): %s", e)
            self._redis = None

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.close()

    async def get(self, session_id: str) -> SessionState:
        """Return the session's state, rehydrating from Redis or creating it if needed."""
        now = self._clock()
        await self.evict_expired(now)

        entry = self._sessions.get(session_id)
        if entry is not None:
            state = entry[0]
        else:
            state = await self._load(session_id)
            if state is None:
                logger.info("New session %s", session_id)
                state = SessionState(session_id=session_id)

        self._sessions[session_id] = (state, now)
        self._sessions.move_to_end(session_id)
        self._trim()
        return state

    async def evict_expired(self, now: datetime | None = None) -> List[str]:
        """Drop every session idle for longer than the TTL. Returns their ids."""
        cutoff = (now or self._clock()) - timedelta(seconds=self._ttl)
        expired = []
        for session_id, (_, last_seen) in self._sessions.items():
            if last_seen > cutoff:
                break
            expired.append(session_id)
        for session_id in expired:
            logger.info("Session %s expired", session_id)
            await self.drop(session_id)
        return expired

    def _trim(self) -> None:
        while len(self._sessions) > self._max_sessions:
            session_id, _ = self._sessions.popitem(last=False)
            logger.debug("Session %s evicted from memory", session_id)

    async def _load(self, session_id: str) -> SessionState | None:
        if self._redis is None:
            return None
        data = await self._redis.get_json(self._key(session_id))
        if data is None:
            return None
        try:
            state = dict_to_session(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Invalid session data for %s: %s", session_id, e)
            return None
        logger.info(
            "Rehydrated session %s (request_count=%s)", session_id, state.request_count
        )
        return state

    async def save(self, state: SessionState) -> bool:
        """Persist the state when Redis is configured. Returns True if it was written."""
        if self._redis is None:
            return False
        return await self._redis.set_json(
            self._key(state.session_id), session_to_dict(state), ttl_seconds=self._ttl
        )

    async def drop(self, session_id: str) -> None:
        """Forget a session (memory and Redis)."""
        self._sessions.pop(session_id, None)
        if self._redis is not None:
            await self._redis.delete(self._key(session_id))
