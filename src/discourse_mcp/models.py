import json
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Tuple


class CacheStatus(str, Enum):
    """Observable state of the latest-topics cache slot."""

    EMPTY = "empty"
    VALID = "valid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Topic:
    """Compact view of one item of the latest topics listing."""

    id: int | None
    title: str | None
    posts_count: int = 0
    views: int = 0
    like_count: int = 0
    created_at: str | None = None
    last_posted_at: str | None = None
    category_id: int | None = None
    slug: str | None = None
    excerpt: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Post:
    """Compact view of a post returned by search or the recent posts feed."""

    id: int | None
    post_number: int | None
    excerpt: str | None
    username: str | None
    topic_title: str | None
    topic_id: int | None
    topic_slug: str | None
    created_at: str | None
    post_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TopicPost:
    """One of the first posts of a topic, with its like count."""

    id: int | None
    post_number: int | None
    username: str | None
    created_at: str | None
    excerpt: str
    like_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TopicDetail:
    """Summary fields of a single topic fetched by id."""

    id: int | None
    title: str | None
    posts_count: int
    views: int
    like_count: int
    created_at: str | None
    category_id: int | None
    slug: str | None
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionState:
    """Per-session agent state (request counters and the latest topics cache slot).

    ``cached_topics`` and ``cache_expiry`` are always set together.
    """

    session_id: str
    request_count: int = 0
    last_request_time: datetime | None = None
    cached_topics: Tuple[Topic, ...] | None = None
    cache_expiry: datetime | None = None

    def record_request(self, now: datetime) -> None:
        """Count one upstream call attempt. Must run before the call is issued."""
        self.request_count += 1
        self.last_request_time = now

    def cache_topics(self, topics: Tuple[Topic, ...], expiry: datetime) -> None:
        """Replace the cached listing and its expiry in one step."""
        self.cached_topics, self.cache_expiry = tuple(topics), expiry


@dataclass
class OperationResult:
    """Outcome of one operation: a success payload or an error message."""

    payload: Dict[str, Any] | None = None
    message: str | None = None
    is_error: bool = False
    error_kind: str | None = None

    @classmethod
    def success(cls, payload: Dict[str, Any]) -> "OperationResult":
        return cls(payload=payload)

    @classmethod
    def failure(cls, message: str, kind: str = "operation") -> "OperationResult":
        return cls(message=message, is_error=True, error_kind=kind)

    def to_text(self) -> str:
        """Render the result the way MCP text content carries it."""
        if self.is_error:
            return self.message or ""
        return json.dumps(self.payload, indent=2)
