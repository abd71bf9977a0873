import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping
from urllib.parse import quote

from ..models import OperationResult, SessionState
from ..projection import (
    project_browsed_post,
    project_recent_post,
    project_search_post,
    project_topic,
    project_topic_detail,
    project_topic_post,
    records,
)
from ..services.cache import TopicCache
from ..services.discourse import DiscourseClient
from ..settings import Settings
from .operations import OperationRegistry
from .params import (
    GetTopicParams,
    LatestTopicsParams,
    RecentPostsParams,
    SearchPostsParams,
)

logger = logging.getLogger(__name__)

TOPIC_POSTS_LIMIT = 5
BROWSE_QUERY_LABEL = "recent posts (no search query)"

REGISTRY = OperationRegistry()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ForumAgentService:
    """Runs forum operations against a caller-supplied SessionState.

    The service owns the upstream client and the cache policy; all mutable
    per-session data lives on the SessionState passed to each call.
    """

    def __init__(
        self,
        client: DiscourseClient,
        cache: TopicCache | None = None,
        clock: Callable[[], datetime] = utcnow,
        registry: OperationRegistry = REGISTRY,
    ) -> None:
        self.client = client
        self.cache = cache or TopicCache()
        self._clock = clock
        self.registry = registry

    @classmethod
    def from_settings(cls, settings: Settings) -> "ForumAgentService":
        """Build the service; raises ConfigurationError when credentials are missing."""
        return cls(
            client=DiscourseClient.from_settings(settings),
            cache=TopicCache(ttl=timedelta(seconds=settings.cache_ttl_seconds)),
        )

    @property
    def base_url(self) -> str:
        return self.client.base_url

    def now(self) -> datetime:
        return self._clock()

    async def dispatch(
        self, state: SessionState, name: str, params: Mapping[str, Any] | None = None
    ) -> OperationResult:
        """Run one operation for the session. Always returns a result."""
        return await self.registry.dispatch(self, state, name, params)

    async def fetch(
        self, state: SessionState, path: str, params: Dict[str, Any] | None = None
    ) -> Any:
        """Record the attempt on the session, then call the forum.

        Attempts are counted, not successes: a failing call still advances
        ``request_count``.
        """
        state.record_request(self.now())
        self.log_state(state)
        return await self.client.get_json(path, params=params)

    def stats(self, state: SessionState) -> Dict[str, Any]:
        """Observability snapshot of one session."""
        return {
            "requestCount": state.request_count,
            "lastRequestTime": (
                state.last_request_time.isoformat() if state.last_request_time else None
            ),
            "cacheStatus": self.cache.status(state, self.now()).value,
        }

    def log_state(self, state: SessionState) -> None:
        logger.debug(
            "Session %s state: request_count=%s last_request_time=%s "
            "has_cached_topics=%s cache_status=%s",
            state.session_id,
            state.request_count,
            state.last_request_time,
            state.cached_topics is not None,
            self.cache.status(state, self.now()).value,
        )

    async def aclose(self) -> None:
        await self.client.aclose()


@REGISTRY.operation(
    "get_latest_topics",
    "Get the latest topics from the community forum",
    LatestTopicsParams,
    error_prefix="Error fetching latest topics",
)
async def get_latest_topics(
    agent: ForumAgentService, state: SessionState, params: LatestTopicsParams
) -> Dict[str, Any]:
    cached = agent.cache.lookup(state, params.use_cache, agent.now())
    if cached is not None:
        logger.debug("Serving latest topics from cache for %s", state.session_id)
        return {
            "cached": True,
            "topics": [t.to_dict() for t in cached],
            "total_topics": len(cached),
            "request_count": state.request_count,
        }

    result = await agent.fetch(
        state, "/latest.json", {"per_page": params.per_page, "order": params.order}
    )
    topic_list = result.get("topic_list") if isinstance(result, dict) else None
    topics = tuple(project_topic(t) for t in records(topic_list or {}, "topics"))
    agent.cache.store(state, topics, agent.now())
    agent.log_state(state)

    return {
        "cached": False,
        "topics": [t.to_dict() for t in topics],
        "total_topics": len(topics),
        "request_count": state.request_count,
    }


@REGISTRY.operation(
    "search_posts",
    "Search for posts and topics of the forum. Leave query empty to browse recent posts.",
    SearchPostsParams,
    error_prefix="Error searching posts",
)
async def search_posts(
    agent: ForumAgentService, state: SessionState, params: SearchPostsParams
) -> Dict[str, Any]:
    if not params.query.strip():
        result = await agent.fetch(state, "/posts.json")
        posts = [
            project_browsed_post(p, agent.base_url).to_dict()
            for p in records(result, "latest_posts")[: params.max_results]
        ]
        # Browsed totals are capped to the fetched page.
        return {
            "query": BROWSE_QUERY_LABEL,
            "posts": posts,
            "total_results": len(posts),
            "showing": len(posts),
            "request_count": state.request_count,
        }

    result = await agent.fetch(state, "/search.json", {"q": params.query})
    hits = records(result or {}, "posts")
    if not hits:
        return {
            "query": params.query,
            "posts": [],
            "total_results": 0,
            "request_count": state.request_count,
        }

    posts = [
        project_search_post(p, agent.base_url).to_dict()
        for p in hits[: params.max_results]
    ]
    return {
        "query": params.query,
        "posts": posts,
        "total_results": len(hits),
        "showing": len(posts),
        "request_count": state.request_count,
    }


@REGISTRY.operation(
    "get_topic",
    "Get a specific topic with its posts from the forum",
    GetTopicParams,
    error_prefix="Error fetching topic {id}",
)
async def get_topic(
    agent: ForumAgentService, state: SessionState, params: GetTopicParams
) -> Dict[str, Any]:
    result = await agent.fetch(state, f"/t/{quote(params.id, safe='')}.json")
    topic = project_topic_detail(result, agent.base_url).to_dict()
    topic["request_count"] = state.request_count

    post_stream = result.get("post_stream") or {}
    raw_posts = records(post_stream, "posts") if isinstance(post_stream, dict) else []
    if params.include_posts and raw_posts:
        posts = [project_topic_post(p).to_dict() for p in raw_posts[:TOPIC_POSTS_LIMIT]]
        return {"topic": topic, "posts": posts}

    return {"topic": topic}


@REGISTRY.operation(
    "get_recent_posts",
    "Get recent posts across all topics in the forum",
    RecentPostsParams,
    error_prefix="Error fetching recent posts",
)
async def get_recent_posts(
    agent: ForumAgentService, state: SessionState, params: RecentPostsParams
) -> Dict[str, Any]:
    query = {"before": params.before} if params.before else None
    result = await agent.fetch(state, "/posts.json", query)
    posts = [
        project_recent_post(p, agent.base_url).to_dict()
        for p in records(result, "latest_posts")[: params.limit]
    ]
    return {
        "posts": posts,
        "count": len(posts),
        "request_count": state.request_count,
    }
