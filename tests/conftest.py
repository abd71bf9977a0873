import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest

_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from discourse_mcp.agent import ForumAgentService  # noqa: E402
from discourse_mcp.models import SessionState  # noqa: E402
from discourse_mcp.services.discourse import DiscourseClient  # noqa: E402

BASE_URL = "https://forum.example.org"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeForum:
    """Routes requests by path to canned JSON responses and records every request."""

    def __init__(self) -> None:
        self.responses: Dict[str, httpx.Response] = {}
        self.requests: List[httpx.Request] = []
        self.error: Exception | None = None

    def reply(self, path: str, body: Any = None, status: int = 200) -> None:
        if body is None:
            self.responses[path] = httpx.Response(status)
        else:
            self.responses[path] = httpx.Response(status, json=body)

    def fail_all(self, status: int) -> None:
        self.responses.clear()
        self.responses["*"] = httpx.Response(status)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if "*" in self.responses:
            return self.responses["*"]
        return self.responses.get(request.url.path, httpx.Response(404))


def topic_payload(topic_id: int, **extra: Any) -> Dict[str, Any]:
    data = {
        "id": topic_id,
        "title": f"Topic {topic_id}",
        "posts_count": 3,
        "views": 100 + topic_id,
        "like_count": 7,
        "created_at": "2025-02-28T10:00:00.000Z",
        "last_posted_at": "2025-03-01T09:00:00.000Z",
        "category_id": 5,
        "slug": f"topic-{topic_id}",
        "excerpt": "A short excerpt",
        "pinned": False,
    }
    data.update(extra)
    return data


def post_payload(post_id: int, **extra: Any) -> Dict[str, Any]:
    data = {
        "id": post_id,
        "post_number": 2,
        "username": "alice",
        "topic_title": "Governance proposal",
        "topic_id": 42,
        "topic_slug": "governance-proposal",
        "created_at": "2025-03-01T08:00:00.000Z",
        "cooked": "<p>Hello <b>world</b></p>",
        "post_url": f"/t/governance-proposal/42/{post_id}",
    }
    data.update(extra)
    return data


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def forum() -> FakeForum:
    return FakeForum()


@pytest.fixture
def discourse_client(forum: FakeForum) -> DiscourseClient:
    """DiscourseClient talking to the fake forum through httpx.MockTransport."""
    return DiscourseClient(
        base_url=BASE_URL,
        api_key="test-key",
        api_username="system",
        timeout_seconds=5.0,
        transport=httpx.MockTransport(forum),
    )


@pytest.fixture
def service(discourse_client: DiscourseClient, clock: FakeClock) -> ForumAgentService:
    return ForumAgentService(client=discourse_client, clock=clock)


@pytest.fixture
def state() -> SessionState:
    return SessionState(session_id="session-1")
