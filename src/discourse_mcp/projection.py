"""Mapping of raw Discourse JSON records onto the compact result records.

Every function here is pure. Missing optional fields fall back to ``0``,
``[]`` or ``None``; only a record that is not a JSON object is rejected.
"""

import re
from typing import Any, Dict, List

from .errors import ProjectionError
from .models import Post, Topic, TopicDetail, TopicPost

# Discourse post action type for "like".
LIKE_ACTION_ID = 2

BROWSE_EXCERPT_LENGTH = 200
TOPIC_POST_EXCERPT_LENGTH = 200
RECENT_POST_EXCERPT_LENGTH = 150

_TAG_RE = re.compile(r"<[^>]*>")


def strip_html(text: str) -> str:
    """Remove every HTML tag, keeping the text between them."""
    return _TAG_RE.sub("", text)


def excerpt(
    cooked: str | None,
    limit: int,
    ellipsis: bool = False,
    fallback: str = "",
) -> str:
    """Plain-text excerpt of a cooked (rendered HTML) field.

    Args:
        cooked: Rendered HTML from the forum, or None when the field is absent.
        limit: Maximum number of characters kept from the stripped text.
        ellipsis: Append "..." after the truncated text.
        fallback: Returned when there is no source text.
    """
    if cooked is None:
        return fallback
    text = strip_html(str(cooked))[:limit]
    if ellipsis:
        return text + "..."
    return text or fallback


def like_count(actions_summary: List[Dict[str, Any]] | None) -> int:
    """Return the like count from a post's actions summary (0 if absent)."""
    for action in actions_summary or []:
        if isinstance(action, dict) and action.get("id") == LIKE_ACTION_ID:
            return action.get("count") or 0
    return 0


def _record(raw: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ProjectionError(f"Unexpected {kind} record: {type(raw).__name__}")
    return raw


def _post_permalink(base_url: str, raw: Dict[str, Any]) -> str:
    return (
        f"{base_url}/t/{raw.get('topic_slug')}/{raw.get('topic_id')}/"
        f"{raw.get('post_number')}"
    )


def records(container: Any, key: str) -> List[Any]:
    """Return ``container[key]`` as a list, or an empty list when missing."""
    if not isinstance(container, dict):
        raise ProjectionError(f"Unexpected response body: {type(container).__name__}")
    value = container.get(key)
    return value if isinstance(value, list) else []


def project_topic(raw: Any) -> Topic:
    topic = _record(raw, "topic")
    return Topic(
        id=topic.get("id"),
        title=topic.get("title"),
        posts_count=topic.get("posts_count") or 0,
        views=topic.get("views") or 0,
        like_count=topic.get("like_count") or 0,
        created_at=topic.get("created_at"),
        last_posted_at=topic.get("last_posted_at"),
        category_id=topic.get("category_id"),
        slug=topic.get("slug"),
        excerpt=topic.get("excerpt"),
    )


def project_browsed_post(raw: Any, base_url: str) -> Post:
    """Project a ``/posts.json`` item for the search browse path."""
    post = _record(raw, "post")
    return Post(
        id=post.get("id"),
        post_number=post.get("post_number"),
        excerpt=excerpt(
            post.get("cooked"), BROWSE_EXCERPT_LENGTH, fallback="No content"
        ),
        username=post.get("username"),
        topic_title=post.get("topic_title"),
        topic_id=post.get("topic_id"),
        topic_slug=post.get("topic_slug"),
        created_at=post.get("created_at"),
        post_url=_post_permalink(base_url, post),
    )


def project_search_post(raw: Any, base_url: str) -> Post:
    """Project a ``/search.json`` hit; the excerpt is the search blurb."""
    post = _record(raw, "search result")
    return Post(
        id=post.get("id"),
        post_number=post.get("post_number"),
        excerpt=post.get("blurb"),
        username=post.get("username"),
        topic_title=post.get("topic_title"),
        topic_id=post.get("topic_id"),
        topic_slug=post.get("topic_slug"),
        created_at=post.get("created_at"),
        post_url=_post_permalink(base_url, post),
    )


def project_recent_post(raw: Any, base_url: str) -> Post:
    post = _record(raw, "post")
    return Post(
        id=post.get("id"),
        post_number=post.get("post_number"),
        excerpt=excerpt(post.get("cooked"), RECENT_POST_EXCERPT_LENGTH, ellipsis=True),
        username=post.get("username"),
        topic_title=post.get("topic_title"),
        topic_id=post.get("topic_id"),
        topic_slug=post.get("topic_slug"),
        created_at=post.get("created_at"),
        post_url=f"{base_url}{post.get('post_url') or ''}",
    )


def project_topic_detail(raw: Any, base_url: str) -> TopicDetail:
    topic = _record(raw, "topic")
    return TopicDetail(
        id=topic.get("id"),
        title=topic.get("title"),
        posts_count=topic.get("posts_count") or 0,
        views=topic.get("views") or 0,
        like_count=topic.get("like_count") or 0,
        created_at=topic.get("created_at"),
        category_id=topic.get("category_id"),
        slug=topic.get("slug"),
        url=f"{base_url}/t/{topic.get('slug')}/{topic.get('id')}",
    )


def project_topic_post(raw: Any) -> TopicPost:
    post = _record(raw, "post")
    return TopicPost(
        id=post.get("id"),
        post_number=post.get("post_number"),
        username=post.get("username"),
        created_at=post.get("created_at"),
        excerpt=excerpt(post.get("cooked"), TOPIC_POST_EXCERPT_LENGTH, ellipsis=True),
        like_count=like_count(post.get("actions_summary")),
    )
