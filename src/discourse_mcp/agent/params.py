"""Declared parameters of each operation (defaults, bounds, enums, coercion)."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TopicOrder = Literal[
    "default", "created", "activity", "views", "posts", "category", "likes"
]

# A topic is addressed by its numeric id or its slug; nothing else may reach
# the upstream path.
TOPIC_REF_PATTERN = r"^[A-Za-z0-9_-]+$"


def _as_string(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class OperationParams(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LatestTopicsParams(OperationParams):
    per_page: int = Field(10, ge=1, le=50, description="Number of topics to return (1-50)")
    use_cache: bool = Field(
        True, description="Use cached results if available (5 min cache)"
    )
    order: TopicOrder | None = Field(None, description="Sort order")


class SearchPostsParams(OperationParams):
    query: str = Field(
        "", description="Search query (leave empty to browse all recent posts)"
    )
    max_results: int = Field(
        20, ge=1, le=100, description="Maximum number of results (1-100)"
    )

    @field_validator("query", mode="before")
    @classmethod
    def _coerce_query(cls, value: Any) -> Any:
        return _as_string(value)


class GetTopicParams(OperationParams):
    id: str = Field(
        ..., min_length=1, pattern=TOPIC_REF_PATTERN, description="Topic ID or slug"
    )
    include_posts: bool = Field(True, description="Include first few posts")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return _as_string(value)


class RecentPostsParams(OperationParams):
    before: str | None = Field(
        None, description="Load posts with ID lower than this (pagination)"
    )
    limit: int = Field(10, ge=1, le=20, description="Number of posts to return")

    @field_validator("before", mode="before")
    @classmethod
    def _coerce_before(cls, value: Any) -> Any:
        return _as_string(value)
