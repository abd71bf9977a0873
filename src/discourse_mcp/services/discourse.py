import logging
from typing import Any, Dict

import httpx

from ..errors import ProjectionError, UpstreamError
from ..settings import Settings

logger = logging.getLogger(__name__)


class DiscourseClient:
    """Async read-only client for the Discourse JSON API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_username: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {
            "Api-Key": api_key,
            "Api-Username": api_username,
            "Content-Type": "application/json",
        }
        self._timeout = timeout_seconds
        self._client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DiscourseClient":
        """Build a client from validated settings."""
        settings.require_discourse_config()
        return cls(
            base_url=settings.discourse_api_url,
            api_key=settings.discourse_api_key,
            api_username=settings.discourse_api_username,
            timeout_seconds=settings.request_timeout_seconds,
        )

    async def get_json(
        self,
        path: str,
        params: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        """GET ``path`` relative to the forum base URL and return the parsed JSON body.

        Raises:
            UpstreamError: non-2xx status, timeout or transport failure.
            ProjectionError: a 2xx response whose body is not JSON.
        """
        url = f"{self.base_url}{path}"
        merged_headers = {**self._headers, **(headers or {})}
        query = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self._client.get(url, params=query, headers=merged_headers)
        except httpx.TimeoutException as e:
            logger.warning("Discourse request %s timed out: %s", path, e)
            raise UpstreamError(
                None, f"request timed out after {self._timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Discourse request %s failed: %s", path, e)
            raise UpstreamError(None, str(e) or type(e).__name__) from e

        if not response.is_success:
            logger.warning(
                "Discourse request %s returned %s %s",
                path,
                response.status_code,
                response.reason_phrase,
            )
            raise UpstreamError(response.status_code, response.reason_phrase)

        try:
            return response.json()
        except ValueError as e:
            raise ProjectionError(f"Discourse returned a non-JSON body for {path}") from e

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
