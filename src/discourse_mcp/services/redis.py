import json
import logging
from typing import Any, Dict

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisClient:
    """Expiring JSON documents in Redis.

    Every write carries a TTL. Unreachable Redis, missing keys and undecodable
    documents all read as a miss; the caller never sees a Redis exception after
    ``connect``.
    """

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Open the connection and ping it once. Raises when Redis is unreachable."""
        if self._client is not None:
            return
        client = Redis.from_url(self._url, decode_responses=True)
        try:
            await client.ping()
        except RedisError as e:
            logger.warning("Redis ping failed: %s", e)
            await client.aclose()
            raise
        self._client = client
        logger.info("Redis connection established: %s", self._url.split("@")[-1])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_json(self, key: str) -> Dict[str, Any] | None:
        if self._client is None:
            return None
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.warning("Redis get %s failed: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding undecodable document %s: %s", key, e)
            return None
        return data if isinstance(data, dict) else None

    async def set_json(self, key: str, data: Dict[str, Any], ttl_seconds: int) -> bool:
        """Write ``data`` under ``key`` for ``ttl_seconds``. Returns True if stored."""
        if self._client is None:
            return False
        try:
            await self._client.setex(key, ttl_seconds, json.dumps(data))
        except RedisError as e:
            logger.warning("Redis set %s failed: %s", key, e)
            return False
        return True

    async def delete(self, key: str) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.delete(key)
        except RedisError as e:
            logger.warning("Redis delete %s failed: %s", key, e)
            return False
        return True
