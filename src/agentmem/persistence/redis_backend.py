"""Redis keyed store backend for agentmem.

Provides a Redis implementation of the KeyValueStore interface with support for:
- Connection pooling for a single Redis instance
- Redis Cluster when the URL names a cluster
- Per-key expiry via SET EX and EXPIRE
"""

from typing import Optional

from redis.asyncio import Redis, RedisCluster
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from agentmem.config import RedisConfig
from agentmem.errors import StoreError
from agentmem.logging import get_logger
from agentmem.persistence.interface import KeyValueStore

logger = get_logger(__name__, component="redis_backend")


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed keyed store holding the per-session memory containers.

    Every Redis failure is logged and re-raised as StoreError so callers see
    one error type regardless of backend.
    """

    def __init__(self, config: Optional[RedisConfig] = None, client: Optional[Redis] = None):
        self.config = config or RedisConfig()
        self._redis: Optional[Redis | RedisCluster] = client
        self._pool: Optional[ConnectionPool] = None
        self._owns_client = client is None
        self._is_cluster = False

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client."""
        if self._redis is not None:
            return

        redis_url = self.config.url

        try:
            self._is_cluster = "cluster" in redis_url.lower()

            if self._is_cluster:
                logger.info("initializing_redis_cluster", url=redis_url)
                self._redis = RedisCluster.from_url(
                    redis_url,
                    decode_responses=False,
                    socket_connect_timeout=self.config.socket_connect_timeout,
                    socket_keepalive=True,
                )
            else:
                logger.info("initializing_redis_single", url=redis_url)
                self._pool = ConnectionPool.from_url(
                    redis_url,
                    decode_responses=False,
                    max_connections=self.config.max_connections,
                    socket_connect_timeout=self.config.socket_connect_timeout,
                    socket_keepalive=True,
                    health_check_interval=30,
                )
                self._redis = Redis(connection_pool=self._pool)

            await self._redis.ping()
            logger.info("redis_initialized", is_cluster=self._is_cluster)

        except RedisError as e:
            logger.error("redis_initialization_failed", error=str(e), url=redis_url)
            self._redis = None
            raise StoreError(f"Failed to connect to Redis: {e}") from e

    async def close(self) -> None:
        """Close Redis connections and cleanup resources."""
        if self._redis is None or not self._owns_client:
            return

        logger.info("closing_redis_connection")
        await self._redis.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        self._redis = None

    def _client(self) -> Redis | RedisCluster:
        if self._redis is None:
            raise RuntimeError("Redis backend not initialized")
        return self._redis

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await self._client().get(key)
        except RedisError as e:
            logger.error("redis_get_failed", key=key, error=str(e))
            raise StoreError(f"Failed to read {key}: {e}", key=key) from e

    async def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self._client().set(key, value, ex=ttl_seconds or None)
        except RedisError as e:
            logger.error("redis_set_failed", key=key, error=str(e))
            raise StoreError(f"Failed to write {key}: {e}", key=key) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client().delete(key))
        except RedisError as e:
            logger.error("redis_delete_failed", key=key, error=str(e))
            raise StoreError(f"Failed to delete {key}: {e}", key=key) from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._client().expire(key, ttl_seconds))
        except RedisError as e:
            logger.error("redis_expire_failed", key=key, error=str(e))
            raise StoreError(f"Failed to set expiry on {key}: {e}", key=key) from e
