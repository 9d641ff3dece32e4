"""
Redis connection management and the sign-in rate limiter
"""

import logging
from typing import Optional, Dict, Any, Tuple
from dataclasses import dataclass

import redis.asyncio as redis
from redis.exceptions import RedisError, ConnectionError

from .config import get_redis_config, RedisConfig

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Centralized Redis manager with connection pooling.
    """

    def __init__(self, config: Optional[RedisConfig] = None):
        self.config = config or get_redis_config()
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client"""
        if self._initialized:
            return

        logger.info(f"Initializing Redis connection to {self.config.host}:{self.config.port}")

        try:
            pool_kwargs = {
                "host": self.config.host,
                "port": self.config.port,
                "db": self.config.db,
                "max_connections": self.config.max_connections,
                "socket_timeout": self.config.socket_timeout,
                "socket_connect_timeout": self.config.socket_connect_timeout,
                "decode_responses": True,
                "retry_on_timeout": True,
                "retry_on_error": [ConnectionError],
            }

            if self.config.password:
                pool_kwargs["password"] = self.config.password

            self._pool = redis.ConnectionPool(**pool_kwargs)
            self._client = redis.Redis(connection_pool=self._pool)

            # Test connection
            await self._client.ping()
            logger.info("Redis connection established successfully")

            self._initialized = True

        except Exception as e:
            logger.error(f"Failed to initialize Redis: {e}")
            raise

    async def cleanup(self) -> None:
        """Cleanup Redis connections"""
        if self._pool:
            await self._pool.disconnect()
            self._initialized = False
            logger.info("Redis connections closed")

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client instance"""
        if not self._initialized:
            raise RuntimeError("Cache manager not initialized. Call initialize() first.")
        return self._client

    def key(self, *parts: str) -> str:
        return ":".join((self.config.key_prefix,) + parts)

    async def hit_window(self, key: str, window_seconds: int) -> Tuple[int, int]:
        """
        Count one hit in a fixed window.

        Returns:
            (hits so far in the window, seconds until the window resets)
        """
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, window_seconds)
        ttl = await self.client.ttl(key)
        if ttl < 0:
            # key exists without an expiry
            await self.client.expire(key, window_seconds)
            ttl = window_seconds
        return count, ttl

    async def health_check(self) -> Dict[str, Any]:
        """Perform Redis health check"""
        try:
            if not self._initialized:
                return {"status": "error", "message": "Redis not initialized"}

            pong = await self._client.ping()
            if not pong:
                return {"status": "unhealthy", "message": "Ping failed"}

            info = await self._client.info()

            return {
                "status": "healthy",
                "version": info.get("redis_version"),
                "connected_clients": info.get("connected_clients", 0),
                "used_memory_human": info.get("used_memory_human", "0B"),
            }

        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e)
            }


@dataclass
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """Fixed-window request limiter keyed by client address"""

    def __init__(self, cache: CacheManager, max_requests: int, window_seconds: int = 60, scope: str = "check-phone"):
        self.cache = cache
        self.max_requests = max_requests
        self.window = window_seconds
        self.scope = scope

    async def check(self, client_key: str) -> RateLimitDecision:
        try:
            count, ttl = await self.cache.hit_window(
                self.cache.key("ratelimit", self.scope, client_key),
                self.window
            )
        except RedisError as e:
            # fail open
            logger.warning(f"Rate limiter unavailable: {e}")
            return RateLimitDecision(allowed=True, remaining=self.max_requests)

        if count > self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=max(ttl, 1))
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count)
