"""
Redis connection manager for Hooplog.
Provides the async connection pool and the atomic sliding-window counter used
to share submission rate limits between API instances.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
RATE_LIMIT_KEY = "ratelimit:{scope}:{key}"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Sliding-window rate limit ───────────────────────────────────────

    # Lua script: prune, count, conditionally record, all in one server-side step.
    # Returns {allowed, count_after, oldest_score_ms}.
    _SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
redis.call("zremrangebyscore", key, "-inf", now_ms - window_ms)
local count = redis.call("zcard", key)
local allowed = 0
if count < limit then
    redis.call("zadd", key, now_ms, member)
    count = count + 1
    allowed = 1
end
redis.call("pexpire", key, window_ms)
local oldest = redis.call("zrange", key, 0, 0, "WITHSCORES")
local oldest_ms = now_ms
if oldest[2] then
    oldest_ms = tonumber(oldest[2])
end
return {allowed, count, oldest_ms}
"""

    async def sliding_window_hit(
        self, scope: str, key: str, now_s: float, window_s: float, limit: int
    ) -> tuple[bool, int, float]:
        """
        Atomically prune the window, check the count and record this hit if allowed.

        Returns:
            (allowed, hits_in_window, oldest_hit_s)
        """
        redis_key = _fmt(RATE_LIMIT_KEY, scope=scope, key=key)
        now_ms = int(now_s * 1000)
        member = f"{now_ms}:{uuid.uuid4().hex[:8]}"
        allowed, count, oldest_ms = await self.client.eval(
            self._SLIDING_WINDOW_SCRIPT,
            1,
            redis_key,
            str(now_ms),
            str(int(window_s * 1000)),
            str(limit),
            member,
        )
        return bool(int(allowed)), int(count), float(oldest_ms) / 1000.0

    async def clear_window(self, scope: str, key: str) -> None:
        await self.client.delete(_fmt(RATE_LIMIT_KEY, scope=scope, key=key))
