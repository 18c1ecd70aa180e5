"""
Sliding-window rate limiting for public submissions.
A key (the submitter's origin) may record at most K hits in any trailing window of W seconds.
"""
from __future__ import annotations

import abc
import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from shared.config import RateLimitBackend, Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)

RATE_LIMIT_SCOPE = "submissions"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after_s: float = 0.0


class SubmissionRateLimiter(abc.ABC):
    """Check-and-record must be atomic per key: two concurrent hits never both take the last slot."""

    def __init__(self, max_hits: int, window_s: float) -> None:
        if max_hits < 1 or window_s <= 0:
            raise ValueError("max_hits must be >= 1 and window_s > 0")
        self.max_hits = max_hits
        self.window_s = window_s

    @abc.abstractmethod
    async def hit(self, key: str) -> RateLimitDecision:
        """Record a hit for `key` if it fits in the window; refused hits are not recorded."""

    @abc.abstractmethod
    async def reset(self, key: str) -> None:
        ...


class InMemorySlidingWindowLimiter(SubmissionRateLimiter):
    """
    Process-local limiter. Each API instance enforces its own budget.

    Keys whose hits have all aged out are swept at most once per window, so
    memory tracks the origins active in the last W seconds only.
    """

    def __init__(
        self,
        max_hits: int,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(max_hits, window_s)
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._lock = asyncio.Lock()
        self._last_sweep = clock()

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug("rate_limit_keys_swept", swept=len(stale), tracked=len(self._hits))

    async def hit(self, key: str) -> RateLimitDecision:
        async with self._lock:
            now = self._clock()
            cutoff = now - self.window_s
            if now - self._last_sweep >= self.window_s:
                self._sweep(cutoff)
                self._last_sweep = now

            hits = [t for t in self._hits.get(key, ()) if t > cutoff]

            if len(hits) >= self.max_hits:
                self._hits[key] = hits
                retry_after = max(hits[0] + self.window_s - now, 0.0)
                return RateLimitDecision(allowed=False, remaining=0, retry_after_s=retry_after)

            hits.append(now)
            self._hits[key] = hits
            return RateLimitDecision(allowed=True, remaining=self.max_hits - len(hits))

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._hits.pop(key, None)

    @property
    def tracked_keys(self) -> int:
        return len(self._hits)


class RedisSlidingWindowLimiter(SubmissionRateLimiter):
    """Limiter shared by every instance pointed at the same Redis."""

    def __init__(
        self,
        redis: RedisManager,
        max_hits: int,
        window_s: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(max_hits, window_s)
        self._redis = redis
        self._clock = clock

    async def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        allowed, count, oldest = await self._redis.sliding_window_hit(
            RATE_LIMIT_SCOPE, key, now, self.window_s, self.max_hits
        )
        if not allowed:
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                retry_after_s=max(oldest + self.window_s - now, 0.0),
            )
        return RateLimitDecision(allowed=True, remaining=max(self.max_hits - count, 0))

    async def reset(self, key: str) -> None:
        await self._redis.clear_window(RATE_LIMIT_SCOPE, key)


def build_rate_limiter(
    settings: Settings | None = None, redis: RedisManager | None = None
) -> SubmissionRateLimiter:
    settings = settings or get_settings()
    if settings.submission_rate_backend == RateLimitBackend.REDIS:
        if redis is None:
            raise ValueError("Redis rate limit backend selected but no RedisManager given")
        logger.info("rate_limiter_backend", backend="redis")
        return RedisSlidingWindowLimiter(
            redis, settings.submission_rate_limit, settings.submission_rate_window_s
        )
    logger.info("rate_limiter_backend", backend="memory")
    return InMemorySlidingWindowLimiter(settings.submission_rate_limit, settings.submission_rate_window_s)
