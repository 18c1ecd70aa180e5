"""
Sliding-window rate limiter tests (in-memory and Redis-backed).

Run: pytest backend/tests/test_rate_limiter.py -v
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import RateLimitBackend, Settings
from shared.utils.redis_manager import RedisManager
from intake.rate_limiter import (
    InMemorySlidingWindowLimiter,
    RedisSlidingWindowLimiter,
    build_rate_limiter,
)


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> InMemorySlidingWindowLimiter:
    return InMemorySlidingWindowLimiter(max_hits=5, window_s=3600, clock=clock)


@pytest.mark.asyncio
async def test_sixth_hit_inside_window_is_refused(limiter, clock) -> None:
    for i in range(5):
        decision = await limiter.hit("1.2.3.4")
        assert decision.allowed
        assert decision.remaining == 4 - i
        clock.now += 60

    refused = await limiter.hit("1.2.3.4")

    assert not refused.allowed
    assert refused.remaining == 0
    # oldest hit was at t=1000, now is t=1300
    assert refused.retry_after_s == pytest.approx(3300)


@pytest.mark.asyncio
async def test_window_expiry_frees_slots(limiter, clock) -> None:
    for _ in range(5):
        await limiter.hit("1.2.3.4")
    assert not (await limiter.hit("1.2.3.4")).allowed

    clock.now += 3601

    assert (await limiter.hit("1.2.3.4")).allowed


@pytest.mark.asyncio
async def test_refused_hits_are_not_recorded(limiter, clock) -> None:
    for _ in range(5):
        await limiter.hit("k")
    for _ in range(10):
        await limiter.hit("k")

    clock.now += 3601
    for _ in range(5):
        assert (await limiter.hit("k")).allowed


@pytest.mark.asyncio
async def test_keys_are_independent(limiter) -> None:
    for _ in range(5):
        await limiter.hit("a")
    assert not (await limiter.hit("a")).allowed
    assert (await limiter.hit("b")).allowed


@pytest.mark.asyncio
async def test_concurrent_hits_never_exceed_limit(limiter) -> None:
    decisions = await asyncio.gather(*(limiter.hit("burst") for _ in range(20)))
    assert sum(d.allowed for d in decisions) == 5


@pytest.mark.asyncio
async def test_expired_origins_are_forgotten(clock) -> None:
    limiter = InMemorySlidingWindowLimiter(max_hits=5, window_s=10, clock=clock)
    for i in range(1000):
        await limiter.hit(f"10.0.{i // 256}.{i % 256}")
    assert limiter.tracked_keys == 1000

    clock.now += 100
    await limiter.hit("fresh")

    assert limiter.tracked_keys == 1


@pytest.mark.asyncio
async def test_sweep_keeps_origins_still_inside_window(clock) -> None:
    limiter = InMemorySlidingWindowLimiter(max_hits=2, window_s=10, clock=clock)
    await limiter.hit("old")
    clock.now += 8
    await limiter.hit("recent")
    await limiter.hit("recent")

    clock.now += 4
    await limiter.hit("other")

    assert limiter.tracked_keys == 2
    assert not (await limiter.hit("recent")).allowed


@pytest.mark.asyncio
async def test_reset_clears_key(limiter) -> None:
    for _ in range(5):
        await limiter.hit("k")
    await limiter.reset("k")
    assert (await limiter.hit("k")).allowed


def test_invalid_configuration_rejected() -> None:
    with pytest.raises(ValueError):
        InMemorySlidingWindowLimiter(max_hits=0, window_s=60)


# ── Redis-backed ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_redis_limiter_maps_refusal_to_retry_after(clock) -> None:
    redis = MagicMock()
    redis.sliding_window_hit = AsyncMock(return_value=(False, 5, clock.now - 600))
    limiter = RedisSlidingWindowLimiter(redis, max_hits=5, window_s=3600, clock=clock)

    decision = await limiter.hit("1.2.3.4")

    assert not decision.allowed
    assert decision.retry_after_s == pytest.approx(3000)
    redis.sliding_window_hit.assert_awaited_once_with("submissions", "1.2.3.4", clock.now, 3600, 5)


@pytest.mark.asyncio
async def test_redis_limiter_reports_remaining(clock) -> None:
    redis = MagicMock()
    redis.sliding_window_hit = AsyncMock(return_value=(True, 2, clock.now))
    limiter = RedisSlidingWindowLimiter(redis, max_hits=5, window_s=3600, clock=clock)

    decision = await limiter.hit("1.2.3.4")

    assert decision.allowed
    assert decision.remaining == 3


@pytest.mark.asyncio
async def test_redis_manager_runs_window_script(settings) -> None:
    manager = RedisManager(settings)
    manager._pool = MagicMock()
    manager._pool.eval = AsyncMock(return_value=[1, 1, 1_000_000])

    allowed, count, oldest = await manager.sliding_window_hit("submissions", "1.2.3.4", 1000.0, 3600, 5)

    assert (allowed, count, oldest) == (True, 1, 1000.0)
    args = manager._pool.eval.await_args.args
    assert args[1] == 1
    assert args[2] == "ratelimit:submissions:1.2.3.4"
    assert args[3:6] == ("1000000", "3600000", "5")


def test_factory_selects_backend(settings) -> None:
    assert isinstance(build_rate_limiter(settings), InMemorySlidingWindowLimiter)

    redis_settings = Settings(submission_rate_backend=RateLimitBackend.REDIS)
    assert isinstance(build_rate_limiter(redis_settings, MagicMock()), RedisSlidingWindowLimiter)
    with pytest.raises(ValueError):
        build_rate_limiter(redis_settings)
