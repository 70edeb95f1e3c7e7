import asyncio

import pytest

from chatguard.moderation.domain.rate_limit import FixedWindowRateLimiter, rate_limit_key
from chatguard.moderation.infra.counter_store import RedisCounterStore

WINDOW_START = 1_714_564_800.0  # divisible by 15


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
    limiter = FixedWindowRateLimiter(RedisCounterStore())
    first = await limiter.check_and_consume("chat:ratelimit:u5", 2, 60, now=WINDOW_START)
    second = await limiter.check_and_consume("chat:ratelimit:u5", 2, 60, now=WINDOW_START + 1)
    assert first.allowed and second.allowed
    assert first.remaining == 1
    assert second.remaining == 0


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
    limiter = FixedWindowRateLimiter(RedisCounterStore())
    await limiter.check_and_consume("chat:ratelimit:u6", 1, 60, now=WINDOW_START)
    result = await limiter.check_and_consume("chat:ratelimit:u6", 1, 60, now=WINDOW_START + 2)
    assert not result.allowed
    assert result.remaining == 0
    assert result.count == 2


@pytest.mark.asyncio
async def test_rate_limit_resets_on_next_fixed_window():
    limiter = FixedWindowRateLimiter(RedisCounterStore())
    for offset in range(3):
        await limiter.check_and_consume("chat:ratelimit:u7", 3, 15, now=WINDOW_START + offset)
    blocked = await limiter.check_and_consume("chat:ratelimit:u7", 3, 15, now=WINDOW_START + 14)
    assert not blocked.allowed
    assert blocked.reset_at == WINDOW_START + 15

    fresh = await limiter.check_and_consume("chat:ratelimit:u7", 3, 15, now=WINDOW_START + 15)
    assert fresh.allowed
    assert fresh.count == 1
    assert fresh.reset_at == WINDOW_START + 30


@pytest.mark.asyncio
async def test_rate_limit_window_key_carries_ttl(fake_redis):
    limiter = FixedWindowRateLimiter(RedisCounterStore())
    key = rate_limit_key("u8")
    await limiter.check_and_consume(key, 5, 15, now=WINDOW_START)
    slot_key = f"{key}:{int(WINDOW_START // 15)}"
    assert await fake_redis.get(slot_key) == "1"
    ttl = await fake_redis.ttl(slot_key)
    assert 0 < ttl <= 15


@pytest.mark.asyncio
async def test_rate_limit_non_positive_limit_rejects_without_counting(fake_redis):
    limiter = FixedWindowRateLimiter(RedisCounterStore(), clock=lambda: WINDOW_START)
    result = await limiter.check_and_consume("chat:ratelimit:u9", 0, 15)
    assert not result.allowed
    assert await fake_redis.keys("chat:ratelimit:u9*") == []


@pytest.mark.asyncio
async def test_concurrent_burst_admits_exactly_limit():
    limiter = FixedWindowRateLimiter(RedisCounterStore())
    results = await asyncio.gather(
        *(limiter.check_and_consume("chat:ratelimit:u10", 5, 15, now=WINDOW_START) for _ in range(8))
    )
    assert sum(1 for result in results if result.allowed) == 5
    assert sorted(result.count for result in results) == list(range(1, 9))
