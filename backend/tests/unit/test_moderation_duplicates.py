import asyncio

import pytest

from chatguard.moderation.domain.duplicates import DuplicateSuppressor, message_fingerprint
from chatguard.moderation.infra.counter_store import RedisCounterStore


def test_fingerprint_ignores_case_but_not_user():
    assert message_fingerprint("u1", "Hello There") == message_fingerprint("u1", "hello there")
    assert message_fingerprint("u1", "hello") != message_fingerprint("u2", "hello")


@pytest.mark.asyncio
async def test_second_identical_message_is_duplicate():
    suppressor = DuplicateSuppressor(RedisCounterStore())
    assert await suppressor.is_duplicate("u1", "gm everyone") is False
    assert await suppressor.is_duplicate("u1", "GM everyone") is True
    assert await suppressor.is_duplicate("u2", "gm everyone") is False


@pytest.mark.asyncio
async def test_duplicate_hit_does_not_extend_marker_ttl(fake_redis):
    suppressor = DuplicateSuppressor(RedisCounterStore())
    await suppressor.is_duplicate("u1", "hello", ttl_seconds=30)
    key = f"chat:duplicate:{message_fingerprint('u1', 'hello')}"
    await fake_redis.expire(key, 3)
    assert await suppressor.is_duplicate("u1", "hello", ttl_seconds=30) is True
    assert await fake_redis.ttl(key) <= 3


@pytest.mark.asyncio
async def test_marker_expiry_admits_resend(fake_redis):
    suppressor = DuplicateSuppressor(RedisCounterStore())
    await suppressor.is_duplicate("u1", "hello")
    await fake_redis.delete(f"chat:duplicate:{message_fingerprint('u1', 'hello')}")
    assert await suppressor.is_duplicate("u1", "hello") is False


@pytest.mark.asyncio
async def test_concurrent_identical_messages_admit_exactly_one():
    suppressor = DuplicateSuppressor(RedisCounterStore())
    results = await asyncio.gather(*(suppressor.is_duplicate("u1", "gm") for _ in range(5)))
    assert results.count(False) == 1
    assert results.count(True) == 4
