from __future__ import annotations

from datetime import timedelta

import pytest

from chatguard.moderation.domain.executor import ActionExecutor
from chatguard.moderation.domain.models import ActionType, ModerationAction
from chatguard.moderation.domain.repository import InMemoryModerationRecordStore
from chatguard.moderation.domain.status import StatusOracle
from chatguard.moderation.domain.trust import TrustLedger


async def _execute(store, action, config, now):
    executor = ActionExecutor(repository=store, ledger=TrustLedger(repository=store))
    assert await executor.execute("u1", action, config, now=now)


@pytest.mark.asyncio
async def test_unknown_user_gets_clean_status(config, now):
    view = await StatusOracle(InMemoryModerationRecordStore()).get_status("ghost", config, now=now)
    assert view.can_chat
    assert view.trust_score == config.trust_score.initial_score
    assert view.strikes == 0
    assert view.denial_reason is None


@pytest.mark.asyncio
async def test_ban_expires_lazily_without_sweep(config, now):
    store = InMemoryModerationRecordStore()
    await _execute(store, ModerationAction(ActionType.BAN, "critical", 60), config, now)
    oracle = StatusOracle(store)

    during = await oracle.get_status("u1", config, now=now + timedelta(minutes=30))
    assert during.is_banned and not during.can_chat
    assert during.banned_until == now + timedelta(minutes=60)
    assert during.denial_reason == "You are banned from chat"

    after = await oracle.get_status("u1", config, now=now + timedelta(minutes=61))
    assert not after.is_banned and after.can_chat
    assert after.banned_until is None
    # stored flag untouched until the sweeper runs
    assert store.statuses["u1"].is_banned


@pytest.mark.asyncio
async def test_mute_denial_reason_includes_timestamp(config, now):
    store = InMemoryModerationRecordStore()
    await _execute(store, ModerationAction(ActionType.MUTE, "high", 5), config, now)
    view = await StatusOracle(store).get_status("u1", config, now=now)
    expected = (now + timedelta(minutes=5)).isoformat()
    assert view.denial_reason == f"You are muted until {expected}"


@pytest.mark.asyncio
async def test_permanent_ban_never_expires(config, now):
    store = InMemoryModerationRecordStore()
    await _execute(store, ModerationAction(ActionType.BAN, "critical"), config, now)
    view = await StatusOracle(store).get_status("u1", config, now=now + timedelta(days=365))
    assert view.is_banned


@pytest.mark.asyncio
async def test_read_is_idempotent(config, now):
    store = InMemoryModerationRecordStore()
    await _execute(store, ModerationAction(ActionType.STRIKE, "medium"), config, now)
    oracle = StatusOracle(store)
    first = await oracle.get_status("u1", config, now=now)
    second = await oracle.get_status("u1", config, now=now)
    assert first == second
    assert store.statuses["u1"].version == 1
