from __future__ import annotations

from datetime import timedelta

import pytest

from chatguard.moderation.domain.executor import ActionExecutor
from chatguard.moderation.domain.models import ActionType, ModerationAction, ReversalType
from chatguard.moderation.domain.repository import InMemoryModerationRecordStore
from chatguard.moderation.domain.trust import TrustLedger


class _FailingActionStore(InMemoryModerationRecordStore):
    async def create_action(self, fields):
        raise ConnectionError("db down")


class _FailingStatusStore(InMemoryModerationRecordStore):
    async def update_status(self, user_id, fields, *, expected_version=None):
        raise ConnectionError("db down")


def _executor(store: InMemoryModerationRecordStore) -> ActionExecutor:
    return ActionExecutor(repository=store, ledger=TrustLedger(repository=store))


@pytest.mark.asyncio
async def test_execute_persists_record_and_status(config, now):
    store = InMemoryModerationRecordStore()
    action = ModerationAction(ActionType.MUTE, "High severity violation", 5)
    assert await _executor(store).execute("u1", action, config, now=now) is True

    [record] = store.actions
    assert record.action == "MUTE"
    assert record.moderator_id is None
    assert record.created_at == now
    assert record.expires_at == now + timedelta(minutes=5)
    status = store.statuses["u1"]
    assert status.is_muted
    assert status.trust_score == 90


@pytest.mark.asyncio
async def test_execute_records_moderator(config, now):
    store = InMemoryModerationRecordStore()
    action = ModerationAction(ActionType.STRIKE, "manual strike")
    assert await _executor(store).execute("u1", action, config, moderator_id="mod-1", now=now)
    assert store.actions[0].moderator_id == "mod-1"
    assert store.actions[0].expires_at is None


@pytest.mark.asyncio
async def test_record_failure_returns_false(config, now):
    store = _FailingActionStore()
    action = ModerationAction(ActionType.BAN, "critical", 60)
    assert await _executor(store).execute("u1", action, config, now=now) is False
    assert store.statuses == {}


@pytest.mark.asyncio
async def test_status_failure_leaves_audit_row(config, now):
    store = _FailingStatusStore()
    action = ModerationAction(ActionType.BAN, "critical", 60)
    assert await _executor(store).execute("u1", action, config, now=now) is False
    assert [record.action for record in store.actions] == ["BAN"]


@pytest.mark.asyncio
async def test_reverse_appends_audit_record(config, now):
    store = InMemoryModerationRecordStore()
    executor = _executor(store)
    await executor.execute("u1", ModerationAction(ActionType.BAN, "critical", 60), config, now=now)
    assert await executor.reverse("u1", ReversalType.UNBAN, config, moderator_id="mod-1", reason="appeal", now=now)
    assert [record.action for record in store.actions] == ["BAN", "UNBAN"]
    assert store.actions[-1].moderator_id == "mod-1"
    assert not store.statuses["u1"].is_banned
