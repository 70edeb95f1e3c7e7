import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from chatguard.infra import postgres
from chatguard.moderation.domain import container
from chatguard.moderation.domain.config import ModerationConfig


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from chatguard.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def reset_container():
	container.reset()
	try:
		yield
	finally:
		container.reset()


@pytest.fixture
def config() -> ModerationConfig:
	return ModerationConfig.default()


@pytest.fixture
def now() -> datetime:
	return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
