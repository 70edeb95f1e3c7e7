"""Lightweight service container wiring the moderation engine to its stores."""

from __future__ import annotations

from typing import Any, Iterable, Optional

import asyncpg

from chatguard import obs
from chatguard.infra import postgres
from chatguard.moderation.domain.classifiers import TextClassifier
from chatguard.moderation.domain.config import ModerationConfig, load_moderation_config, moderation_profile
from chatguard.moderation.domain.counters import CounterStore
from chatguard.moderation.domain.detectors import DetectorPipeline
from chatguard.moderation.domain.executor import ActionExecutor
from chatguard.moderation.domain.repository import InMemoryModerationRecordStore, ModerationRecordStore
from chatguard.moderation.domain.service import ModerationService
from chatguard.moderation.domain.status import StatusOracle
from chatguard.moderation.domain.trust import TrustLedger
from chatguard.moderation.infra.counter_store import RedisCounterStore
from chatguard.moderation.infra.postgres_repo import PostgresModerationRecordStore
from chatguard.settings import settings

_records: ModerationRecordStore = InMemoryModerationRecordStore()
_counters: CounterStore = RedisCounterStore()
_classifiers: dict[str, Optional[TextClassifier]] = {"toxicity": None, "pump_dump": None, "malicious_links": None}
_config: ModerationConfig | None = None
_service: ModerationService | None = None


def _build_service() -> ModerationService:
    ledger = TrustLedger(repository=_records)
    return ModerationService(
        pipeline=DetectorPipeline.default(_counters, _records, **_classifiers),
        repository=_records,
        executor=ActionExecutor(repository=_records, ledger=ledger),
        oracle=StatusOracle(repository=_records),
        timeout_seconds=settings.moderation_call_timeout_seconds,
        exempt_user_ids=settings.moderation_staff_ids,
    )


def configure(
    *,
    records: ModerationRecordStore | None = None,
    counters: CounterStore | None = None,
    redis: Any = None,
    toxicity: TextClassifier | None = None,
    pump_dump: TextClassifier | None = None,
    malicious_links: TextClassifier | None = None,
    config: ModerationConfig | None = None,
    exempt_user_ids: Iterable[str] | None = None,
) -> ModerationService:
    """Swap collaborators and rebuild the service; omitted arguments keep current wiring."""

    global _records, _counters, _config, _service
    if records is not None:
        _records = records
    if counters is not None:
        _counters = counters
    elif redis is not None:
        _counters = RedisCounterStore(redis)
    for name, classifier in (("toxicity", toxicity), ("pump_dump", pump_dump), ("malicious_links", malicious_links)):
        if classifier is not None:
            _classifiers[name] = classifier
    if config is not None:
        _config = config
    _service = _build_service()
    if exempt_user_ids is not None:
        _service.exempt_user_ids = frozenset(exempt_user_ids)
    return _service


def configure_postgres(pool: asyncpg.Pool, redis: Any = None) -> ModerationService:
    return configure(records=PostgresModerationRecordStore(pool), redis=redis)


async def configure_from_settings() -> ModerationService:
    """Initialise logging and the shared asyncpg pool, then wire the Postgres store."""

    obs.init()
    pool = await postgres.get_pool()
    service = configure_postgres(pool)
    get_moderation_config()
    return service


def get_moderation_service() -> ModerationService:
    global _service
    if _service is None:
        _service = _build_service()
    return _service


def get_record_store() -> ModerationRecordStore:
    return _records


def get_moderation_config() -> ModerationConfig:
    """Resolved config for callers; loaded once from settings unless configured explicitly."""

    global _config
    if _config is None:
        _config = reload_moderation_config()
    return _config


def reload_moderation_config() -> ModerationConfig:
    global _config
    profile = settings.resolved_profile()
    if settings.moderation_config_path:
        _config = load_moderation_config(settings.moderation_config_path, profile=profile)
    else:
        _config = moderation_profile(profile)
    return _config


def reset() -> None:
    """Restore in-memory defaults; used by tests."""

    global _records, _counters, _config, _service
    _records = InMemoryModerationRecordStore()
    _counters = RedisCounterStore()
    for name in _classifiers:
        _classifiers[name] = None
    _config = None
    _service = None
