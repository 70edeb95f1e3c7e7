"""Normalize expired mutes, bans and action rows out of band."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from chatguard.moderation.domain.repository import ModerationRecordStore
from chatguard.obs import metrics

_JOB_NAME = "moderation-cleanup"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SweepReport:
    started_at: datetime
    unmuted: int = 0
    unbanned: int = 0
    actions_deactivated: int = 0
    duration_seconds: float = 0.0


async def run(store: ModerationRecordStore, *, now: datetime | None = None) -> SweepReport:
    """Clear restriction flags whose expiry has passed and retire expired action rows.

    The live status read already treats these as lifted, so a skipped sweep only
    delays bookkeeping. Failures are counted and re-raised to the caller.
    """

    now = now or datetime.now(timezone.utc)
    started = time.perf_counter()
    try:
        result = await store.normalize_expired(now)
    except Exception:
        metrics.record_job_run(_JOB_NAME, result="error", duration_seconds=time.perf_counter() - started)
        raise
    duration = time.perf_counter() - started
    metrics.record_job_run(_JOB_NAME, result="success", duration_seconds=duration)
    return SweepReport(
        started_at=now,
        unmuted=result.unmuted,
        unbanned=result.unbanned,
        actions_deactivated=result.actions_deactivated,
        duration_seconds=duration,
    )


async def run_forever(store: ModerationRecordStore, *, interval_seconds: float) -> None:
    """Sweep every ``interval_seconds`` until cancelled."""

    while True:
        try:
            report = await run(store)
        except Exception:
            logger.exception("moderation cleanup sweep failed", extra={"operation": _JOB_NAME})
        else:
            if report.unmuted or report.unbanned or report.actions_deactivated:
                logger.info(
                    "moderation cleanup sweep",
                    extra={
                        "operation": _JOB_NAME,
                        "unmuted": report.unmuted,
                        "unbanned": report.unbanned,
                        "actions_deactivated": report.actions_deactivated,
                    },
                )
        await asyncio.sleep(interval_seconds)


def spawn(
    store: ModerationRecordStore | None = None,
    *,
    interval_seconds: float | None = None,
) -> asyncio.Task:
    """Schedule the sweep loop on the running event loop with settings-driven defaults."""

    from chatguard.moderation.domain.container import get_record_store
    from chatguard.settings import settings

    interval = interval_seconds or settings.moderation_cleanup_interval_seconds
    return asyncio.create_task(
        run_forever(store or get_record_store(), interval_seconds=interval),
        name=_JOB_NAME,
    )
