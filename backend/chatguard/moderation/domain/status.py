"""Read path: live moderation status with lazy restriction expiry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from chatguard.moderation.domain.config import ModerationConfig
from chatguard.moderation.domain.models import StatusView, UserModerationStatus
from chatguard.moderation.domain.repository import ModerationRecordStore


def _active_until(flag: bool, until: Optional[datetime], now: datetime) -> bool:
    if not flag:
        return False
    return until is None or until > now


def live_view(status: Optional[UserModerationStatus], config: ModerationConfig, now: datetime) -> StatusView:
    """Project a stored row onto ``now``; past expiries read as lifted.

    Nothing is written here; the cleanup job normalizes stored flags later.
    """

    if status is None:
        return StatusView(
            can_chat=True,
            is_muted=False,
            is_banned=False,
            trust_score=config.trust_score.initial_score,
            strikes=0,
        )
    is_muted = _active_until(status.is_muted, status.muted_until, now)
    is_banned = _active_until(status.is_banned, status.banned_until, now)
    return StatusView(
        can_chat=not (is_muted or is_banned),
        is_muted=is_muted,
        is_banned=is_banned,
        trust_score=status.trust_score,
        strikes=status.strikes,
        muted_until=status.muted_until if is_muted else None,
        banned_until=status.banned_until if is_banned else None,
    )


@dataclass
class StatusOracle:
    repository: ModerationRecordStore

    async def get_status(
        self,
        user_id: str,
        config: ModerationConfig,
        *,
        now: datetime | None = None,
    ) -> StatusView:
        now = now or datetime.now(timezone.utc)
        status = await self.repository.find_status(user_id)
        return live_view(status, config, now)
