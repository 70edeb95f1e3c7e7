"""Trust score and restriction state transitions for user moderation status rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from chatguard.moderation.domain.config import ModerationConfig, TrustScoreConfig
from chatguard.moderation.domain.models import ActionType, ModerationAction, ReversalType, UserModerationStatus
from chatguard.moderation.domain.repository import ModerationRecordStore
from chatguard.obs import metrics

logger = logging.getLogger(__name__)


class TrustLedgerConflict(RuntimeError):
    """Raised when a status row kept changing underneath every retry."""


def penalty_for(action_type: ActionType, trust: TrustScoreConfig) -> int:
    if action_type is ActionType.BAN:
        return trust.ban_penalty
    if action_type is ActionType.MUTE:
        return trust.mute_penalty
    if action_type is ActionType.STRIKE:
        return trust.strike_penalty
    if action_type is ActionType.WARNING:
        return trust.warning_penalty
    return 0


def transition(
    status: UserModerationStatus,
    action: ModerationAction,
    config: ModerationConfig,
    now: datetime,
) -> dict[str, Any]:
    """Fields to write for ``action``; scores only ever go down and stay clamped."""

    trust = config.trust_score
    fields: dict[str, Any] = {
        "last_violation": now,
        "violation_count": status.violation_count + 1,
        "trust_score": trust.clamp(status.trust_score - penalty_for(action.type, trust)),
    }
    if action.type is ActionType.BAN:
        fields["is_banned"] = True
        fields["banned_until"] = action.expires_at(now)
    elif action.type is ActionType.MUTE:
        fields["is_muted"] = True
        fields["muted_until"] = action.expires_at(now)
    elif action.type is ActionType.STRIKE:
        fields["strikes"] = status.strikes + 1
    return fields


def reversal_fields(reversal: ReversalType) -> dict[str, Any]:
    if reversal is ReversalType.UNMUTE:
        return {"is_muted": False, "muted_until": None}
    if reversal is ReversalType.UNBAN:
        return {"is_banned": False, "banned_until": None}
    return {"strikes": 0}


@dataclass
class TrustLedger:
    """Applies status transitions with optimistic concurrency on the row version."""

    repository: ModerationRecordStore
    max_attempts: int = 5

    async def hydrate(self, user_id: str, config: ModerationConfig) -> UserModerationStatus:
        status = await self.repository.find_status(user_id)
        if status is not None:
            return status
        return await self.repository.create_status(
            {"user_id": user_id, "trust_score": config.trust_score.initial_score}
        )

    async def apply(
        self,
        user_id: str,
        action: ModerationAction,
        config: ModerationConfig,
        *,
        now: datetime | None = None,
    ) -> UserModerationStatus:
        now = now or datetime.now(timezone.utc)
        return await self._write(user_id, config, lambda status: transition(status, action, config, now))

    async def lift(self, user_id: str, reversal: ReversalType, config: ModerationConfig) -> UserModerationStatus:
        fields = reversal_fields(reversal)
        return await self._write(user_id, config, lambda _status: fields)

    async def _write(
        self,
        user_id: str,
        config: ModerationConfig,
        compute: Callable[[UserModerationStatus], Mapping[str, Any]],
    ) -> UserModerationStatus:
        for attempt in range(1, self.max_attempts + 1):
            status = await self.hydrate(user_id, config)
            updated = await self.repository.update_status(
                user_id,
                compute(status),
                expected_version=status.version,
            )
            if updated is not None:
                return updated
            metrics.TRUST_LEDGER_CONFLICTS.inc()
            logger.info(
                "moderation status version conflict",
                extra={"user_id": user_id, "attempt": attempt, "version": status.version},
            )
        raise TrustLedgerConflict(f"status for {user_id} changed during {self.max_attempts} attempts")
