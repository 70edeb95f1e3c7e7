"""Write path: persist a moderation action and drive the trust ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from chatguard.moderation.domain.config import ModerationConfig
from chatguard.moderation.domain.models import ModerationAction, ReversalType
from chatguard.moderation.domain.repository import ModerationRecordStore
from chatguard.moderation.domain.trust import TrustLedger
from chatguard.obs import metrics

logger = logging.getLogger(__name__)


@dataclass
class ActionExecutor:
    """Records actions and applies their status transitions.

    The action row and the status update are separate writes; when the second
    one fails the audit row stays behind and the call reports failure.
    """

    repository: ModerationRecordStore
    ledger: TrustLedger

    async def execute(
        self,
        user_id: str,
        action: ModerationAction,
        config: ModerationConfig,
        *,
        moderator_id: Optional[str] = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or datetime.now(timezone.utc)
        log_extra = {"user_id": user_id, "action": action.type.value, "moderator_id": moderator_id}
        try:
            record = await self.repository.create_action(
                {
                    "user_id": user_id,
                    "moderator_id": moderator_id,
                    "action": action.type.value,
                    "reason": action.reason,
                    "duration_minutes": action.duration_minutes,
                    "created_at": now,
                    "expires_at": action.expires_at(now),
                }
            )
        except Exception:
            metrics.inc_action(action.type.value, result="record_failed")
            logger.exception("failed to persist moderation action", extra=log_extra)
            return False
        try:
            status = await self.ledger.apply(user_id, action, config, now=now)
        except Exception:
            metrics.inc_action(action.type.value, result="status_failed")
            logger.exception("failed to update moderation status", extra={**log_extra, "action_id": record.id})
            return False
        metrics.inc_action(action.type.value, result="ok")
        logger.info(
            "moderation action executed",
            extra={**log_extra, "action_id": record.id, "trust_score": status.trust_score},
        )
        return True

    async def reverse(
        self,
        user_id: str,
        reversal: ReversalType,
        config: ModerationConfig,
        *,
        moderator_id: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or datetime.now(timezone.utc)
        log_extra = {"user_id": user_id, "action": reversal.value, "moderator_id": moderator_id}
        try:
            await self.ledger.lift(user_id, reversal, config)
            await self.repository.create_action(
                {
                    "user_id": user_id,
                    "moderator_id": moderator_id,
                    "action": reversal.value,
                    "reason": reason or "",
                    "created_at": now,
                }
            )
        except Exception:
            metrics.inc_action(reversal.value, result="failed")
            logger.exception("failed to apply moderation reversal", extra=log_extra)
            return False
        metrics.inc_action(reversal.value, result="ok")
        logger.info("moderation reversal applied", extra=log_extra)
        return True
