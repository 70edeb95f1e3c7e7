"""Public entry points of the chat moderation engine."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Awaitable, Iterable, Iterator, Optional, TypeVar

from chatguard.moderation.domain import escalation
from chatguard.moderation.domain.config import ModerationConfig
from chatguard.moderation.domain.detectors import DetectorPipeline
from chatguard.moderation.domain.executor import ActionExecutor
from chatguard.moderation.domain.models import (
    ModerationAction,
    ModerationActionRecord,
    ModerationResult,
    ReversalType,
    ScreenOutcome,
    StatusView,
)
from chatguard.moderation.domain.repository import ExpiryNormalization, ModerationRecordStore
from chatguard.moderation.domain.status import StatusOracle, live_view
from chatguard.obs import logging as obs_logging
from chatguard.obs import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def _operation(user_id: Optional[str], name: str) -> Iterator[None]:
    tokens = obs_logging.bind_context(user_id=user_id, operation=name)
    try:
        yield
    finally:
        obs_logging.reset_context(tokens)


class ModerationService:
    """Facade over detection, escalation, execution and status reads.

    Analysis never writes business state and execution is a separate call, so a
    failed ``execute_action`` cannot corrupt an already returned result. Store
    errors and timeouts are logged here and turned into typed results; only
    cancellation propagates.
    """

    def __init__(
        self,
        *,
        pipeline: DetectorPipeline,
        repository: ModerationRecordStore,
        executor: ActionExecutor,
        oracle: StatusOracle,
        timeout_seconds: Optional[float] = None,
        exempt_user_ids: Iterable[str] = (),
    ) -> None:
        self.pipeline = pipeline
        self.repository = repository
        self.executor = executor
        self.oracle = oracle
        self.timeout_seconds = timeout_seconds
        self.exempt_user_ids = frozenset(exempt_user_ids)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        if not self.timeout_seconds:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)

    async def analyze_message(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime | None = None,
    ) -> ModerationResult:
        now = now or datetime.now(timezone.utc)
        started = time.perf_counter()
        with _operation(user_id, "analyze_message"):
            try:
                violations = await self._bounded(self.pipeline.detect(user_id, content, config, now=now))
            except Exception:
                logger.exception("message analysis failed", extra={"user_id": user_id})
                violations = []
            action = escalation.resolve(violations, config)
            result = ModerationResult(
                violations=tuple(violations),
                action=action,
                reason=escalation.summarize(violations),
                duration_minutes=action.duration_minutes,
            )
            metrics.inc_analysis(action.type.value if result.requires_action else "none")
            metrics.ANALYSIS_LATENCY.observe(time.perf_counter() - started)
            if result.requires_action:
                logger.info(
                    "message flagged",
                    extra={
                        "user_id": user_id,
                        "action": action.type.value,
                        "violations": [item.value for item in result.violation_types],
                    },
                )
            return result

    async def execute_action(
        self,
        user_id: str,
        action: ModerationAction,
        config: ModerationConfig,
        moderator_id: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> bool:
        with _operation(user_id, "execute_action"):
            try:
                return await self._bounded(
                    self.executor.execute(user_id, action, config, moderator_id=moderator_id, now=now)
                )
            except Exception:
                metrics.inc_action(action.type.value, result="error")
                logger.exception("moderation action failed", extra={"user_id": user_id, "action": action.type.value})
                return False

    async def get_user_moderation_status(
        self,
        user_id: str,
        config: ModerationConfig,
        *,
        now: datetime | None = None,
    ) -> StatusView:
        now = now or datetime.now(timezone.utc)
        with _operation(user_id, "get_user_moderation_status"):
            try:
                return await self._bounded(self.oracle.get_status(user_id, config, now=now))
            except Exception:
                logger.exception("moderation status lookup failed", extra={"user_id": user_id})
                view = live_view(None, config, now)
                if config.fail_closed:
                    return StatusView(
                        can_chat=False,
                        is_muted=False,
                        is_banned=False,
                        trust_score=view.trust_score,
                        strikes=0,
                    )
                return view

    async def cleanup_expired_actions(self, *, now: datetime | None = None) -> ExpiryNormalization:
        now = now or datetime.now(timezone.utc)
        with _operation(None, "cleanup_expired_actions"):
            try:
                report = await self._bounded(self.repository.normalize_expired(now))
            except Exception:
                logger.exception("moderation cleanup failed")
                return ExpiryNormalization()
            logger.info(
                "moderation cleanup complete",
                extra={
                    "unmuted": report.unmuted,
                    "unbanned": report.unbanned,
                    "actions_deactivated": report.actions_deactivated,
                },
            )
            return report

    async def screen_message(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime | None = None,
    ) -> ScreenOutcome:
        """Send gate: check live status, analyze, and enforce when violations fire."""

        if user_id in self.exempt_user_ids:
            return ScreenOutcome(allowed=True)
        now = now or datetime.now(timezone.utc)
        status = await self.get_user_moderation_status(user_id, config, now=now)
        if not status.can_chat:
            return ScreenOutcome(allowed=False, reason=status.denial_reason)
        result = await self.analyze_message(user_id, content, config, now=now)
        if not result.requires_action:
            return ScreenOutcome(allowed=True, result=result)
        executed = await self.execute_action(user_id, result.action, config, now=now)
        return ScreenOutcome(
            allowed=False,
            reason=f"Message blocked: {result.reason}",
            result=result,
            executed=executed,
        )

    async def get_moderation_history(self, user_id: str, *, limit: int = 20) -> list[ModerationActionRecord]:
        with _operation(user_id, "get_moderation_history"):
            try:
                records = await self._bounded(self.repository.list_actions(user_id, limit=limit))
            except Exception:
                logger.exception("moderation history lookup failed", extra={"user_id": user_id})
                return []
            return list(records)

    async def lift_mute(
        self,
        user_id: str,
        moderator_id: str,
        config: ModerationConfig,
        *,
        reason: str | None = None,
    ) -> bool:
        return await self._reverse(user_id, ReversalType.UNMUTE, moderator_id, config, reason or "Mute lifted")

    async def lift_ban(
        self,
        user_id: str,
        moderator_id: str,
        config: ModerationConfig,
        *,
        reason: str | None = None,
    ) -> bool:
        return await self._reverse(user_id, ReversalType.UNBAN, moderator_id, config, reason or "Ban lifted")

    async def clear_strikes(
        self,
        user_id: str,
        moderator_id: str,
        config: ModerationConfig,
        *,
        reason: str | None = None,
    ) -> bool:
        return await self._reverse(user_id, ReversalType.CLEAR_STRIKES, moderator_id, config, reason or "Strikes cleared")

    async def _reverse(
        self,
        user_id: str,
        reversal: ReversalType,
        moderator_id: str,
        config: ModerationConfig,
        reason: str,
    ) -> bool:
        with _operation(user_id, reversal.value.lower()):
            try:
                return await self._bounded(
                    self.executor.reverse(user_id, reversal, config, moderator_id=moderator_id, reason=reason)
                )
            except Exception:
                metrics.inc_action(reversal.value, result="error")
                logger.exception(
                    "moderation reversal failed",
                    extra={"user_id": user_id, "action": reversal.value, "moderator_id": moderator_id},
                )
                return False
