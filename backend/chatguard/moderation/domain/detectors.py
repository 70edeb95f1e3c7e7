"""Message detectors and the pipeline that runs them against one message."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional, Protocol, Sequence

from chatguard.moderation.domain.classifiers import (
    TextClassifier,
    default_malicious_link_classifier,
    default_pump_dump_classifier,
    default_toxicity_classifier,
)
from chatguard.moderation.domain.config import ClassifierGateConfig, ModerationConfig
from chatguard.moderation.domain.counters import CounterStore
from chatguard.moderation.domain.duplicates import DuplicateSuppressor
from chatguard.moderation.domain.models import Severity, Violation, ViolationType
from chatguard.moderation.domain.rate_limit import FixedWindowRateLimiter, rate_limit_key
from chatguard.moderation.domain.repository import ModerationRecordStore
from chatguard.obs import metrics

logger = logging.getLogger(__name__)


class Detector(Protocol):
    name: str

    async def detect(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime,
    ) -> Optional[Violation]:
        ...


@lru_cache(maxsize=32)
def _repeated_char_pattern(threshold: int) -> re.Pattern[str]:
    return re.compile(r"(.)\1{%d,}" % max(1, threshold - 1), re.DOTALL)


def has_repeated_characters(content: str, threshold: int) -> bool:
    """True when any character appears ``threshold`` or more times in a row."""

    return _repeated_char_pattern(threshold).search(content) is not None


def caps_ratio(content: str) -> float:
    if not content:
        return 0.0
    upper = sum(1 for char in content if char.isupper())
    return upper / len(content)


class SpamDetector:
    """Rate limit, repeated characters and short-window duplicates; first hit wins."""

    name = "spam"

    def __init__(self, rate_limiter: FixedWindowRateLimiter, duplicates: DuplicateSuppressor) -> None:
        self._rate_limiter = rate_limiter
        self._duplicates = duplicates

    async def detect(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime,
    ) -> Optional[Violation]:
        if await self._rate_limited(user_id, config, now):
            return Violation(ViolationType.SPAM, Severity.HIGH, 95, "Rate limit exceeded")
        if has_repeated_characters(content, config.spam.repeated_char_threshold):
            return Violation(ViolationType.SPAM, Severity.MEDIUM, 80, "Repeated characters detected")
        if await self._duplicate(user_id, content, config):
            return Violation(ViolationType.SPAM, Severity.HIGH, 90, "Duplicate message detected")
        return None

    async def _rate_limited(self, user_id: str, config: ModerationConfig, now: datetime) -> bool:
        try:
            result = await self._rate_limiter.check_and_consume(
                rate_limit_key(user_id),
                config.rate_limit.messages_per_window,
                config.rate_limit.window_seconds,
                now=now.timestamp(),
            )
        except Exception as exc:
            metrics.inc_detector_failure("rate_limit", exc.__class__.__name__)
            logger.exception(
                "rate limit check failed",
                extra={"user_id": user_id, "detector": "rate_limit", "fail_closed": config.fail_closed},
            )
            return config.fail_closed
        return not result.allowed

    async def _duplicate(self, user_id: str, content: str, config: ModerationConfig) -> bool:
        try:
            return await self._duplicates.is_duplicate(
                user_id,
                content,
                ttl_seconds=config.spam.duplicate_ttl_seconds,
            )
        except Exception as exc:
            metrics.inc_detector_failure("duplicate", exc.__class__.__name__)
            logger.exception(
                "duplicate check failed",
                extra={"user_id": user_id, "detector": "duplicate", "fail_closed": config.fail_closed},
            )
            return config.fail_closed


class _ClassifierDetector:
    name = "classifier"
    violation_type: ViolationType
    severity: Severity
    confidence: int
    details: str

    def __init__(self, classifier: TextClassifier) -> None:
        self._classifier = classifier

    def gate(self, config: ModerationConfig) -> Optional[ClassifierGateConfig]:
        """Return the enabling config section, or None when the detector is always on."""
        return None

    async def detect(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime,
    ) -> Optional[Violation]:
        gate = self.gate(config)
        if gate is not None and not gate.enabled:
            return None
        score = await self._classifier.score(content)
        if not score.matched:
            return None
        if gate is not None and score.confidence < gate.confidence_threshold:
            return None
        return Violation(self.violation_type, self.severity, self.confidence, self.details)


class ToxicityDetector(_ClassifierDetector):
    name = "toxicity"
    violation_type = ViolationType.TOXICITY
    severity = Severity.HIGH
    confidence = 85
    details = "Toxic language detected"

    def gate(self, config: ModerationConfig) -> Optional[ClassifierGateConfig]:
        return config.toxicity


class PumpDumpDetector(_ClassifierDetector):
    name = "pump_dump"
    violation_type = ViolationType.PUMP_DUMP
    severity = Severity.CRITICAL
    confidence = 90
    details = "Pump & dump scheme detected"

    def gate(self, config: ModerationConfig) -> Optional[ClassifierGateConfig]:
        return config.pump_dump


class MaliciousLinkDetector(_ClassifierDetector):
    name = "malicious_link"
    violation_type = ViolationType.MALICIOUS_LINK
    severity = Severity.CRITICAL
    confidence = 95
    details = "Malicious link detected"


class CapsSpamDetector:
    name = "caps_spam"

    async def detect(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime,
    ) -> Optional[Violation]:
        settings = config.caps_spam
        if not settings.enabled:
            return None
        if len(content) > settings.min_message_length and caps_ratio(content) > settings.caps_ratio_threshold:
            return Violation(ViolationType.CAPS_SPAM, Severity.LOW, 70, "Excessive caps usage")
        return None


class RepeatMessageDetector:
    """Counts identical messages in the persisted history window."""

    name = "repeat_message"

    def __init__(self, store: ModerationRecordStore) -> None:
        self._store = store

    async def detect(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime,
    ) -> Optional[Violation]:
        threshold = config.spam.duplicate_message_threshold
        since = now - timedelta(seconds=config.spam.duplicate_message_window)
        recent = await self._store.find_recent_messages(user_id, since, threshold)
        lowered = content.lower()
        identical = sum(1 for message in recent if message.content.lower() == lowered)
        if identical >= threshold:
            return Violation(ViolationType.REPEAT_MESSAGE, Severity.MEDIUM, 85, "Repeated messages detected")
        return None


class DetectorPipeline:
    """Runs every detector in order and keeps all violations they report.

    A detector that raises is logged and skipped so one broken signal never
    blocks the remaining checks.
    """

    def __init__(self, detectors: Sequence[Detector]) -> None:
        self._detectors = list(detectors)

    @property
    def detectors(self) -> list[Detector]:
        return list(self._detectors)

    @classmethod
    def default(
        cls,
        counters: CounterStore,
        records: ModerationRecordStore,
        *,
        toxicity: TextClassifier | None = None,
        pump_dump: TextClassifier | None = None,
        malicious_links: TextClassifier | None = None,
    ) -> "DetectorPipeline":
        return cls(
            [
                SpamDetector(FixedWindowRateLimiter(counters), DuplicateSuppressor(counters)),
                ToxicityDetector(toxicity or default_toxicity_classifier()),
                PumpDumpDetector(pump_dump or default_pump_dump_classifier()),
                MaliciousLinkDetector(malicious_links or default_malicious_link_classifier()),
                CapsSpamDetector(),
                RepeatMessageDetector(records),
            ]
        )

    async def detect(
        self,
        user_id: str,
        content: str,
        config: ModerationConfig,
        *,
        now: datetime | None = None,
    ) -> list[Violation]:
        now = now or datetime.now(timezone.utc)
        violations: list[Violation] = []
        for detector in self._detectors:
            try:
                violation = await detector.detect(user_id, content, config, now=now)
            except Exception as exc:
                metrics.inc_detector_failure(detector.name, exc.__class__.__name__)
                logger.exception(
                    "detector failed",
                    extra={"user_id": user_id, "detector": detector.name, "operation": "analyze_message"},
                )
                continue
            if violation is not None:
                metrics.inc_violation(violation.type.value, violation.severity.value)
                violations.append(violation)
        return violations
