from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from chatguard.moderation.domain.classifiers import ClassifierScore, default_malicious_link_classifier
from chatguard.moderation.domain.config import CapsSpamConfig, ClassifierGateConfig, SpamConfig
from chatguard.moderation.domain.detectors import (
    CapsSpamDetector,
    DetectorPipeline,
    MaliciousLinkDetector,
    PumpDumpDetector,
    RepeatMessageDetector,
    SpamDetector,
    ToxicityDetector,
    caps_ratio,
    has_repeated_characters,
)
from chatguard.moderation.domain.duplicates import DuplicateSuppressor
from chatguard.moderation.domain.models import Severity, Violation, ViolationType
from chatguard.moderation.domain.rate_limit import FixedWindowRateLimiter
from chatguard.moderation.domain.repository import InMemoryModerationRecordStore
from chatguard.moderation.infra.counter_store import RedisCounterStore


class _FixedClassifier:
    def __init__(self, confidence: int) -> None:
        self.confidence = confidence

    async def score(self, text: str) -> ClassifierScore:
        return ClassifierScore(confidence=self.confidence, labels=("stub",) if self.confidence else ())


class _BrokenCounters:
    async def increment(self, key, ttl_seconds):
        raise ConnectionError("redis down")

    async def set_if_absent(self, key, value, ttl_seconds):
        raise ConnectionError("redis down")


class _ExplodingDetector:
    name = "exploding"

    async def detect(self, user_id, content, config, *, now):
        raise RuntimeError("boom")


def _spam_detector(counters=None) -> SpamDetector:
    counters = counters or RedisCounterStore()
    return SpamDetector(FixedWindowRateLimiter(counters), DuplicateSuppressor(counters))


def test_repeated_character_threshold_is_inclusive():
    assert has_repeated_characters("heyyyyyyyy", 8)
    assert not has_repeated_characters("heyyyyyyy", 8)


def test_caps_ratio_counts_uppercase_over_full_length():
    assert caps_ratio("") == 0.0
    assert caps_ratio("AB cd") == pytest.approx(2 / 5)


@pytest.mark.asyncio
async def test_caps_spam_boundary_does_not_fire(config, now):
    detector = CapsSpamDetector()
    at_boundary = "ABCDEFGHIJKLMNOPQRab"  # 20 chars, ratio exactly 0.9
    assert await detector.detect("u1", at_boundary, config, now=now) is None
    over = "ABCDEFGHIJKLMNOPQRSTU"
    violation = await detector.detect("u1", over, config, now=now)
    assert violation == Violation(ViolationType.CAPS_SPAM, Severity.LOW, 70, "Excessive caps usage")


@pytest.mark.asyncio
async def test_caps_spam_disabled(config, now):
    disabled = replace(config, caps_spam=CapsSpamConfig(enabled=False))
    assert await CapsSpamDetector().detect("u1", "ABCDEFGHIJKLMNOPQRSTUVWXYZ", disabled, now=now) is None


@pytest.mark.asyncio
async def test_spam_repeated_characters_is_medium(config, now):
    violation = await _spam_detector().detect("u1", "nooooooooooo", config, now=now)
    assert violation is not None
    assert (violation.type, violation.severity, violation.confidence) == (ViolationType.SPAM, Severity.MEDIUM, 80)


@pytest.mark.asyncio
async def test_spam_reports_only_first_hit(config, now):
    tight = replace(config, rate_limit=replace(config.rate_limit, messages_per_window=1))
    detector = _spam_detector()
    assert await detector.detect("u1", "first", tight, now=now) is None
    violation = await detector.detect("u1", "aaaaaaaaaaaa", tight, now=now)
    assert violation is not None
    assert violation.confidence == 95


@pytest.mark.asyncio
async def test_spam_fails_open_on_counter_errors(config, now):
    detector = _spam_detector(_BrokenCounters())
    assert await detector.detect("u1", "hello", config, now=now) is None


@pytest.mark.asyncio
async def test_spam_fails_closed_when_configured(config, now):
    detector = _spam_detector(_BrokenCounters())
    violation = await detector.detect("u1", "hello", replace(config, fail_closed=True), now=now)
    assert violation is not None
    assert violation.severity is Severity.HIGH
    assert violation.confidence == 95


@pytest.mark.asyncio
async def test_toxicity_gated_by_enabled_flag_and_confidence(config, now):
    detector = ToxicityDetector(_FixedClassifier(90))
    assert await detector.detect("u1", "whatever", config, now=now) is None

    enabled = replace(config, toxicity=ClassifierGateConfig(enabled=True, confidence_threshold=95))
    assert await detector.detect("u1", "whatever", enabled, now=now) is None

    lenient = replace(config, toxicity=ClassifierGateConfig(enabled=True, confidence_threshold=80))
    violation = await detector.detect("u1", "whatever", lenient, now=now)
    assert violation is not None
    assert (violation.type, violation.severity, violation.confidence) == (ViolationType.TOXICITY, Severity.HIGH, 85)


@pytest.mark.asyncio
async def test_pump_dump_default_patterns(config, now):
    from chatguard.moderation.domain.classifiers import default_pump_dump_classifier

    enabled = replace(config, pump_dump=ClassifierGateConfig(enabled=True))
    detector = PumpDumpDetector(default_pump_dump_classifier())
    violation = await detector.detect("u1", "this coin is going to the moon", enabled, now=now)
    assert violation is not None
    assert violation.severity is Severity.CRITICAL
    assert violation.confidence == 90
    assert await detector.detect("u1", "nice weather today", enabled, now=now) is None


@pytest.mark.asyncio
async def test_malicious_links_always_on(config, now):
    detector = MaliciousLinkDetector(default_malicious_link_classifier())
    violation = await detector.detect("u1", "claim it at bit.ly/abc", config, now=now)
    assert violation is not None
    assert (violation.type, violation.severity, violation.confidence) == (
        ViolationType.MALICIOUS_LINK,
        Severity.CRITICAL,
        95,
    )
    assert await detector.detect("u1", "see test.com for details", config, now=now) is None


@pytest.mark.asyncio
async def test_malicious_vocabulary_matches_inside_words(config, now):
    detector = MaliciousLinkDetector(default_malicious_link_classifier())
    for content in ("these scammers took my sol", "login at phishingsite.io"):
        violation = await detector.detect("u1", content, config, now=now)
        assert violation is not None, content
        assert violation.type is ViolationType.MALICIOUS_LINK


@pytest.mark.asyncio
async def test_repeat_message_counts_case_insensitive_history(config, now):
    store = InMemoryModerationRecordStore()
    small = replace(config, spam=SpamConfig(duplicate_message_threshold=3, duplicate_message_window=60))
    for offset in (5, 10, 15):
        store.add_message("u1", "Buy my NFT", created_at=now - timedelta(seconds=offset))
    store.add_message("u1", "buy my nft", created_at=now - timedelta(seconds=120))
    detector = RepeatMessageDetector(store)
    violation = await detector.detect("u1", "BUY MY NFT", small, now=now)
    assert violation is not None
    assert (violation.type, violation.severity, violation.confidence) == (ViolationType.REPEAT_MESSAGE, Severity.MEDIUM, 85)

    store.messages.pop(0)
    assert await detector.detect("u1", "buy my nft", small, now=now) is None


@pytest.mark.asyncio
async def test_pipeline_skips_failing_detector(config, now):
    pipeline = DetectorPipeline([_ExplodingDetector(), CapsSpamDetector()])
    violations = await pipeline.detect("u1", "ABCDEFGHIJKLMNOPQRSTUVWXYZ", config, now=now)
    assert [item.type for item in violations] == [ViolationType.CAPS_SPAM]


@pytest.mark.asyncio
async def test_default_pipeline_keeps_all_violations(config, now):
    pipeline = DetectorPipeline.default(RedisCounterStore(), InMemoryModerationRecordStore())
    assert [detector.name for detector in pipeline.detectors] == [
        "spam",
        "toxicity",
        "pump_dump",
        "malicious_link",
        "caps_spam",
        "repeat_message",
    ]
    violations = await pipeline.detect("u1", "ABCDEFGHIJKLMNOPQRSTUVWXYZ BIT.LY", config, now=now)
    assert {item.type for item in violations} == {ViolationType.MALICIOUS_LINK, ViolationType.CAPS_SPAM}
