"""Pluggable text classifiers backing the content detectors."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence


@dataclass(frozen=True, slots=True)
class ClassifierScore:
    """Classifier output: ``confidence`` in [0, 100] plus the labels that fired."""

    confidence: int
    labels: tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.confidence > 0


class TextClassifier(Protocol):
    async def score(self, text: str) -> ClassifierScore:
        ...


@dataclass
class PatternClassifier(TextClassifier):
    """Keyword/regex classifier; any matching pattern scores ``match_confidence``."""

    patterns: Sequence[tuple[str, re.Pattern[str]]]
    match_confidence: int = 100

    @classmethod
    def from_groups(cls, groups: Iterable[tuple[str, str]], *, match_confidence: int = 100) -> "PatternClassifier":
        compiled = [(label, re.compile(expr, re.IGNORECASE)) for label, expr in groups]
        return cls(patterns=compiled, match_confidence=match_confidence)

    async def score(self, text: str) -> ClassifierScore:
        labels = tuple(label for label, pattern in self.patterns if pattern.search(text))
        if not labels:
            return ClassifierScore(confidence=0)
        return ClassifierScore(confidence=self.match_confidence, labels=labels)


TOXICITY_PATTERNS: tuple[tuple[str, str], ...] = (
    ("insult", r"\b(kill|die|hate|stupid|idiot|moron|retard|fuck|shit|bitch|asshole)\b"),
    ("scam", r"\b(scam|rug|pump|dump|ponzi|pyramid)\b"),
    ("violence", r"\b(suicide|murder|violence|threat)\b"),
)

PUMP_DUMP_PATTERNS: tuple[tuple[str, str], ...] = (
    ("hype", r"\b(moon|rocket|to the moon|100x|1000x|lambo|yacht)\b"),
    ("call_to_trade", r"\b(buy now|sell now|pump|dump|manipulation)\b"),
    ("insider", r"\b(insider|tip|secret|exclusive|guaranteed)\b"),
)

MALICIOUS_LINK_PATTERNS: tuple[tuple[str, str], ...] = (
    ("shortener", r"\b(bit\.ly|tinyurl(\.com)?|short\.link|t\.co|rebrand\.ly)\b"),
    ("phishing", r"(phishing|scam|malware|virus)"),
    ("lure", r"\b(click here|free money|win now)\b"),
)


def default_toxicity_classifier() -> PatternClassifier:
    return PatternClassifier.from_groups(TOXICITY_PATTERNS)


def default_pump_dump_classifier() -> PatternClassifier:
    return PatternClassifier.from_groups(PUMP_DUMP_PATTERNS)


def default_malicious_link_classifier() -> PatternClassifier:
    return PatternClassifier.from_groups(MALICIOUS_LINK_PATTERNS)
