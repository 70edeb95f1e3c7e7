"""Moderation thresholds, penalties and durations supplied per call to the engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

_SEVERITY_NAMES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")


class ModerationConfigError(ValueError):
    """Raised when a moderation configuration fails validation at load time."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class RateLimitConfig:
    messages_per_window: int = 50
    window_seconds: int = 15
    burst_limit: int = 20


@dataclass(frozen=True)
class SpamConfig:
    repeated_char_threshold: int = 8
    duplicate_message_window: int = 60
    duplicate_message_threshold: int = 20
    duplicate_ttl_seconds: int = 30


@dataclass(frozen=True)
class ClassifierGateConfig:
    enabled: bool = False
    confidence_threshold: int = 95
    severity_threshold: str = "CRITICAL"


@dataclass(frozen=True)
class CapsSpamConfig:
    enabled: bool = True
    caps_ratio_threshold: float = 0.9
    min_message_length: int = 20


@dataclass(frozen=True)
class ActionThresholdConfig:
    warning_threshold: int = 5
    strike_threshold: int = 10
    mute_threshold: int = 20
    ban_threshold: int = 50


@dataclass(frozen=True)
class TrustScoreConfig:
    initial_score: int = 100
    warning_penalty: int = 2
    strike_penalty: int = 5
    mute_penalty: int = 10
    ban_penalty: int = 25
    min_score: int = 0
    max_score: int = 100

    def clamp(self, value: int) -> int:
        return max(self.min_score, min(self.max_score, value))


@dataclass(frozen=True)
class DurationConfig:
    """Durations in minutes; 0 means the action does not expire."""

    warning: int = 0
    strike: int = 0
    mute: int = 5
    ban: int = 60


@dataclass(frozen=True)
class ModerationConfig:
    """Immutable configuration value passed into every engine entry point."""

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    spam: SpamConfig = field(default_factory=SpamConfig)
    toxicity: ClassifierGateConfig = field(default_factory=ClassifierGateConfig)
    pump_dump: ClassifierGateConfig = field(default_factory=ClassifierGateConfig)
    caps_spam: CapsSpamConfig = field(default_factory=CapsSpamConfig)
    actions: ActionThresholdConfig = field(default_factory=ActionThresholdConfig)
    trust_score: TrustScoreConfig = field(default_factory=TrustScoreConfig)
    durations: DurationConfig = field(default_factory=DurationConfig)
    fail_closed: bool = False

    @staticmethod
    def default() -> "ModerationConfig":
        return ModerationConfig()

    @staticmethod
    def from_mapping(config: Mapping[str, Any], *, base: "ModerationConfig | None" = None) -> "ModerationConfig":
        """Overlay a nested mapping (e.g. parsed YAML) on ``base`` or the defaults."""

        base = base or ModerationConfig.default()
        overrides: dict[str, Any] = {}
        for section in fields(base):
            if section.name not in config:
                continue
            raw = config[section.name]
            current = getattr(base, section.name)
            if section.name == "fail_closed":
                overrides["fail_closed"] = bool(raw)
                continue
            if not isinstance(raw, Mapping):
                logger.warning("ignoring non-mapping moderation config section %s", section.name)
                continue
            overrides[section.name] = _overlay_section(current, raw)
        return replace(base, **overrides)


def _overlay_section(section: Any, raw: Mapping[str, Any]) -> Any:
    known = {item.name: item for item in fields(section)}
    updates: dict[str, Any] = {}
    for key, value in raw.items():
        entry = known.get(str(key))
        if entry is None:
            logger.warning("unknown moderation config key %s.%s", type(section).__name__, key)
            continue
        current = getattr(section, entry.name)
        if isinstance(current, bool):
            updates[entry.name] = bool(value)
        elif isinstance(current, int):
            updates[entry.name] = int(value)
        elif isinstance(current, float):
            updates[entry.name] = float(value)
        else:
            updates[entry.name] = str(value)
    return replace(section, **updates)


def validate_config(config: ModerationConfig) -> list[str]:
    """Return a list of human-readable problems; empty when the config is usable."""

    errors: list[str] = []
    if config.rate_limit.messages_per_window <= 0:
        errors.append("Rate limit messages per window must be positive")
    if config.rate_limit.window_seconds <= 0:
        errors.append("Rate limit window seconds must be positive")
    if config.spam.duplicate_ttl_seconds <= 0:
        errors.append("Duplicate message TTL must be positive")
    if config.spam.duplicate_message_threshold <= 0:
        errors.append("Duplicate message threshold must be positive")
    if config.spam.duplicate_message_window <= 0:
        errors.append("Duplicate message window must be positive")
    if config.spam.repeated_char_threshold < 2:
        errors.append("Repeated character threshold must be at least 2")
    if not 0 <= config.caps_spam.caps_ratio_threshold <= 1:
        errors.append("Caps spam ratio threshold must be between 0 and 1")
    for name, gate in (("Toxicity", config.toxicity), ("Pump & dump", config.pump_dump)):
        if not 0 <= gate.confidence_threshold <= 100:
            errors.append(f"{name} confidence threshold must be between 0 and 100")
        if gate.severity_threshold.upper() not in _SEVERITY_NAMES:
            errors.append(f"{name} severity threshold must be one of {', '.join(_SEVERITY_NAMES)}")
    trust = config.trust_score
    if trust.min_score > trust.max_score:
        errors.append("Trust score minimum must not exceed maximum")
    if trust.initial_score < trust.min_score or trust.initial_score > trust.max_score:
        errors.append("Initial trust score must be within min/max range")
    for penalty in ("warning_penalty", "strike_penalty", "mute_penalty", "ban_penalty"):
        if getattr(trust, penalty) < 0:
            errors.append(f"Trust score {penalty.replace('_', ' ')} must be non-negative")
    if config.durations.mute < 0:
        errors.append("Mute duration must be non-negative")
    if config.durations.ban < 0:
        errors.append("Ban duration must be non-negative")
    return errors


def moderation_profile(name: str | None) -> ModerationConfig:
    """Return the named preset. Unknown names resolve to the development preset."""

    base = ModerationConfig.default()
    profile = (name or "development").lower()
    if profile in ("production", "prod"):
        return replace(
            base,
            rate_limit=RateLimitConfig(messages_per_window=30, window_seconds=15, burst_limit=15),
            actions=ActionThresholdConfig(warning_threshold=10, strike_threshold=20, mute_threshold=30, ban_threshold=50),
        )
    if profile == "staging":
        return replace(
            base,
            rate_limit=RateLimitConfig(messages_per_window=40, window_seconds=15, burst_limit=20),
        )
    return replace(
        base,
        rate_limit=RateLimitConfig(messages_per_window=100, window_seconds=15, burst_limit=50),
        actions=ActionThresholdConfig(warning_threshold=20, strike_threshold=40, mute_threshold=60, ban_threshold=100),
    )


def load_moderation_config(path: str | Path, *, profile: str | None = None) -> ModerationConfig:
    """Load a YAML file over the ``profile`` preset and validate the result."""

    base = moderation_profile(profile)
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("moderation config file missing at %s; using %s preset", path, profile or "development")
        return base
    data = yaml.safe_load(text) or {}
    if not isinstance(data, Mapping):
        raise ModerationConfigError(["moderation config must be a mapping"])
    config = ModerationConfig.from_mapping(data, base=base)
    errors = validate_config(config)
    if errors:
        raise ModerationConfigError(errors)
    return config
