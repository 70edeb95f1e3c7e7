"""Value types shared by the moderation detectors, ledger and status oracle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class ViolationType(str, Enum):
    SPAM = "SPAM"
    TOXICITY = "TOXICITY"
    PUMP_DUMP = "PUMP_DUMP"
    MALICIOUS_LINK = "MALICIOUS_LINK"
    CAPS_SPAM = "CAPS_SPAM"
    REPEAT_MESSAGE = "REPEAT_MESSAGE"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class ActionType(str, Enum):
    """Enforcement actions produced by escalation or issued by moderators."""

    WARNING = "WARNING"
    STRIKE = "STRIKE"
    MUTE = "MUTE"
    BAN = "BAN"
    KICK = "KICK"


class ReversalType(str, Enum):
    """Moderator actions that lift a previously applied restriction."""

    UNMUTE = "UNMUTE"
    UNBAN = "UNBAN"
    CLEAR_STRIKES = "CLEAR_STRIKES"


@dataclass(frozen=True, slots=True)
class Violation:
    """A single detector finding for one message."""

    type: ViolationType
    severity: Severity
    confidence: int
    details: str


@dataclass(frozen=True, slots=True)
class ModerationAction:
    """Enforcement decision; ``duration_minutes`` of None or 0 means no expiry."""

    type: ActionType
    reason: str
    duration_minutes: Optional[int] = None

    def expires_at(self, now: datetime) -> datetime | None:
        if not self.duration_minutes:
            return None
        return now + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True, slots=True)
class ModerationResult:
    violations: tuple[Violation, ...]
    action: ModerationAction
    reason: str
    duration_minutes: Optional[int] = None

    @property
    def requires_action(self) -> bool:
        # An empty violation set still resolves to WARNING; callers must not enforce it.
        return bool(self.violations)

    @property
    def violation_types(self) -> list[ViolationType]:
        return [violation.type for violation in self.violations]


@dataclass(slots=True)
class ModerationActionRecord:
    """Persisted, append-only audit row for an executed action or reversal."""

    id: str
    user_id: str
    action: str
    reason: str
    created_at: datetime
    duration_minutes: Optional[int] = None
    expires_at: Optional[datetime] = None
    moderator_id: Optional[str] = None
    is_active: bool = True


@dataclass(slots=True)
class UserModerationStatus:
    user_id: str
    trust_score: int
    strikes: int = 0
    is_muted: bool = False
    muted_until: Optional[datetime] = None
    is_banned: bool = False
    banned_until: Optional[datetime] = None
    last_violation: Optional[datetime] = None
    violation_count: int = 0
    version: int = 0


@dataclass(frozen=True, slots=True)
class StatusView:
    """Live (lazily expired) moderation state used to gate chat access.

    ``muted_until`` and ``banned_until`` are reported only while the restriction
    is still in force; a lapsed restriction reads as None even when the stored
    row keeps its timestamp until the cleanup job runs.
    """

    can_chat: bool
    is_muted: bool
    is_banned: bool
    trust_score: int
    strikes: int
    muted_until: Optional[datetime] = None
    banned_until: Optional[datetime] = None

    @property
    def denial_reason(self) -> str | None:
        if self.can_chat:
            return None
        if self.is_banned:
            return "You are banned from chat"
        if not self.is_muted:
            return "Chat is temporarily unavailable"
        if self.muted_until is None:
            return "You are muted"
        return f"You are muted until {self.muted_until.isoformat()}"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    id: str
    user_id: str
    content: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ScreenOutcome:
    """Result of the chat send gate."""

    allowed: bool
    reason: Optional[str] = None
    result: Optional[ModerationResult] = None
    executed: bool = False
