"""Severity-precedence escalation from violations to a single enforcement action."""

from __future__ import annotations

from typing import Iterable

from chatguard.moderation.domain.config import ModerationConfig
from chatguard.moderation.domain.models import ActionType, ModerationAction, Severity, Violation

NO_VIOLATIONS_REASON = "No violations detected"


def highest_severity(violations: Iterable[Violation]) -> Severity | None:
    worst: Severity | None = None
    for violation in violations:
        if worst is None or violation.severity.rank > worst.rank:
            worst = violation.severity
    return worst


def resolve(violations: Iterable[Violation], config: ModerationConfig) -> ModerationAction:
    """Map the worst severity present to an action. Counts and types do not matter."""

    worst = highest_severity(violations)
    if worst is Severity.CRITICAL:
        return ModerationAction(ActionType.BAN, "Critical violation detected", config.durations.ban)
    if worst is Severity.HIGH:
        return ModerationAction(ActionType.MUTE, "High severity violation", config.durations.mute)
    if worst is Severity.MEDIUM:
        return ModerationAction(ActionType.STRIKE, "Medium severity violation")
    if worst is Severity.LOW:
        return ModerationAction(ActionType.WARNING, "Low severity violation")
    return ModerationAction(ActionType.WARNING, NO_VIOLATIONS_REASON)


def summarize(violations: Iterable[Violation]) -> str:
    """Human-readable reason listing every violation type that fired."""

    names = [violation.type.value for violation in violations]
    if not names:
        return NO_VIOLATIONS_REASON
    return f"Violations detected: {', '.join(names)}"
