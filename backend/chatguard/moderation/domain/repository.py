"""Storage contract for moderation actions, user status rows and chat history."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Protocol, Sequence

from chatguard.moderation.domain.models import ChatMessage, ModerationActionRecord, UserModerationStatus


@dataclass(frozen=True, slots=True)
class ExpiryNormalization:
    """Counts returned by a cleanup pass over expired restrictions."""

    unmuted: int = 0
    unbanned: int = 0
    actions_deactivated: int = 0


class ModerationRecordStore(Protocol):
    """Record CRUD consumed by the detectors, the executor and the status oracle."""

    async def create_action(self, fields: Mapping[str, Any]) -> ModerationActionRecord:
        ...

    async def list_actions(self, user_id: str, *, limit: int = 20) -> Sequence[ModerationActionRecord]:
        ...

    async def find_recent_messages(self, user_id: str, since: datetime, limit: int) -> Sequence[ChatMessage]:
        ...

    async def find_status(self, user_id: str) -> Optional[UserModerationStatus]:
        ...

    async def create_status(self, fields: Mapping[str, Any]) -> UserModerationStatus:
        """Insert a status row unless one exists; return the stored row either way."""
        ...

    async def update_status(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Optional[UserModerationStatus]:
        """Apply ``fields`` and bump the version.

        Returns None when ``expected_version`` no longer matches the stored row.
        """
        ...

    async def normalize_expired(self, now: datetime) -> ExpiryNormalization:
        ...


class InMemoryModerationRecordStore(ModerationRecordStore):
    """Reference store used in tests and developer environments."""

    def __init__(self) -> None:
        self.actions: list[ModerationActionRecord] = []
        self.statuses: dict[str, UserModerationStatus] = {}
        self.messages: list[ChatMessage] = []

    def add_message(self, user_id: str, content: str, *, created_at: datetime | None = None) -> ChatMessage:
        message = ChatMessage(
            id=str(uuid.uuid4()),
            user_id=user_id,
            content=content,
            created_at=created_at or datetime.now(timezone.utc),
        )
        self.messages.append(message)
        return message

    async def create_action(self, fields: Mapping[str, Any]) -> ModerationActionRecord:
        record = ModerationActionRecord(
            id=str(fields.get("id") or uuid.uuid4()),
            user_id=str(fields["user_id"]),
            action=str(fields["action"]),
            reason=str(fields.get("reason") or ""),
            created_at=fields.get("created_at") or datetime.now(timezone.utc),
            duration_minutes=fields.get("duration_minutes"),
            expires_at=fields.get("expires_at"),
            moderator_id=fields.get("moderator_id"),
            is_active=bool(fields.get("is_active", True)),
        )
        self.actions.append(record)
        return record

    async def list_actions(self, user_id: str, *, limit: int = 20) -> Sequence[ModerationActionRecord]:
        matching = [record for record in self.actions if record.user_id == user_id]
        matching.sort(key=lambda record: record.created_at, reverse=True)
        return matching[:limit]

    async def find_recent_messages(self, user_id: str, since: datetime, limit: int) -> Sequence[ChatMessage]:
        matching = [msg for msg in self.messages if msg.user_id == user_id and msg.created_at >= since]
        matching.sort(key=lambda msg: msg.created_at, reverse=True)
        return matching[:limit]

    async def find_status(self, user_id: str) -> Optional[UserModerationStatus]:
        status = self.statuses.get(user_id)
        return replace(status) if status is not None else None

    async def create_status(self, fields: Mapping[str, Any]) -> UserModerationStatus:
        user_id = str(fields["user_id"])
        existing = self.statuses.get(user_id)
        if existing is None:
            existing = UserModerationStatus(**{**dict(fields), "user_id": user_id, "version": 0})
            self.statuses[user_id] = existing
        return replace(existing)

    async def update_status(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Optional[UserModerationStatus]:
        current = self.statuses.get(user_id)
        if current is None:
            return None
        if expected_version is not None and current.version != expected_version:
            return None
        updated = replace(current, **dict(fields), version=current.version + 1)
        self.statuses[user_id] = updated
        return replace(updated)

    async def normalize_expired(self, now: datetime) -> ExpiryNormalization:
        unmuted = unbanned = deactivated = 0
        for user_id, status in list(self.statuses.items()):
            changes: dict[str, Any] = {}
            if status.is_muted and status.muted_until is not None and status.muted_until <= now:
                changes.update(is_muted=False, muted_until=None)
                unmuted += 1
            if status.is_banned and status.banned_until is not None and status.banned_until <= now:
                changes.update(is_banned=False, banned_until=None)
                unbanned += 1
            if changes:
                self.statuses[user_id] = replace(status, **changes, version=status.version + 1)
        for record in self.actions:
            if record.is_active and record.expires_at is not None and record.expires_at <= now:
                record.is_active = False
                deactivated += 1
        return ExpiryNormalization(unmuted=unmuted, unbanned=unbanned, actions_deactivated=deactivated)
