"""PostgreSQL persistence for moderation actions, user status rows and chat history."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

import asyncpg

from chatguard.moderation.domain.models import ChatMessage, ModerationActionRecord, UserModerationStatus
from chatguard.moderation.domain.repository import ExpiryNormalization, ModerationRecordStore

_ACTION_COLUMNS = "id, user_id, moderator_id, action, reason, duration_minutes, expires_at, created_at, is_active"
_STATUS_COLUMNS = (
    "user_id, trust_score, strikes, is_muted, muted_until, is_banned, banned_until, "
    "last_violation, violation_count, version"
)
_MUTABLE_STATUS_FIELDS = (
    "trust_score",
    "strikes",
    "is_muted",
    "muted_until",
    "is_banned",
    "banned_until",
    "last_violation",
    "violation_count",
)


def _row_to_action(row: asyncpg.Record) -> ModerationActionRecord:
    return ModerationActionRecord(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        action=str(row["action"]),
        reason=str(row["reason"] or ""),
        created_at=row["created_at"],
        duration_minutes=int(row["duration_minutes"]) if row["duration_minutes"] is not None else None,
        expires_at=row["expires_at"],
        moderator_id=str(row["moderator_id"]) if row["moderator_id"] is not None else None,
        is_active=bool(row["is_active"]),
    )


def _row_to_status(row: asyncpg.Record) -> UserModerationStatus:
    return UserModerationStatus(
        user_id=str(row["user_id"]),
        trust_score=int(row["trust_score"]),
        strikes=int(row["strikes"]),
        is_muted=bool(row["is_muted"]),
        muted_until=row["muted_until"],
        is_banned=bool(row["is_banned"]),
        banned_until=row["banned_until"],
        last_violation=row["last_violation"],
        violation_count=int(row["violation_count"]),
        version=int(row["version"]),
    )


def _row_to_message(row: asyncpg.Record) -> ChatMessage:
    return ChatMessage(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        content=str(row["content"]),
        created_at=row["created_at"],
    )


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "UPDATE 3"
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class PostgresModerationRecordStore(ModerationRecordStore):
    """Stores moderation state in chat_moderation_action and user_moderation_status."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create_action(self, fields: Mapping[str, Any]) -> ModerationActionRecord:
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO chat_moderation_action
                (id, user_id, moderator_id, action, reason, duration_minutes, expires_at, created_at, is_active)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING {_ACTION_COLUMNS}
            """,
            str(fields.get("id") or uuid.uuid4()),
            str(fields["user_id"]),
            fields.get("moderator_id"),
            str(fields["action"]),
            str(fields.get("reason") or ""),
            fields.get("duration_minutes"),
            fields.get("expires_at"),
            fields.get("created_at") or datetime.now(timezone.utc),
            bool(fields.get("is_active", True)),
        )
        if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
            raise RuntimeError("Failed to insert moderation action")
        return _row_to_action(row)

    async def list_actions(self, user_id: str, *, limit: int = 20) -> Sequence[ModerationActionRecord]:
        rows = await self._pool.fetch(
            f"""
            SELECT {_ACTION_COLUMNS}
            FROM chat_moderation_action
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_row_to_action(row) for row in rows]

    async def find_recent_messages(self, user_id: str, since: datetime, limit: int) -> Sequence[ChatMessage]:
        rows = await self._pool.fetch(
            """
            SELECT id, user_id, content, created_at
            FROM chat_message
            WHERE user_id = $1 AND created_at >= $2
            ORDER BY created_at DESC
            LIMIT $3
            """,
            user_id,
            since,
            limit,
        )
        return [_row_to_message(row) for row in rows]

    async def find_status(self, user_id: str) -> Optional[UserModerationStatus]:
        row = await self._pool.fetchrow(
            f"SELECT {_STATUS_COLUMNS} FROM user_moderation_status WHERE user_id = $1",
            user_id,
        )
        if row is None:
            return None
        return _row_to_status(row)

    async def create_status(self, fields: Mapping[str, Any]) -> UserModerationStatus:
        user_id = str(fields["user_id"])
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO user_moderation_status (user_id, trust_score, strikes, violation_count, version)
            VALUES ($1, $2, 0, 0, 0)
            ON CONFLICT (user_id) DO NOTHING
            RETURNING {_STATUS_COLUMNS}
            """,
            user_id,
            int(fields["trust_score"]),
        )
        if row is not None:
            return _row_to_status(row)
        existing = await self.find_status(user_id)
        if existing is None:  # pragma: no cover - row was deleted between statements
            raise RuntimeError(f"moderation status for {user_id} vanished during insert")
        return existing

    async def update_status(
        self,
        user_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Optional[UserModerationStatus]:
        unknown = set(fields) - set(_MUTABLE_STATUS_FIELDS)
        if unknown:
            raise ValueError(f"unsupported status fields: {', '.join(sorted(unknown))}")
        assignments: list[str] = []
        args: list[Any] = [user_id]
        for name in _MUTABLE_STATUS_FIELDS:
            if name in fields:
                args.append(fields[name])
                assignments.append(f"{name} = ${len(args)}")
        assignments.append("version = version + 1")
        where = "user_id = $1"
        if expected_version is not None:
            args.append(expected_version)
            where += f" AND version = ${len(args)}"
        row = await self._pool.fetchrow(
            f"""
            UPDATE user_moderation_status
            SET {', '.join(assignments)}
            WHERE {where}
            RETURNING {_STATUS_COLUMNS}
            """,
            *args,
        )
        if row is None:
            return None
        return _row_to_status(row)

    async def normalize_expired(self, now: datetime) -> ExpiryNormalization:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                unmuted = await conn.execute(
                    """
                    UPDATE user_moderation_status
                    SET is_muted = FALSE, muted_until = NULL, version = version + 1
                    WHERE is_muted AND muted_until IS NOT NULL AND muted_until <= $1
                    """,
                    now,
                )
                unbanned = await conn.execute(
                    """
                    UPDATE user_moderation_status
                    SET is_banned = FALSE, banned_until = NULL, version = version + 1
                    WHERE is_banned AND banned_until IS NOT NULL AND banned_until <= $1
                    """,
                    now,
                )
                deactivated = await conn.execute(
                    """
                    UPDATE chat_moderation_action
                    SET is_active = FALSE
                    WHERE is_active AND expires_at IS NOT NULL AND expires_at <= $1
                    """,
                    now,
                )
        return ExpiryNormalization(
            unmuted=_affected(unmuted),
            unbanned=_affected(unbanned),
            actions_deactivated=_affected(deactivated),
        )
