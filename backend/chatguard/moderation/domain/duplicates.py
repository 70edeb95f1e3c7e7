"""Short-lived duplicate message suppression."""

from __future__ import annotations

import hashlib

from chatguard.moderation.domain.counters import CounterStore

DEFAULT_DUPLICATE_TTL_SECONDS = 30


def message_fingerprint(user_id: str, content: str) -> str:
    """Deterministic fingerprint of ``user_id`` plus case-folded content."""

    payload = f"{user_id}:{content.lower()}".encode("utf-8")
    return hashlib.blake2b(payload, digest_size=16).hexdigest()


class DuplicateSuppressor:
    """Marks each message as seen and reports repeats inside the TTL window.

    The marker is written with SET NX EX so the check and the mark are one
    atomic operation. A hit does not extend the marker TTL.
    """

    def __init__(self, store: CounterStore, *, prefix: str = "chat:duplicate") -> None:
        self._store = store
        self._prefix = prefix

    async def is_duplicate(
        self,
        user_id: str,
        content: str,
        *,
        ttl_seconds: int = DEFAULT_DUPLICATE_TTL_SECONDS,
    ) -> bool:
        key = f"{self._prefix}:{message_fingerprint(user_id, content)}"
        created = await self._store.set_if_absent(key, "1", ttl_seconds)
        return not created
