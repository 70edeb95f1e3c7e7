"""Fixed-window rate limiting for chat messages."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from chatguard.moderation.domain.counters import CounterStore


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float
    count: int


def rate_limit_key(user_id: str) -> str:
    return f"chat:ratelimit:{user_id}"


class FixedWindowRateLimiter:
    """Counts events in discrete windows keyed by ``floor(now / window)``.

    Each check is one atomic INCR+EXPIRE on the slot key, so concurrent messages
    cannot both slip past the limit. Windows do not slide: a burst straddling a
    boundary can admit up to ``2 * limit`` events.
    """

    def __init__(self, store: CounterStore, *, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def check_and_consume(
        self,
        key: str,
        limit: int,
        window_seconds: int,
        *,
        now: Optional[float] = None,
    ) -> RateLimitResult:
        now = now if now is not None else self._clock()
        window = max(1, int(window_seconds))
        slot = int(math.floor(now / window))
        reset_at = float((slot + 1) * window)
        if limit <= 0:
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at, count=0)
        count = await self._store.increment(f"{key}:{slot}", window)
        allowed = count <= limit
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - count),
            reset_at=reset_at,
            count=count,
        )
