"""Storage contract for the shared counter/cache store."""

from __future__ import annotations

from typing import Optional, Protocol


class CounterStore(Protocol):
    """Atomic counter and marker primitives consumed by the rate limiter and dedupe."""

    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and set its TTL in a single round-trip; return the new count."""
        ...

    async def expire(self, key: str, seconds: int) -> None:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Write ``key`` only when missing; return True when this call created it."""
        ...

    async def get(self, key: str) -> Optional[str]:
        ...
