"""
Small in-process TTL cache keyed by arbitrary hashable keys.

Entries are stored as (value, fetched_at) and replaced in a single assignment,
so a reader sees either the old value or the new one, never a mix.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TTLCache:
    """Fixed-TTL cache; entries expire purely on age and are never invalidated."""

    def __init__(
        self,
        ttl: timedelta,
        name: str = "cache",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[Any, datetime]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, fetched_at = entry
        if self._clock() - fetched_at >= self.ttl:
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value for key, calling ``loader`` on a miss.

        A failing loader leaves any previous (expired) entry in place.
        """
        entry = self._entries.get(key)
        if entry is not None:
            value, fetched_at = entry
            age = self._clock() - fetched_at
            if age < self.ttl:
                logger.debug("Cache hit", extra={
                    "cache": self.name,
                    "key": str(key),
                    "cache_age_seconds": age.total_seconds()
                })
                return value

        value = await loader()
        self.set(key, value)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
