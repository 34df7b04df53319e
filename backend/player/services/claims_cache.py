"""Process-wide cache of materialized user claims, keyed by user id.

Concurrent misses for the same user may both compute and store; the last
write wins, which is fine because the value is a pure function of the
database state.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterable

from player.claims import UserClaims
from player.config import settings

logger = logging.getLogger(__name__)


class ClaimsCache:
    def __init__(
        self,
        expiration_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[uuid.UUID, tuple[UserClaims, float]] = {}
        self._lock = threading.Lock()
        self._expiration = expiration_seconds
        self._clock = clock

    def get(self, user_id: uuid.UUID) -> UserClaims | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            claims, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[user_id]
                return None
            return claims

    def set(self, user_id: uuid.UUID, claims: UserClaims) -> None:
        expires_at = (
            self._clock() + self._expiration if self._expiration else float("inf")
        )
        with self._lock:
            self._entries[user_id] = (claims, expires_at)

    def evict(self, user_ids: Iterable[uuid.UUID]) -> int:
        """Drop cached claims for *user_ids*.  Returns how many were cached."""
        removed = 0
        with self._lock:
            for user_id in user_ids:
                if self._entries.pop(user_id, None) is not None:
                    removed += 1
        if removed:
            logger.debug("Evicted cached claims for %d user(s)", removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [uid for uid, (_, exp) in self._entries.items() if exp <= now]
            for user_id in expired:
                del self._entries[user_id]
        if expired:
            logger.info("Purged %d expired claims cache entries", len(expired))
        return len(expired)

    def __contains__(self, user_id: uuid.UUID) -> bool:
        return self.get(user_id) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_cache: ClaimsCache | None = None


def get_claims_cache() -> ClaimsCache:
    """Return the process-wide cache, creating it on first use."""
    global _cache
    if _cache is None:
        _cache = ClaimsCache(settings.CLAIMS_CACHE_EXPIRATION_SECONDS)
    return _cache
