"""Time-bounded record of the suppression action last applied per resource UID.

The event source redelivers the same logical state over and over (resyncs,
retries, our own writes echoing back). The cache lets the reconciler apply
each decision once per window:

- unknown or expired UID             -> apply
- cached decision equals new decision -> skip, refresh the TTL
- cached decision differs             -> apply, store the new decision

The TTL slides on every sighting. Entries are advisory: losing them only
costs a duplicate, idempotent action.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from solskin.observability.logging import get_logger

_logger = get_logger("suppressor.state_cache")

DEFAULT_TTL_S: float = 300.0


@dataclass
class SuppressionCacheEntry:
    suppressed: bool
    expires_at: float


class SuppressionStateCache:
    """UID-keyed, sliding-TTL de-duplication store.

    All methods take an internal lock, so :meth:`claim` is a single critical
    section even when callers run on different threads.
    """

    def __init__(self, ttl_s: float = DEFAULT_TTL_S, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_s <= 0:
            raise ValueError(f"ttl_s must be positive, got {ttl_s}")
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, SuppressionCacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def should_apply(self, uid: str, suppress: bool) -> bool:
        """Return True if ``suppress`` differs from the live cached decision.

        A matching live entry has its TTL refreshed.
        """
        with self._lock:
            return self._should_apply_locked(uid, suppress, self._clock())

    def record(self, uid: str, suppress: bool) -> None:
        """Store ``suppress`` as the applied decision for ``uid``."""
        with self._lock:
            self._entries[uid] = SuppressionCacheEntry(suppressed=suppress, expires_at=self._clock() + self._ttl_s)

    def claim(self, uid: str, suppress: bool) -> bool:
        """Atomically check and record.

        Returns True when the caller should apply ``suppress``; the decision
        is recorded before returning so a concurrent caller for the same UID
        sees it.
        """
        with self._lock:
            now = self._clock()
            if not self._should_apply_locked(uid, suppress, now):
                return False
            self._entries[uid] = SuppressionCacheEntry(suppressed=suppress, expires_at=now + self._ttl_s)
            return True

    def get(self, uid: str) -> bool | None:
        """Return the live cached decision for ``uid``, or None."""
        with self._lock:
            entry = self._entries.get(uid)
            if entry is None or entry.expires_at <= self._clock():
                return None
            return entry.suppressed

    def forget(self, uid: str) -> None:
        with self._lock:
            self._entries.pop(uid, None)

    def purge_expired(self) -> int:
        """Drop expired entries, returning how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [uid for uid, entry in self._entries.items() if entry.expires_at <= now]
            for uid in expired:
                del self._entries[uid]
        if expired:
            _logger.debug("state_cache_purged", removed=len(expired))
        return len(expired)

    def _should_apply_locked(self, uid: str, suppress: bool, now: float) -> bool:
        entry = self._entries.get(uid)
        if entry is None or entry.expires_at <= now:
            return True
        if entry.suppressed == suppress:
            entry.expires_at = now + self._ttl_s
            return False
        return True
