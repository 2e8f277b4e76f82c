"""
Response cache.

Time-boxed cache of completions keyed by (session, prompt). A miss is
always safe, so the cache is an optimization only and never a source of
truth.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DURATION_SECONDS = 3600.0


@dataclass(frozen=True)
class CacheEntry:
    """Cached completion with its insertion time."""
    response_text: str
    created_at: float
    session_id: str


class ResponseCache:
    """In-memory completion cache with per-session invalidation.

    Keys are SHA-256 digests, so a secondary ``session -> keys`` index is
    kept to clear one session's entries without scanning.
    """

    def __init__(
        self,
        cache_duration_seconds: float = DEFAULT_CACHE_DURATION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_duration_seconds = cache_duration_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._session_keys: Dict[str, Set[str]] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def compute_key(session_id: str, prompt: str) -> str:
        """Deterministic SHA-256 hex key for a session and prompt."""
        return hashlib.sha256(f"{session_id}-{prompt}".encode("utf-8")).hexdigest()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at >= self.cache_duration_seconds

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        keys = self._session_keys.get(entry.session_id)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._session_keys[entry.session_id]

    def lookup(self, session_id: str, prompt: str) -> Optional[str]:
        """Return the cached completion, or None on a miss.

        An entry older than the cache duration counts as a miss and is
        removed.
        """
        key = self.compute_key(session_id, prompt)
        entry = self._entries.get(key)

        if entry is not None and self._is_expired(entry, self._clock()):
            self._remove(key)
            entry = None

        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        return entry.response_text

    def store(self, session_id: str, prompt: str, response_text: str) -> None:
        """Insert or overwrite an entry, then sweep expired ones."""
        key = self.compute_key(session_id, prompt)
        self._entries[key] = CacheEntry(
            response_text=response_text,
            created_at=self._clock(),
            session_id=session_id,
        )
        self._session_keys.setdefault(session_id, set()).add(key)
        self.sweep()

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            self._remove(key)
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def clear_session(self, session_id: str) -> int:
        """Remove all entries stored for ``session_id``."""
        keys = self._session_keys.pop(session_id, set())
        for key in keys:
            self._entries.pop(key, None)
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, float]:
        """Return cache statistics for monitoring."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
        }
