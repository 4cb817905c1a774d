"""
Hint Cache and Rate Limiter

The cache keeps the last backend-generated hint per problem for a fixed
TTL. Expired entries are still returned by get_stale() for last-resort
fallback. The rate limiter lives in memory only.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

from leetmentor.exceptions import PersistenceError
from leetmentor.persistence.store import HINT_CACHE_KEY, MentorStore

logger = logging.getLogger(__name__)


@dataclass
class HintCacheEntry:
    """A cached backend hint."""

    hint_text: str
    cached_at: float
    level: int = 1

    def age(self, now: float) -> float:
        return now - self.cached_at

    def to_dict(self) -> dict[str, Any]:
        return {"hintText": self.hint_text, "cachedAt": self.cached_at, "level": self.level}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HintCacheEntry":
        return cls(
            hint_text=str(data["hintText"]),
            cached_at=float(data["cachedAt"]),
            level=int(data.get("level", 1)),
        )


class HintCache:
    """Short-TTL cache of generated hints, keyed by problem id."""

    def __init__(self, store: MentorStore, ttl: float):
        self.store = store
        self.ttl = ttl
        self._entries: dict[str, HintCacheEntry] = {}
        self._loaded = False

    def _load(self) -> dict[str, HintCacheEntry]:
        if self._loaded:
            return self._entries
        try:
            raw = self.store.get(HINT_CACHE_KEY, {}) or {}
        except PersistenceError as e:
            logger.error(f"Could not load hint cache, will retry: {e}")
            return self._entries

        stored = {}
        for problem_id, data in raw.items():
            try:
                stored[problem_id] = HintCacheEntry.from_dict(data)
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Dropping malformed cache entry for {problem_id!r}")
        # Entries written while the store was unreadable are newer
        stored.update(self._entries)
        self._entries = stored
        self._loaded = True
        return self._entries

    def _persist(self) -> None:
        if not self._loaded:
            logger.warning("Stored hint cache not read yet, skipping write")
            return
        try:
            self.store.set(HINT_CACHE_KEY, {k: v.to_dict() for k, v in self._entries.items()})
        except PersistenceError as e:
            logger.error(f"Could not persist hint cache: {e}")

    def get_fresh(
        self,
        problem_id: str,
        ttl: float | None = None,
        now: float | None = None,
    ) -> HintCacheEntry | None:
        """Entry if it is at most ``ttl`` seconds old, else None."""
        entry = self._load().get(problem_id)
        if entry is None:
            return None
        ttl = self.ttl if ttl is None else ttl
        now = time.time() if now is None else now
        if entry.age(now) <= ttl:
            return entry
        return None

    def get_stale(self, problem_id: str) -> HintCacheEntry | None:
        """Entry regardless of age."""
        return self._load().get(problem_id)

    def put(self, problem_id: str, hint_text: str, now: float | None = None, level: int = 1) -> None:
        """Store or overwrite the hint for a problem."""
        self._load()[problem_id] = HintCacheEntry(
            hint_text=hint_text,
            cached_at=time.time() if now is None else now,
            level=level,
        )
        self._persist()

    def clear(self) -> None:
        """Drop every entry, in memory and on disk."""
        self._entries = {}
        self._loaded = True
        try:
            self.store.remove(HINT_CACHE_KEY)
        except PersistenceError as e:
            logger.error(f"Could not clear persisted hint cache: {e}")

    def __len__(self) -> int:
        return len(self._load())


class RateLimiter:
    """Minimum interval between backend calls for the same key."""

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self._last_call: dict[str, float] = {}

    def is_rate_limited(
        self,
        key: str,
        min_interval: float | None = None,
        now: float | None = None,
    ) -> bool:
        last = self._last_call.get(key)
        if last is None:
            return False
        interval = self.min_interval if min_interval is None else min_interval
        now = time.time() if now is None else now
        return (now - last) < interval

    def record_call(self, key: str, now: float | None = None) -> None:
        """Mark a call; done right before the request goes out."""
        self._last_call[key] = time.time() if now is None else now

    def clear(self) -> None:
        self._last_call.clear()
