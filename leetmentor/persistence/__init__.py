"""
LeetMentor Persistence Layer

SQLite-backed key-value store plus the hint ledger and hint cache
built on top of it. The rate limiter is in-memory only.
"""

from leetmentor.persistence.cache import HintCache, HintCacheEntry, RateLimiter
from leetmentor.persistence.ledger import HintLedger, HintReservation
from leetmentor.persistence.store import (
    HINT_CACHE_KEY,
    HINT_COUNTS_KEY,
    SETTINGS_KEY,
    MentorStore,
)

__all__ = [
    "MentorStore",
    "HINT_CACHE_KEY",
    "HINT_COUNTS_KEY",
    "SETTINGS_KEY",
    "HintLedger",
    "HintReservation",
    "HintCache",
    "HintCacheEntry",
    "RateLimiter",
]
