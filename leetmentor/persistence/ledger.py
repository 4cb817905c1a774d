"""
Hint Ledger - per-problem hint counts

Counts only grow through commit_increment(), which the orchestrator
calls once per delivered hint, after the cap check. The whole map is
written back on every change.
"""

import logging
from dataclasses import dataclass

from leetmentor.config import HINT_CAP
from leetmentor.exceptions import LedgerError, PersistenceError
from leetmentor.persistence.store import HINT_COUNTS_KEY, MentorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HintReservation:
    """Outcome of a cap check for one problem."""

    problem_id: str
    count: int
    cap: int

    @property
    def cap_reached(self) -> bool:
        return self.count >= self.cap

    @property
    def level(self) -> int:
        """1-based level of the hint that would be delivered next."""
        return min(self.count + 1, self.cap)


class HintLedger:
    """Durable mapping problem_id -> hints delivered, capped at ``cap``."""

    def __init__(self, store: MentorStore, cap: int = HINT_CAP):
        self.store = store
        self.cap = cap
        # Until the stored map has been read, _counts holds only hints
        # delivered by this process and is never written back on its own.
        self._counts: dict[str, int] = {}
        self._loaded = False

    def _parse(self, raw: dict) -> dict[str, int]:
        counts = {}
        for problem_id, value in raw.items():
            try:
                counts[str(problem_id)] = max(0, min(int(value), self.cap))
            except (TypeError, ValueError):
                logger.warning(f"Dropping malformed hint count for {problem_id!r}: {value!r}")
        return counts

    def _load(self) -> dict[str, int]:
        if self._loaded:
            return self._counts
        try:
            raw = self.store.get(HINT_COUNTS_KEY, {}) or {}
        except PersistenceError as e:
            logger.error(f"Could not load hint counts, will retry: {e}")
            return self._counts

        stored = self._parse(raw)
        for problem_id, delivered in self._counts.items():
            stored[problem_id] = min(stored.get(problem_id, 0) + delivered, self.cap)
        self._counts = stored
        self._loaded = True
        return self._counts

    def _persist(self) -> None:
        if not self._loaded:
            logger.warning("Stored hint counts not read yet, skipping write")
            return
        try:
            self.store.set(HINT_COUNTS_KEY, dict(self._counts))
        except PersistenceError as e:
            # In-memory count stays authoritative for this process
            logger.error(f"Could not persist hint counts: {e}")

    def get_count(self, problem_id: str) -> int:
        """Current count, 0 for unseen problems."""
        return self._load().get(problem_id, 0)

    def try_reserve_next(self, problem_id: str) -> HintReservation:
        """Check the cap without mutating anything."""
        return HintReservation(problem_id=problem_id, count=self.get_count(problem_id), cap=self.cap)

    def commit_increment(self, problem_id: str) -> int:
        """
        Record one delivered hint.

        Returns:
            The new count

        Raises:
            LedgerError: If the problem is already at the cap
        """
        counts = self._load()
        current = counts.get(problem_id, 0)
        if current >= self.cap:
            raise LedgerError(
                f"Hint cap already reached for '{problem_id}'",
                problem_id=problem_id,
                count=current,
                cap=self.cap,
            )
        counts[problem_id] = current + 1
        self._persist()
        logger.debug(f"Hint count for {problem_id} -> {current + 1}")
        return current + 1

    def reset_all(self) -> None:
        """Clear every entry, in memory and on disk."""
        self._counts = {}
        self._loaded = True
        try:
            self.store.remove(HINT_COUNTS_KEY)
        except PersistenceError as e:
            logger.error(f"Could not clear persisted hint counts: {e}")

    def snapshot(self) -> dict[str, int]:
        """Copy of all counts."""
        return dict(self._load())
