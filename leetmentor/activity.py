"""
Session Activity Tracker

Tracks editor input, submit clicks and submission results per session
(browser tab) and decides when the user is stuck. A single failed
submission is enough; so is sustained inactivity.

State is in-memory only and starts empty on every process start.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from leetmentor.logging import SessionLogEntry, now_iso, session_logger

logger = logging.getLogger(__name__)


class StuckReason(Enum):
    """Why a session was marked stuck."""

    IDLE = "idle"
    FAILURE = "failure"


class SubmissionStatus(Enum):
    """Outcome reported for a submission."""

    PASS = "pass"
    FAIL = "fail"


@dataclass
class SessionActivity:
    """Activity record for one session."""

    session_id: str
    last_input_at: float | None = None
    last_submit_at: float | None = None
    recent_failures: list[float] = field(default_factory=list)
    stuck: bool = False
    stuck_reason: StuckReason | None = None

    def mark_stuck(self, reason: StuckReason) -> None:
        self.stuck = True
        self.stuck_reason = reason

    def clear_stuck(self) -> None:
        self.stuck = False
        self.stuck_reason = None

    @property
    def last_activity_at(self) -> float | None:
        """Latest of input and submit times, None if neither happened."""
        stamps = [t for t in (self.last_input_at, self.last_submit_at) if t is not None]
        return max(stamps) if stamps else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "lastInputAt": self.last_input_at,
            "lastSubmitAt": self.last_submit_at,
            "recentFailures": len(self.recent_failures),
            "stuck": self.stuck,
            "stuckReason": self.stuck_reason.value if self.stuck_reason else None,
        }


class ActivityTracker:
    """Per-session activity and stuck detection."""

    def __init__(
        self,
        idle_threshold: float = 180.0,
        failure_window: float = 600.0,
    ):
        """
        Args:
            idle_threshold: Seconds without input or submit before a session is idle-stuck
            failure_window: Seconds a failed submission keeps counting
        """
        self.idle_threshold = idle_threshold
        self.failure_window = failure_window
        self._sessions: dict[str, SessionActivity] = {}

    def _session(self, session_id: str) -> SessionActivity:
        activity = self._sessions.get(session_id)
        if activity is None:
            activity = SessionActivity(session_id=session_id)
            self._sessions[session_id] = activity
            self._log(activity, "created")
        return activity

    def _log(self, activity: SessionActivity, event_type: str, idle_seconds: float | None = None) -> None:
        session_logger.info(
            SessionLogEntry(
                timestamp=now_iso(),
                session_id=activity.session_id,
                event_type=event_type,
                reason=activity.stuck_reason.value if activity.stuck_reason else None,
                failures_in_window=len(activity.recent_failures),
                idle_seconds=idle_seconds,
            ).to_json()
        )

    def get(self, session_id: str) -> SessionActivity | None:
        return self._sessions.get(session_id)

    def is_stuck(self, session_id: str) -> bool:
        activity = self._sessions.get(session_id)
        return bool(activity and activity.stuck)

    def record_input(self, session_id: str, timestamp: float | None = None) -> None:
        """Editor input; clears an idle-stuck state, never a failure-stuck one."""
        activity = self._session(session_id)
        activity.last_input_at = time.time() if timestamp is None else timestamp
        if activity.stuck and activity.stuck_reason is StuckReason.IDLE:
            activity.clear_stuck()
            logger.debug(f"Session {session_id}: input cleared idle state")
            self._log(activity, "cleared")

    def record_submit_click(self, session_id: str, timestamp: float | None = None) -> None:
        """Run/submit click; does not change stuck status by itself."""
        activity = self._session(session_id)
        activity.last_submit_at = time.time() if timestamp is None else timestamp

    def record_submission_result(
        self,
        session_id: str,
        status: SubmissionStatus | str,
        timestamp: float | None = None,
    ) -> None:
        """
        Record a judged submission.

        Raises:
            ValueError: If status is not "pass" or "fail"
        """
        status = SubmissionStatus(status)
        activity = self._session(session_id)
        now = time.time() if timestamp is None else timestamp

        if status is SubmissionStatus.PASS:
            activity.recent_failures.clear()
            was_stuck = activity.stuck
            activity.clear_stuck()
            if was_stuck:
                self._log(activity, "cleared")
            return

        activity.recent_failures.append(now)
        cutoff = now - self.failure_window
        activity.recent_failures = [t for t in activity.recent_failures if t >= cutoff]
        if activity.recent_failures:
            activity.mark_stuck(StuckReason.FAILURE)
            logger.info(f"Session {session_id} stuck after failed submission")
            self._log(activity, "stuck")

    def check_idle(self, now: float | None = None) -> list[str]:
        """
        Mark idle sessions stuck. Run from a periodic tick.

        Sessions with no recorded activity are skipped.

        Returns:
            Ids of sessions newly marked stuck
        """
        now = time.time() if now is None else now
        newly_stuck = []
        for activity in self._sessions.values():
            if activity.stuck:
                continue
            last = activity.last_activity_at
            if last is None:
                continue
            idle_for = now - last
            if idle_for > self.idle_threshold:
                activity.mark_stuck(StuckReason.IDLE)
                newly_stuck.append(activity.session_id)
                logger.info(f"Session {activity.session_id} stuck after {idle_for:.0f}s idle")
                self._log(activity, "stuck", idle_seconds=idle_for)
        return newly_stuck

    def remove_session(self, session_id: str) -> bool:
        """Forget a closed session. Returns True if it was tracked."""
        activity = self._sessions.pop(session_id, None)
        if activity is None:
            return False
        self._log(activity, "closed")
        return True

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Debug view: timestamps and stuck flags only."""
        return {sid: a.to_dict() for sid, a in self._sessions.items()}
