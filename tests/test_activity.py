"""Tests for session activity tracking and stuck detection."""

import pytest

from leetmentor.activity import ActivityTracker, StuckReason


@pytest.fixture
def tracker():
    return ActivityTracker(idle_threshold=180, failure_window=600)


class TestIdleDetection:
    """Tests for idle-based stuck detection."""

    def test_not_idle_before_threshold(self, tracker):
        """179s after input the session is not stuck."""
        tracker.record_input("tab-1", 1000.0)
        assert tracker.check_idle(1179.0) == []
        assert not tracker.is_stuck("tab-1")

    def test_idle_after_threshold(self, tracker):
        """181s after input the session is stuck."""
        tracker.record_input("tab-1", 1000.0)
        assert tracker.check_idle(1181.0) == ["tab-1"]
        assert tracker.is_stuck("tab-1")
        assert tracker.get("tab-1").stuck_reason is StuckReason.IDLE

    def test_exactly_at_threshold_is_not_idle(self, tracker):
        """The threshold itself is not exceeded."""
        tracker.record_input("tab-1", 1000.0)
        assert tracker.check_idle(1180.0) == []

    def test_submit_click_counts_as_activity(self, tracker):
        """The latest of input and submit is used."""
        tracker.record_input("tab-1", 1000.0)
        tracker.record_submit_click("tab-1", 1100.0)
        assert tracker.check_idle(1280.0) == []
        assert tracker.check_idle(1281.0) == ["tab-1"]

    def test_already_stuck_not_reported_twice(self, tracker):
        """Only newly stuck sessions are returned."""
        tracker.record_input("tab-1", 0.0)
        assert tracker.check_idle(200.0) == ["tab-1"]
        assert tracker.check_idle(300.0) == []

    def test_input_clears_idle(self, tracker):
        """New input clears an idle-stuck session."""
        tracker.record_input("tab-1", 0.0)
        tracker.check_idle(200.0)
        tracker.record_input("tab-1", 201.0)
        assert not tracker.is_stuck("tab-1")

    def test_session_without_activity_is_skipped(self, tracker):
        """A session that only ever reported a result has no idle clock."""
        tracker.record_submission_result("tab-1", "pass", 0.0)
        assert tracker.check_idle(10_000.0) == []


class TestSubmissionResults:
    """Tests for failure-based stuck detection."""

    def test_single_failure_marks_stuck(self, tracker):
        """One failed submission is enough."""
        tracker.record_submission_result("tab-1", "fail", 100.0)
        assert tracker.is_stuck("tab-1")
        assert tracker.get("tab-1").stuck_reason is StuckReason.FAILURE

    def test_pass_clears_stuck_and_failures(self, tracker):
        """A passing submission resets the session."""
        tracker.record_submission_result("tab-1", "fail", 100.0)
        tracker.record_submission_result("tab-1", "pass", 110.0)
        activity = tracker.get("tab-1")
        assert not activity.stuck
        assert activity.recent_failures == []

    def test_input_does_not_clear_failure(self, tracker):
        """Typing does not undo a failure-stuck state."""
        tracker.record_submission_result("tab-1", "fail", 100.0)
        tracker.record_input("tab-1", 101.0)
        assert tracker.is_stuck("tab-1")

    def test_old_failures_are_pruned(self, tracker):
        """Failures older than the window are dropped."""
        tracker.record_submission_result("tab-1", "fail", 0.0)
        tracker.record_submission_result("tab-1", "fail", 700.0)
        assert tracker.get("tab-1").recent_failures == [700.0]

    def test_bad_status(self, tracker):
        """Unknown statuses are rejected."""
        with pytest.raises(ValueError):
            tracker.record_submission_result("tab-1", "maybe", 0.0)


class TestSessionLifecycle:
    """Tests for session creation and removal."""

    def test_remove_session(self, tracker):
        """Closed sessions are forgotten."""
        tracker.record_input("tab-1", 0.0)
        assert tracker.remove_session("tab-1") is True
        assert tracker.get("tab-1") is None
        assert tracker.session_ids() == []

    def test_remove_unknown_session(self, tracker):
        """Removing an unknown session is a no-op."""
        assert tracker.remove_session("ghost") is False

    def test_snapshot(self, tracker):
        """Snapshot exposes flags and timestamps only."""
        tracker.record_input("tab-1", 5.0)
        tracker.record_submission_result("tab-1", "fail", 6.0)
        snap = tracker.snapshot()["tab-1"]
        assert snap["lastInputAt"] == 5.0
        assert snap["recentFailures"] == 1
        assert snap["stuck"] is True
        assert snap["stuckReason"] == "failure"
