"""
LeetMentor - Hint Request State Machine

Tracks the stage of a single hint request so that the orchestrator can
only move along legal edges, and so the visited path can be logged.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any


class HintStage(Enum):
    """
    Stages of a hint request.

    State transitions:
    COLLECTING_CONTEXT -> CHECKING_CAP
    CHECKING_CAP -> CAP_REACHED (count at cap) or FETCHING
    FETCHING -> DELIVERING (backend hint) or FALLBACK
    FALLBACK -> DELIVERING
    DELIVERING -> CAP_REACHED (commit refused at the cap)
    CAP_REACHED, DELIVERING -> DONE
    Any non-terminal -> FAILED
    """

    COLLECTING_CONTEXT = auto()
    CHECKING_CAP = auto()
    CAP_REACHED = auto()
    FETCHING = auto()
    FALLBACK = auto()
    DELIVERING = auto()
    DONE = auto()
    FAILED = auto()


VALID_TRANSITIONS: dict[HintStage, set[HintStage]] = {
    HintStage.COLLECTING_CONTEXT: {HintStage.CHECKING_CAP, HintStage.FAILED},
    HintStage.CHECKING_CAP: {HintStage.CAP_REACHED, HintStage.FETCHING, HintStage.FAILED},
    HintStage.CAP_REACHED: {HintStage.DONE, HintStage.FAILED},
    HintStage.FETCHING: {HintStage.DELIVERING, HintStage.FALLBACK, HintStage.FAILED},
    HintStage.FALLBACK: {HintStage.DELIVERING, HintStage.FAILED},
    HintStage.DELIVERING: {HintStage.CAP_REACHED, HintStage.DONE, HintStage.FAILED},
    HintStage.DONE: set(),  # Terminal
    HintStage.FAILED: set(),  # Terminal
}


@dataclass
class HintRequestTrace:
    """Stage bookkeeping for one hint request."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stage: HintStage = HintStage.COLLECTING_CONTEXT
    path: list[HintStage] = field(default_factory=lambda: [HintStage.COLLECTING_CONTEXT])
    started_at: datetime = field(default_factory=datetime.now)
    error: str | None = None

    def transition_to(self, new_stage: HintStage) -> bool:
        """
        Attempt to move to a new stage.

        Returns:
            True if the transition was valid and performed
        """
        if new_stage in VALID_TRANSITIONS.get(self.stage, set()):
            self.stage = new_stage
            self.path.append(new_stage)
            return True
        return False

    def require_transition(self, new_stage: HintStage) -> None:
        """
        Move to a new stage or raise.

        Raises:
            StateTransitionError: If the transition is not valid
        """
        from leetmentor.exceptions import StateTransitionError

        if not self.transition_to(new_stage):
            valid_targets = VALID_TRANSITIONS.get(self.stage, set())
            valid_names = ", ".join(sorted(s.name for s in valid_targets)) or "none"
            raise StateTransitionError(
                f"Invalid hint stage transition: {self.stage.name} -> {new_stage.name}. "
                f"Valid transitions from {self.stage.name}: {valid_names}",
                from_state=self.stage.name,
                to_state=new_stage.name,
            )

    def can_transition_to(self, new_stage: HintStage) -> bool:
        """Check if a transition to new_stage is valid from the current stage."""
        return new_stage in VALID_TRANSITIONS.get(self.stage, set())

    def fail(self, error: str) -> None:
        """Record an error and move to FAILED if still possible."""
        self.error = error
        self.transition_to(HintStage.FAILED)

    @property
    def finished(self) -> bool:
        return not VALID_TRANSITIONS[self.stage]

    @property
    def used_fallback(self) -> bool:
        return HintStage.FALLBACK in self.path

    def stage_names(self) -> list[str]:
        return [s.name for s in self.path]

    def get_stats(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "stage": self.stage.name,
            "path": self.stage_names(),
            "error": self.error,
            "duration_seconds": (datetime.now() - self.started_at).total_seconds(),
        }
