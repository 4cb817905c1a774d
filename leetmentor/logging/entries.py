"""
Log Entry Data Structures for LeetMentor.

Structured entries for hint requests, backend calls and session
activity. None of them has a field for the user's code.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

REDACTED = "[redacted]"


@dataclass
class HintLogEntry:
    """Log entry for one hint or excerpt request."""

    # Identity
    timestamp: str  # ISO 8601
    request_id: str
    session_id: str

    # Request
    kind: str = "hint"  # "hint" or "excerpt"
    problem_id: str = ""
    url: str = ""
    failure: str = ""

    # Outcome
    stages: list[str] = field(default_factory=list)
    hint_level: int = 0
    source: str | None = None  # backend, cache, local, template
    count_after: int | None = None
    ask_for_code: bool = False

    # Metrics
    latency_ms: int = 0

    # Error (if any)
    error: str | None = None
    error_type: str | None = None

    def redact(self) -> "HintLogEntry":
        """Mask free-text fields that may echo page content."""
        if self.url:
            self.url = REDACTED
        if self.failure:
            self.failure = REDACTED
        return self

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HintLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class BackendLogEntry:
    """Log entry for one call to the hint backend."""

    timestamp: str
    request_id: str
    server_url: str
    method: str = "generate"  # generate, health, test_server
    request_kind: str = "hint"  # hint or snippet
    hint_level: int = 0

    status_code: int | None = None
    success: bool = False
    latency_ms: int = 0

    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackendLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class SessionLogEntry:
    """Log entry for session activity events."""

    timestamp: str
    session_id: str
    event_type: str  # "created", "stuck", "cleared", "closed"

    reason: str | None = None
    failures_in_window: int = 0
    idle_seconds: float | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionLogEntry":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current time as ISO 8601 string."""
    return datetime.now().isoformat()
