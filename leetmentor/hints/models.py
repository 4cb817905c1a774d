"""
Hint data types and collaborator protocols.

The context collector (page scraper) and presentation surface (in-page
bubble) are outside this package; the orchestrator only talks to them
through the protocols below.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

UNKNOWN_PROBLEM = "unknown"
ASK_FOR_CODE = "ask_for_code"
CAP_REACHED_MESSAGE = "Reached maximum hint limit."


class HintSource(Enum):
    """Where a delivered hint came from."""

    BACKEND = "backend"
    CACHE = "cache"
    LOCAL = "local"
    TEMPLATE = "template"


@dataclass
class ProblemContext:
    """What the context collector reports about the current page."""

    problem_id: str
    snippet: str = ""
    url: str = ""
    failure: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], snippet_max_chars: int = 2000) -> "ProblemContext":
        """Build from a collector response, deriving the problem id from the URL if absent."""
        url = str(data.get("url") or "")
        problem_id = str(data.get("problemId") or "").strip() or url or UNKNOWN_PROBLEM
        return cls(
            problem_id=problem_id,
            snippet=str(data.get("snippet") or "")[:snippet_max_chars],
            url=url,
            failure=str(data.get("failure") or ""),
        )

    def truncated(self, snippet_max_chars: int) -> "ProblemContext":
        if len(self.snippet) <= snippet_max_chars:
            return self
        return replace(self, snippet=self.snippet[:snippet_max_chars])


@dataclass
class HintDisplay:
    """Payload pushed to the presentation surface."""

    hint_text: str
    level: int
    ask_for_code: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"hintText": self.hint_text, "level": self.level, "askForCode": self.ask_for_code}


@dataclass
class HintResult:
    """Result of a hint request, as returned to the caller."""

    problem_id: str
    hint: str
    level: int
    count: int
    cap: int
    ask_for_code: bool = False
    source: HintSource | None = None
    request_id: str = ""

    @property
    def remaining(self) -> int:
        return max(0, self.cap - self.count)

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "ok": True,
            "hint": self.hint,
            "level": self.level,
            "remaining": self.remaining,
            "source": self.source.value if self.source else None,
        }
        if self.ask_for_code:
            response["action"] = ASK_FOR_CODE
        return response


@dataclass
class ExcerptResult:
    """Result of a code excerpt request."""

    problem_id: str
    snippet: str
    source: HintSource

    def to_response(self) -> dict[str, Any]:
        return {"ok": True, "snippet": self.snippet, "source": self.source.value}


class ContextCollector(Protocol):
    """Supplies page context for a session. May not answer at all."""

    async def collect(self, session_id: str) -> dict[str, Any] | None: ...

    async def reinject(self, session_id: str) -> None: ...

    async def active_session(self) -> str | None: ...


class PresentationSurface(Protocol):
    """Shows hints inside the page. Delivery failures are not fatal."""

    async def show_hint(self, session_id: str, display: HintDisplay) -> None: ...

    async def hide_hint(self, session_id: str) -> None: ...
