"""Hint orchestration, local heuristics and hint data types."""

from leetmentor.hints.heuristics import (
    STARTER_FRAGMENT,
    STATIC_HINT_TEMPLATE,
    local_excerpt,
    local_hint,
)
from leetmentor.hints.models import (
    ASK_FOR_CODE,
    CAP_REACHED_MESSAGE,
    ContextCollector,
    ExcerptResult,
    HintDisplay,
    HintResult,
    HintSource,
    PresentationSurface,
    ProblemContext,
)
from leetmentor.hints.orchestrator import HintOrchestrator, build_payload

__all__ = [
    "HintOrchestrator",
    "build_payload",
    "local_hint",
    "local_excerpt",
    "STATIC_HINT_TEMPLATE",
    "STARTER_FRAGMENT",
    "ASK_FOR_CODE",
    "CAP_REACHED_MESSAGE",
    "ContextCollector",
    "PresentationSurface",
    "ProblemContext",
    "HintDisplay",
    "HintResult",
    "ExcerptResult",
    "HintSource",
]
