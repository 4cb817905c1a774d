"""
LeetMentor - stuck detection and escalating hints for coding practice.

Watches a practice session, decides when the user is stuck, and hands
out up to three increasingly specific hints per problem, from a backend
service when the user allows it and from local heuristics otherwise.
"""

__version__ = "0.1.0"

from leetmentor.exceptions import (
    BackendError,
    ConfigError,
    ContextUnavailableError,
    HintRequestError,
    MentorError,
    NoTargetSessionError,
    PersistenceError,
)

__all__ = [
    "__version__",
    "MentorError",
    "ConfigError",
    "PersistenceError",
    "HintRequestError",
    "NoTargetSessionError",
    "ContextUnavailableError",
    "BackendError",
]
