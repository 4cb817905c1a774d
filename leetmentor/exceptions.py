"""
LeetMentor - Exception Hierarchy

All LeetMentor-specific exceptions inherit from MentorError.
Only HintRequestError subclasses are meant to reach the caller of a hint
request; backend failures are absorbed by the fallback chain.
"""

from typing import Any


class MentorError(Exception):
    """Base exception for all LeetMentor errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration Errors
class ConfigError(MentorError):
    """Raised when configuration or settings are invalid."""

    pass


# Persistence Errors
class PersistenceError(MentorError):
    """Raised when the durable key-value store cannot be read or written."""

    pass


class LedgerError(MentorError):
    """Raised when a hint ledger operation would break the hint cap."""

    def __init__(self, message: str, problem_id: str, count: int, cap: int):
        super().__init__(message, {"problem_id": problem_id, "count": count, "cap": cap})
        self.problem_id = problem_id
        self.count = count
        self.cap = cap


# State Errors
class StateTransitionError(MentorError):
    """Raised when an invalid hint request transition is attempted."""

    def __init__(self, message: str, from_state: str, to_state: str):
        super().__init__(message, {"from_state": from_state, "to_state": to_state})
        self.from_state = from_state
        self.to_state = to_state


# Hint Request Errors (surfaced to the caller)
class HintRequestError(MentorError):
    """Base exception for failures reported back to the requester.

    Each subclass carries a stable ``code`` used in message responses.
    """

    code = "request_failed"


class NoTargetSessionError(HintRequestError):
    """Raised when no addressable session (tab) exists for a request."""

    code = "no_tab"


class ContextUnavailableError(HintRequestError):
    """Raised when the context collector did not answer, even after re-injection."""

    code = "no_context"

    def __init__(self, message: str, session_id: str, attempts: int):
        super().__init__(message, {"session_id": session_id, "attempts": attempts})
        self.session_id = session_id
        self.attempts = attempts


# Backend Errors (absorbed by the fallback chain)
class BackendError(MentorError):
    """Base exception for hint backend failures."""

    pass


class BackendUnreachableError(BackendError):
    """Raised when the backend cannot be reached or answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code


class BackendTimeoutError(BackendError):
    """Raised when the backend does not answer within the hard timeout."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message, {"timeout_seconds": timeout_seconds})
        self.timeout_seconds = timeout_seconds


class BackendMalformedError(BackendError):
    """Raised when the backend answers with a body we cannot use."""

    pass
