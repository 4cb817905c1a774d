"""
LeetMentor Logging System.

Structured JSONL logging for:
- Hint and excerpt requests (stages, level, source, outcome)
- Backend calls (status, latency, error type)
- Session activity (stuck / cleared / closed)

Usage:
    from leetmentor.logging import HintLogEntry, hint_logger, now_iso

    entry = HintLogEntry(timestamp=now_iso(), request_id=rid, session_id="tab-1")
    hint_logger.info(entry.to_json())

Logs are written to ~/.leetmentor/logs/:
    - hint.jsonl
    - backend.jsonl
    - session.jsonl
"""

import threading
from contextvars import ContextVar
from typing import Any

from .config import LogConfig, get_config
from .config import set_config as _set_config
from .entries import BackendLogEntry, HintLogEntry, SessionLogEntry, now_iso
from .handlers import create_jsonl_logger

# Correlates backend log lines with the hint request that caused them
_request_id: ContextVar[str] = ContextVar("leetmentor_request_id", default="")


def set_request_id(request_id: str) -> None:
    """Set the request id for the current task."""
    _request_id.set(request_id)


def get_request_id() -> str:
    """Get the current request id, or 'none' if not set."""
    return _request_id.get() or "none"


_loggers: dict[str, Any] = {}
_init_lock = threading.Lock()


def _ensure_loggers() -> None:
    """Initialize loggers on first use."""
    if _loggers:
        return

    with _init_lock:
        if _loggers:
            return

        config = get_config()
        for name, path, level in (
            ("hint", config.hint_log_path, config.hint_level),
            ("backend", config.backend_log_path, config.backend_level),
            ("session", config.session_log_path, config.session_level),
        ):
            _loggers[name] = create_jsonl_logger(
                f"leetmentor.{name}",
                path,
                level=level,
                max_bytes=config.max_file_size_bytes,
                backup_count=config.backup_count,
            )


def set_config(config: LogConfig) -> None:
    """Swap the log config; loggers are rebuilt on next use."""
    with _init_lock:
        _set_config(config)
        _loggers.clear()


def redaction_enabled() -> bool:
    """Whether free-text fields should be masked before logging."""
    return get_config().redact_enabled


class _LazyLogger:
    """Lazy wrapper that initializes the actual logger on first use."""

    def __init__(self, name: str):
        self._name = name

    def _get_logger(self) -> Any:
        _ensure_loggers()
        return _loggers[self._name]

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._get_logger().error(msg, *args, **kwargs)


# Public logger instances
hint_logger = _LazyLogger("hint")
backend_logger = _LazyLogger("backend")
session_logger = _LazyLogger("session")


__all__ = [
    "hint_logger",
    "backend_logger",
    "session_logger",
    "HintLogEntry",
    "BackendLogEntry",
    "SessionLogEntry",
    "now_iso",
    "get_request_id",
    "set_request_id",
    "redaction_enabled",
    "LogConfig",
    "get_config",
    "set_config",
]
