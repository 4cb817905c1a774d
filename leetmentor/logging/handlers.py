"""
Custom Log Handlers for LeetMentor.

JSONL rotating file handler. Any key named in ``drop_keys`` is stripped
before a line is written, so a stray snippet never lands on disk.
"""

import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

PRIVATE_KEYS = frozenset({"snippet", "code"})


class JSONLRotatingHandler(RotatingFileHandler):
    """Rotating file handler that writes one JSON object per line."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 5_000_000,
        backup_count: int = 3,
        drop_keys: frozenset[str] = PRIVATE_KEYS,
    ):
        filepath = Path(filename)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(filepath),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        self.drop_keys = drop_keys

    def _to_record_dict(self, record: logging.LogRecord, msg: str) -> dict[str, Any]:
        try:
            data = json.loads(msg)
        except json.JSONDecodeError:
            data = None

        if not isinstance(data, dict):
            return {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "message": msg,
                "logger": record.name,
            }

        return {k: v for k, v in data.items() if k not in self.drop_keys}

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record as a JSONL line."""
        try:
            if self.shouldRollover(record):
                self.doRollover()
            data = self._to_record_dict(record, self.format(record))
            self.stream.write(json.dumps(data, default=str) + "\n")
            self.flush()
        except Exception:
            self.handleError(record)


class MessageOnlyFormatter(logging.Formatter):
    """Formatter that returns the message as-is (entries are already JSON)."""

    def format(self, record: logging.LogRecord) -> str:
        return record.getMessage()


def create_jsonl_logger(
    name: str,
    filepath: Path,
    level: str = "INFO",
    max_bytes: int = 5_000_000,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Create a logger configured for JSONL output.

    Args:
        name: Logger name
        filepath: Path to log file
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        max_bytes: Max file size before rotation
        backup_count: Number of backup files

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handler = JSONLRotatingHandler(filepath, max_bytes=max_bytes, backup_count=backup_count)
    handler.setFormatter(MessageOnlyFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    return logger
