"""
Logging Configuration for LeetMentor.

Defines paths, rotation settings, log levels and the redaction switch.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class LogConfig:
    """Configuration for the LeetMentor logging system."""

    # Paths
    log_dir: Path = field(default_factory=lambda: Path.home() / ".leetmentor" / "logs")

    # File settings
    max_file_size_bytes: int = 5 * 1024 * 1024  # 5MB
    backup_count: int = 3

    # Log levels: DEBUG, INFO, WARNING, ERROR
    hint_level: str = "INFO"
    backend_level: str = "INFO"
    session_level: str = "INFO"

    # Mask url/failure text in entries (snippets are never logged)
    redact_enabled: bool = False

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Load config from environment variables with defaults."""
        config = cls()

        if level := os.environ.get("LEETMENTOR_LOG_LEVEL"):
            config.hint_level = level
            config.backend_level = level
            config.session_level = level

        if log_dir := os.environ.get("LEETMENTOR_LOG_DIR"):
            config.log_dir = Path(log_dir)

        if os.environ.get("LEETMENTOR_LOG_REDACT", "").lower() in ("1", "true", "yes"):
            config.redact_enabled = True

        return config

    def ensure_log_dir(self) -> None:
        """Create log directory if it doesn't exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def hint_log_path(self) -> Path:
        """Path to the hint request log."""
        return self.log_dir / "hint.jsonl"

    @property
    def backend_log_path(self) -> Path:
        """Path to the backend call log."""
        return self.log_dir / "backend.jsonl"

    @property
    def session_log_path(self) -> Path:
        """Path to the session activity log."""
        return self.log_dir / "session.jsonl"


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """Get the global log config, initializing from env if needed."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Set a custom log config (useful for testing)."""
    global _config
    _config = config
    _config.ensure_log_dir()
