"""
LeetMentor - Configuration Management

Handles tuning constants, environment overrides and the user-editable
settings record. The database lives in ~/.config/leetmentor/leetmentor.db
unless LEETMENTOR_HOME points elsewhere.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from leetmentor.exceptions import ConfigError


# Configuration paths
CONFIG_DIR = Path.home() / ".config" / "leetmentor"
DB_FILENAME = "leetmentor.db"

# Settings defaults - privacy first, no network egress until the user opts in
DEFAULT_SERVER_URL = "http://localhost:3000/hint"
DEFAULT_ALLOW_SEND = False

# Hint escalation
HINT_CAP = 3


@dataclass
class Settings:
    """User-editable settings. Persisted under the ``settings`` key."""

    allow_send_to_server: bool = DEFAULT_ALLOW_SEND
    server_url: str = DEFAULT_SERVER_URL

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase dictionary used on the wire and on disk."""
        return {
            "allowSendToServer": self.allow_send_to_server,
            "serverUrl": self.server_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Settings":
        """Create Settings from a stored dictionary, filling in defaults."""
        data = data or {}
        server_url = data.get("serverUrl") or DEFAULT_SERVER_URL
        return cls(
            allow_send_to_server=bool(data.get("allowSendToServer", DEFAULT_ALLOW_SEND)),
            server_url=str(server_url).strip() or DEFAULT_SERVER_URL,
        )


@dataclass
class MentorConfig:
    """Process-wide tuning for stuck detection, hints and the backend."""

    data_dir: Path = field(default_factory=lambda: CONFIG_DIR)

    # Hint ledger
    hint_cap: int = HINT_CAP

    # Stuck detection
    idle_threshold_seconds: float = 180.0  # 3 minutes without input or submit
    idle_check_interval: float = 30.0
    failure_window_seconds: float = 600.0

    # Round trips
    context_timeout: float = 0.7
    backend_timeout: float = 9.0

    # Cache and rate limiting
    cache_ttl_seconds: float = 24 * 60 * 60
    rate_limit_seconds: float = 15.0

    # Payload limits
    snippet_max_chars: int = 2000
    excerpt_line_max: int = 200

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir).expanduser()

    @property
    def db_path(self) -> Path:
        """Full path to the SQLite database."""
        return self.data_dir / DB_FILENAME


# Environment variable -> (MentorConfig attribute, converter)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "LEETMENTOR_BACKEND_TIMEOUT": ("backend_timeout", float),
    "LEETMENTOR_RATE_LIMIT_SECONDS": ("rate_limit_seconds", float),
    "LEETMENTOR_CACHE_TTL_SECONDS": ("cache_ttl_seconds", float),
    "LEETMENTOR_IDLE_SECONDS": ("idle_threshold_seconds", float),
}


def load_config() -> MentorConfig:
    """
    Load configuration from the environment.

    Returns:
        MentorConfig with overrides applied

    Raises:
        ConfigError: If an override is not a valid number
    """
    config = MentorConfig()

    if home := os.environ.get("LEETMENTOR_HOME"):
        config.data_dir = Path(home).expanduser()

    for env_name, (attr, convert) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            value = convert(raw)
        except ValueError:
            raise ConfigError(
                f"Invalid value for {env_name}",
                {"value": raw, "expected": convert.__name__},
            )
        if value <= 0:
            raise ConfigError(f"{env_name} must be positive", {"value": raw})
        setattr(config, attr, value)

    return config


def ensure_data_dir(config: MentorConfig) -> None:
    """Ensure the data directory exists."""
    config.data_dir.mkdir(parents=True, exist_ok=True)
