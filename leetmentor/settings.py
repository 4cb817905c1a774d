"""
Settings Store

Loads the user settings once, caches them, and writes them back only on
explicit update calls. Reads never hit the database after the first.
"""

import logging
from typing import Any
from urllib.parse import urlparse

from leetmentor.config import Settings
from leetmentor.exceptions import ConfigError, PersistenceError
from leetmentor.persistence.store import SETTINGS_KEY, MentorStore

logger = logging.getLogger(__name__)


def validate_server_url(url: str) -> str:
    """
    Normalize and check a backend URL.

    Raises:
        ConfigError: If the URL is not an absolute http(s) URL
    """
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(
            "Server URL must be an absolute http(s) URL",
            {"server_url": url},
        )
    return url


class SettingsStore:
    """Cached access to the persisted Settings singleton."""

    def __init__(self, store: MentorStore):
        self.store = store
        self._settings: Settings | None = None

    def get(self) -> Settings:
        """Current settings, loading them on first use."""
        if self._settings is None:
            try:
                data = self.store.get(SETTINGS_KEY)
            except PersistenceError as e:
                logger.error(f"Could not load settings, using defaults: {e}")
                data = None
            self._settings = Settings.from_dict(data)
        return self._settings

    def _save(self, settings: Settings) -> None:
        self._settings = settings
        try:
            self.store.set(SETTINGS_KEY, settings.to_dict())
        except PersistenceError as e:
            logger.error(f"Could not persist settings: {e}")

    def update(
        self,
        allow_send_to_server: bool | None = None,
        server_url: str | None = None,
    ) -> Settings:
        """
        Change one or both settings.

        Args:
            allow_send_to_server: New consent flag, or None to keep
            server_url: New backend URL, or None to keep

        Returns:
            The updated Settings

        Raises:
            ConfigError: If server_url is invalid
        """
        current = self.get()
        updated = Settings(
            allow_send_to_server=(
                current.allow_send_to_server
                if allow_send_to_server is None
                else bool(allow_send_to_server)
            ),
            server_url=current.server_url if server_url is None else validate_server_url(server_url),
        )
        self._save(updated)
        logger.info(
            f"Settings updated: allow_send_to_server={updated.allow_send_to_server}, "
            f"server_url={updated.server_url}"
        )
        return updated

    def update_from_dict(self, data: dict[str, Any]) -> Settings:
        """Apply a camelCase settings patch (as sent by an options panel)."""
        return self.update(
            allow_send_to_server=data.get("allowSendToServer"),
            server_url=data.get("serverUrl"),
        )

    def restore_defaults(self) -> Settings:
        """Write the default settings back."""
        defaults = Settings()
        self._save(defaults)
        return defaults

    def export(self, hint_counts: dict[str, int]) -> dict[str, Any]:
        """Settings plus hint counts, for sharing a setup."""
        return {
            "settings": self.get().to_dict(),
            "hintCounts": dict(hint_counts),
        }
