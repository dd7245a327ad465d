"""Persistent application settings holding the user's CLI override."""

import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import DEFAULT_STATE_DIR

logger = logging.getLogger(__name__)


class LocatorSettings(BaseModel):
    """Settings document persisted between runs."""
    claude_binary_path: Optional[str] = Field(
        default=None,
        description="User-configured CLI path; re-verified before every use"
    )


class JsonSettingsStore:
    """SettingsStore backed by a small JSON file."""

    def __init__(self, settings_file: Optional[Path] = None):
        self.settings_file = Path(settings_file or DEFAULT_STATE_DIR / "settings.json")

    def load(self) -> LocatorSettings:
        """Load settings; a missing or corrupt file yields defaults."""
        if not self.settings_file.exists():
            return LocatorSettings()
        try:
            return LocatorSettings.model_validate_json(self.settings_file.read_text(encoding="utf-8"))
        except Exception:
            logger.warning("Ignoring unreadable settings file %s", self.settings_file)
            return LocatorSettings()

    def save(self, settings: LocatorSettings) -> None:
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self.settings_file.write_text(settings.model_dump_json(indent=2), encoding="utf-8")

    def get_cli_path(self) -> Optional[str]:
        return self.load().claude_binary_path or None

    def set_cli_path(self, path: str) -> None:
        settings = self.load()
        settings.claude_binary_path = path
        self.save(settings)

    def clear_cli_path(self) -> None:
        settings = self.load()
        if settings.claude_binary_path is None:
            return
        settings.claude_binary_path = None
        self.save(settings)


class MemorySettingsStore:
    """In-process SettingsStore for embedding and tests."""

    def __init__(self, cli_path: Optional[str] = None):
        self._cli_path = cli_path

    def get_cli_path(self) -> Optional[str]:
        return self._cli_path

    def set_cli_path(self, path: str) -> None:
        self._cli_path = path

    def clear_cli_path(self) -> None:
        self._cli_path = None
