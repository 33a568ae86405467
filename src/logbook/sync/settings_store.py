"""
Sync settings and their persistence on disk.

SyncSettings is the value object handed to SyncEngine and RemoteTransport
for one cycle: server URL, credentials, and whether the server requires a
login. It is loaded once at startup, and every change is written back
immediately with SyncSettingsStore.

The file holds the sync password, so it is written with owner-only
permissions:

    Directory: 0700 (rwx------)
    File:      0600 (rw-------)
"""
import json
import os
import stat
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from logbook.config import Settings, get_settings

SETTINGS_FILE_NAME = "sync_settings.json"


class SyncSettings(BaseModel):
    url: str = ""
    user: str = ""
    password: str = ""
    auth: bool = True

    @classmethod
    def from_config(cls, settings: Optional[Settings] = None) -> "SyncSettings":
        """Defaults taken from environment configuration."""
        settings = settings or get_settings()
        return cls(
            url=settings.sync_url,
            user=settings.sync_user,
            password=settings.sync_password,
            auth=settings.sync_auth,
        )


class SyncSettingsStore:
    """
    Reads and writes SyncSettings as JSON.

    Usage:
        store = SyncSettingsStore()
        settings = store.load()
        settings = store.update(url="https://logbook.example.com")
    """

    def __init__(self, settings_dir: Optional[Path] = None):
        self._settings_dir = Path(settings_dir or get_settings().settings_dir)
        self._settings_file = self._settings_dir / SETTINGS_FILE_NAME

    @property
    def path(self) -> Path:
        return self._settings_file

    def exists(self) -> bool:
        return self._settings_file.exists()

    def load(self) -> SyncSettings:
        """Load saved settings, falling back to environment defaults."""
        if not self._settings_file.exists():
            return SyncSettings.from_config()
        return SyncSettings.model_validate(json.loads(self._settings_file.read_text()))

    def save(self, settings: SyncSettings) -> None:
        self._settings_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self._settings_dir, stat.S_IRWXU)  # 0700

        self._settings_file.write_text(json.dumps(settings.model_dump(), indent=2))
        os.chmod(self._settings_file, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    def update(self, **changes: Any) -> SyncSettings:
        """Apply `changes` to the saved settings and persist them at once."""
        settings = self.load().model_copy(update=changes)
        self.save(settings)
        return settings

    def clear(self) -> None:
        """Delete the settings file (does not raise if already absent)."""
        if self._settings_file.exists():
            self._settings_file.unlink()
