"""Recorder preferences storage and management.

Preferences are stored as JSON in the OS user config directory via platformdirs,
using atomic writes (temp file + rename) to prevent corruption.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import platformdirs

from lsdw.errors import LsdwError
from lsdw.models import DataType
from lsdw.storage.formats import OutputFormat


# Preference format version for migrations
PREFERENCES_VERSION = 1

# App name for platformdirs
APP_NAME = "lsdw"

# Samples per chunk handed to the writers
DEFAULT_CHUNK_SIZE = 256


def default_output_directory() -> str:
    """Return the default recordings directory in the OS user data directory."""
    return str(Path(platformdirs.user_data_dir(APP_NAME)) / "recordings")


@dataclass
class RecorderPreferences:
    """Recorder preferences data model."""

    # Metadata
    preferences_version: int = PREFERENCES_VERSION
    last_updated_utc: str = ""

    # Output
    output_directory: str = field(default_factory=default_output_directory)
    filename_prefix: str = ""
    formats: list[str] = field(
        default_factory=lambda: [f.value for f in OutputFormat]
    )
    data_type: str = DataType.EEG.value

    # Writing
    chunk_size: int = DEFAULT_CHUNK_SIZE
    fsync_on_close: bool = True

    def validate(self) -> None:
        """Check enumerated values and limits.

        Raises:
            UnsupportedFormatError: If a format identifier is unknown.
            UnsupportedDataTypeError: If the data type is unknown.
            ValueError: If chunk_size is not positive.
        """
        for fmt in self.formats:
            OutputFormat.parse(fmt)
        DataType.parse(self.data_type)
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


def get_preferences_dir() -> Path:
    """Return the OS-specific user config directory for lsdw."""
    return Path(platformdirs.user_config_dir(APP_NAME))


def get_preferences_path() -> Path:
    """Return the full path to the preferences.json file."""
    return get_preferences_dir() / "preferences.json"


class PreferencesStore:
    """Handles loading and saving recorder preferences with atomic writes.

    Example usage:
        store = PreferencesStore()
        prefs = store.load()
        prefs.formats = ["json", "binary"]
        store.save(prefs)
    """

    def __init__(self, preferences_path: Path | None = None) -> None:
        """Initialize the preferences store.

        Args:
            preferences_path: Custom path for preferences file. If None, uses
                the default OS config directory location.
        """
        self._path = preferences_path or get_preferences_path()

    @property
    def path(self) -> Path:
        """Return the preferences file path."""
        return self._path

    def load(self) -> RecorderPreferences:
        """Load preferences from disk.

        Returns:
            RecorderPreferences with values from disk, or defaults if the file
            doesn't exist or is invalid.
        """
        if not self._path.exists():
            return RecorderPreferences()

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            return self._from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError, ValueError, LsdwError):
            return RecorderPreferences()

    def save(self, preferences: RecorderPreferences) -> None:
        """Save preferences to disk using atomic write.

        Args:
            preferences: The preferences to save.

        Raises:
            OSError: If the directory cannot be created or write fails.
        """
        preferences.last_updated_utc = datetime.now(timezone.utc).isoformat()
        preferences.preferences_version = PREFERENCES_VERSION

        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(asdict(preferences), indent=2, ensure_ascii=False)

        # Atomic write: temp file + rename
        fd, tmp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix="preferences_",
            dir=self._path.parent,
        )
        try:
            try:
                os.write(fd, content.encode("utf-8"))
                os.fsync(fd)
            finally:
                os.close(fd)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def _from_dict(self, data: dict[str, Any]) -> RecorderPreferences:
        """Convert a dictionary to RecorderPreferences with validation.

        Unknown keys are ignored, missing keys use defaults. Invalid values
        make the whole file fall back to defaults.
        """
        if not isinstance(data, dict):
            raise ValueError("preferences must be a JSON object")
        valid_fields = {f.name for f in fields(RecorderPreferences)}
        kwargs = {key: value for key, value in data.items() if key in valid_fields}

        preferences = RecorderPreferences(**kwargs)
        preferences.validate()
        return preferences
