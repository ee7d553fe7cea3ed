"""The consuming application's ``settings.json``.

gatecli points Claude Code at a custom endpoint by writing two keys into
the ``env`` block of its settings file::

    {
      "env": {
        "ANTHROPIC_BASE_URL": "https://api.example.com",
        "ANTHROPIC_AUTH_TOKEN": "eyJhbGciOi..."
      },
      "permissions": {...}          <- untouched
    }

Every other key is preserved. Writes are atomic and, unless asked
otherwise, preceded by a pool backup.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from gatecli.config import atomic_write, dump_json, read_json
from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import ENV_AUTH_TOKEN, ENV_BASE_URL, ClaudeSettings
from gatecli.storage.backup import BackupManager

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


def strip_bearer(token: str) -> str:
    """Drop a leading ``Bearer `` scheme from *token*."""
    return token[len(_BEARER_PREFIX):] if token.startswith(_BEARER_PREFIX) else token


class ClaudeSettingsFile:
    """Read and update one settings file.

    Args:
        path: The ``settings.json`` location (may not exist yet).
        backups: Backup manager used before every modifying write.
    """

    def __init__(self, path: Path, backups: BackupManager) -> None:
        self._path = path
        self._backups = backups

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def last_modified(self) -> Optional[datetime]:
        """Modification time of the file, or ``None`` if it does not exist."""
        try:
            return datetime.fromtimestamp(self._path.stat().st_mtime, tz=timezone.utc)
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Failed to get last modified time for %s: %s", self._path, exc)
            return None

    def read(self) -> Optional[ClaudeSettings]:
        """Parse the file; missing or corrupt files read as ``None``."""
        if not self.exists():
            logger.debug("Settings file does not exist: %s", self._path)
            return None
        try:
            data = read_json(self._path)
            return ClaudeSettings.model_validate(data)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):
            logger.warning(
                "Settings file exists but is invalid, treating as non-existent: %s",
                self._path,
            )
            return None

    def _write(self, settings: ClaudeSettings) -> None:
        try:
            atomic_write(self._path, dump_json(settings.model_dump(mode="json")))
        except OSError as exc:
            raise GateError(
                ErrorKind.PERSISTENCE,
                f"Failed to write settings file {self._path}: {exc}",
            ) from exc

    def update(self, api_url: str, token: str, create_backup: bool = True) -> None:
        """Point the consuming application at *api_url* with *token*.

        Args:
            api_url: Value for ``ANTHROPIC_BASE_URL``.
            token: Access token; a leading ``Bearer `` is removed.
            create_backup: Copy the current file into the pool first.

        Raises:
            GateError: ``BACKUP`` or ``PERSISTENCE`` on I/O failure.
        """
        if create_backup and self.exists():
            self._backups.create_backup(self._path)

        settings = self.read()
        if settings is None:
            logger.debug("Creating new settings file at %s", self._path)
            settings = ClaudeSettings()

        settings.env[ENV_BASE_URL] = api_url
        settings.env[ENV_AUTH_TOKEN] = strip_bearer(token)
        self._write(settings)
        logger.info("Updated settings: custom endpoint=%s", api_url)

    def remove_custom_config(self) -> None:
        """Remove both gatecli-managed env keys, keeping everything else."""
        settings = self.read()
        if settings is None:
            logger.debug("No settings file to remove custom config from")
            return
        self._backups.create_backup(self._path)
        settings.env.pop(ENV_BASE_URL, None)
        settings.env.pop(ENV_AUTH_TOKEN, None)
        self._write(settings)
        logger.info("Removed custom configuration from %s", self._path)

    def ensure_original_backup(self) -> Optional[Path]:
        """Snapshot the file as the pristine original, once."""
        if not self.exists():
            return None
        return self._backups.create_original_backup(self._path)

    def restore_original(self, original_backup: Optional[str]) -> bool:
        """Return the file to its pre-gatecli state.

        Args:
            original_backup: Path of the original snapshot, if one was taken.

        Returns:
            True if the snapshot was restored, False if the file was
            deleted because no snapshot exists (there was no file before).
        """
        if original_backup and Path(original_backup).is_file():
            self._backups.restore_backup(Path(original_backup), self._path)
            logger.info("Restored original settings from %s", original_backup)
            return True
        logger.debug("No original backup found, deleting settings file")
        self.delete()
        return False

    def delete(self) -> None:
        """Remove the settings file if present."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise GateError(
                ErrorKind.PERSISTENCE,
                f"Failed to delete settings file {self._path}: {exc}",
            ) from exc
        logger.info("Deleted settings file: %s", self._path)
