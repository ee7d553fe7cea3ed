"""Rotating backups of the consuming application's settings file.

Layout of the backup directory::

    settings.json.original                      pristine pre-gatecli snapshot
    settings.json.backup.2026-10-19-14-03-22    rotating pool
    settings.json.backup.2026-10-19-14-03-22-1  second backup in that second

The pool holds at most ``maxBackups`` files: before each new copy the
oldest entries (by modification time, then name timestamp, then sequence)
are deleted. The ``.original`` snapshot is never rotated and is written
only once.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from gatecli.config import atomic_write
from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import BackupInfo, utcnow
from gatecli.storage.config_store import ConfigurationStore

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "settings.json.backup."
ORIGINAL_BACKUP = "settings.json.original"
TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"

_BACKUP_NAME = re.compile(
    r"^" + re.escape(BACKUP_PREFIX) + r"(?P<ts>\d{4}(?:-\d{2}){5})(?:-(?P<seq>\d+))?$"
)


def _pool_sort_key(path: Path) -> tuple[int, str, int, str]:
    match = _BACKUP_NAME.match(path.name)
    ts = match.group("ts") if match else ""
    seq = int(match.group("seq")) if match and match.group("seq") else 0
    try:
        mtime = path.stat().st_mtime_ns
    except OSError:
        mtime = 0
    return (mtime, ts, seq, path.name)


def _to_info(path: Path) -> BackupInfo:
    stat = path.stat()
    return BackupInfo(
        path=path,
        file_name=path.name,
        size_bytes=stat.st_size,
        created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        is_original=path.name == ORIGINAL_BACKUP,
    )


class BackupManager:
    """Create, rotate, list and restore settings backups.

    The backup directory and pool size are read from the
    :class:`~gatecli.storage.config_store.ConfigurationStore` on every
    call, so ``backupSettings`` edits take effect immediately.

    Args:
        store: Source of backup settings and keeper of the original-snapshot
            pointer.
        clock: Time source for backup names (rendered in local time).
    """

    def __init__(
        self,
        store: ConfigurationStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    @property
    def backup_dir(self) -> Path:
        return self._store.backup_dir()

    @property
    def original_backup_path(self) -> Path:
        return self.backup_dir / ORIGINAL_BACKUP

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def create_backup(self, source: Path) -> Optional[Path]:
        """Copy *source* into the rotating pool.

        Args:
            source: File to back up.

        Returns:
            Path of the new backup, or ``None`` when *source* does not exist.

        Raises:
            GateError: ``BACKUP`` if rotation or the copy fails.
        """
        if not source.is_file():
            logger.warning("Source file does not exist, skipping backup: %s", source)
            return None

        settings = self._store.backup_settings()
        backup_dir = self.backup_dir
        try:
            backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise GateError(
                ErrorKind.BACKUP, f"Cannot create backup directory {backup_dir}: {exc}"
            ) from exc

        self._rotate(backup_dir, settings.max_backups)

        target = self._next_backup_path(backup_dir)
        self._copy(source, target)
        logger.info("Created backup: %s", target)
        return target

    def create_original_backup(self, source: Path) -> Optional[Path]:
        """Snapshot *source* as ``settings.json.original`` if not done before.

        The path is recorded in the configuration store. Repeated calls
        leave an existing snapshot untouched.

        Returns:
            The snapshot path, or ``None`` when *source* does not exist.
        """
        if not source.is_file():
            logger.warning("Source file does not exist, cannot create original backup: %s", source)
            return None

        original = self.original_backup_path
        if original.is_file():
            logger.debug("Original backup already exists: %s", original)
            if self._store.original_settings_backup() != str(original):
                self._store.set_original_settings_backup(str(original))
            return original

        try:
            original.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise GateError(
                ErrorKind.BACKUP, f"Cannot create backup directory {original.parent}: {exc}"
            ) from exc
        self._copy(source, original)
        self._store.set_original_settings_backup(str(original))
        logger.info("Created original backup: %s", original)
        return original

    def _next_backup_path(self, backup_dir: Path) -> Path:
        """Name the next backup; same-second names get an increasing ``-<n>``."""
        stamp = self._clock().astimezone().strftime(TIMESTAMP_FORMAT)
        taken = []
        for path in self._pool(backup_dir):
            match = _BACKUP_NAME.match(path.name)
            if match and match.group("ts") == stamp:
                taken.append(int(match.group("seq") or 0))
        if not taken:
            return backup_dir / f"{BACKUP_PREFIX}{stamp}"
        return backup_dir / f"{BACKUP_PREFIX}{stamp}-{max(taken) + 1}"

    def _copy(self, source: Path, target: Path) -> None:
        try:
            shutil.copyfile(source, target)
            os.chmod(target, 0o600)
        except OSError as exc:
            raise GateError(
                ErrorKind.BACKUP, f"Failed to back up {source} to {target}: {exc}"
            ) from exc

    # ------------------------------------------------------------------ #
    # Rotation
    # ------------------------------------------------------------------ #

    def _pool(self, backup_dir: Path) -> list[Path]:
        """Pool files sorted oldest first."""
        if not backup_dir.is_dir():
            return []
        try:
            files = [
                p
                for p in backup_dir.iterdir()
                if p.is_file() and _BACKUP_NAME.match(p.name)
            ]
        except OSError as exc:
            raise GateError(
                ErrorKind.BACKUP, f"Cannot list backup directory {backup_dir}: {exc}"
            ) from exc
        return sorted(files, key=_pool_sort_key)

    def _rotate(self, backup_dir: Path, max_backups: int) -> None:
        """Delete the oldest pool entries so one more fits under *max_backups*."""
        pool = self._pool(backup_dir)
        excess = len(pool) - max_backups + 1
        for old in pool[: max(excess, 0)]:
            try:
                old.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise GateError(
                    ErrorKind.BACKUP, f"Backup rotation failed deleting {old}: {exc}"
                ) from exc
            logger.debug("Deleted old backup: %s", old)

    # ------------------------------------------------------------------ #
    # Restore and listing
    # ------------------------------------------------------------------ #

    def restore_backup(self, backup: Path, target: Path) -> None:
        """Replace *target* with the content of *backup*.

        The current *target* (if any) is first copied into the pool, so a
        restore can itself be undone.

        Raises:
            GateError: ``BACKUP`` when the backup is missing, is not valid
                JSON, or cannot be written over *target*.
        """
        if not backup.is_file():
            raise GateError(ErrorKind.BACKUP, f"Backup file not found: {backup}")
        try:
            content = backup.read_text(encoding="utf-8")
            json.loads(content)
        except (ValueError, OSError) as exc:
            raise GateError(
                ErrorKind.BACKUP, f"Invalid backup file (not valid JSON): {backup}"
            ) from exc

        if target.is_file():
            self.create_backup(target)

        try:
            atomic_write(target, content)
        except OSError as exc:
            raise GateError(
                ErrorKind.BACKUP, f"Failed to restore backup from {backup}: {exc}"
            ) from exc
        logger.info("Restored backup from %s to %s", backup, target)

    def list_backups(self) -> list[BackupInfo]:
        """All backups (pool and original), newest first."""
        backup_dir = self.backup_dir
        paths = self._pool(backup_dir)
        original = backup_dir / ORIGINAL_BACKUP
        if original.is_file():
            paths.append(original)

        infos = []
        for path in paths:
            try:
                infos.append(_to_info(path))
            except OSError:
                logger.warning("Failed to get file info for: %s", path)
        infos.sort(key=lambda info: (info.created_at, info.file_name), reverse=True)
        return infos

    def most_recent_backup(self) -> Optional[BackupInfo]:
        """Newest pool backup, ignoring the original snapshot."""
        for info in self.list_backups():
            if not info.is_original:
                return info
        return None
