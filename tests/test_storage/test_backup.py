"""Tests for settings backups: rotation, the original snapshot, restore."""

from __future__ import annotations

import itertools
import json
import stat
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from gatecli.exceptions import ErrorKind, GateError
from gatecli.storage.backup import BACKUP_PREFIX, ORIGINAL_BACKUP, BackupManager
from gatecli.storage.config_store import ConfigurationStore

START = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _ticking_clock(step: timedelta = timedelta(seconds=1)):
    counter = itertools.count()
    return lambda: START + step * next(counter)


def _store(tmp_path: Path, max_backups: int = 10) -> ConfigurationStore:
    config = tmp_path / "gatecli" / "config.json"
    config.parent.mkdir(parents=True)
    config.write_text(json.dumps({
        "version": "2.0",
        "backupSettings": {"maxBackups": max_backups, "backupDirectory": str(tmp_path / "pool")},
    }))
    return ConfigurationStore(config)


def _settings(tmp_path: Path, content: dict | None = None) -> Path:
    path = tmp_path / "claude" / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(content or {"env": {}, "theme": "dark"}))
    return path


def _pool(tmp_path: Path) -> list[str]:
    return sorted(p.name for p in (tmp_path / "pool").iterdir() if p.name.startswith(BACKUP_PREFIX))


# ---------------------------------------------------------------------------
# Creation and rotation
# ---------------------------------------------------------------------------


class TestCreateBackup:
    def test_copy_named_by_timestamp(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path), clock=lambda: START)

        backup = manager.create_backup(source)

        stamp = START.astimezone().strftime("%Y-%m-%d-%H-%M-%S")
        assert backup == tmp_path / "pool" / f"settings.json.backup.{stamp}"
        assert backup.read_text() == source.read_text()
        assert stat.S_IMODE(backup.stat().st_mode) == 0o600

    def test_missing_source_is_skipped(self, tmp_path: Path) -> None:
        manager = BackupManager(_store(tmp_path))
        assert manager.create_backup(tmp_path / "nope.json") is None
        assert not (tmp_path / "pool").exists()

    def test_same_second_gets_sequence_suffix(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path), clock=lambda: START)

        first = manager.create_backup(source)
        second = manager.create_backup(source)
        third = manager.create_backup(source)

        assert second.name == f"{first.name}-1"
        assert third.name == f"{first.name}-2"
        assert len(_pool(tmp_path)) == 3

    def test_rotation_keeps_newest(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path, max_backups=3), clock=_ticking_clock())

        created = [manager.create_backup(source) for _ in range(5)]

        assert _pool(tmp_path) == sorted(p.name for p in created[-3:])

    def test_rotation_with_same_second_names(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path, max_backups=2), clock=lambda: START)

        created = [manager.create_backup(source) for _ in range(4)]

        assert _pool(tmp_path) == sorted(p.name for p in created[-2:])

    def test_rotation_never_touches_original(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path, max_backups=1), clock=_ticking_clock())
        manager.create_original_backup(source)

        for _ in range(3):
            manager.create_backup(source)

        assert (tmp_path / "pool" / ORIGINAL_BACKUP).is_file()
        assert len(_pool(tmp_path)) == 1

    def test_unrelated_files_ignored(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path, max_backups=1), clock=_ticking_clock())
        (tmp_path / "pool").mkdir()
        (tmp_path / "pool" / "notes.txt").write_text("keep me")

        manager.create_backup(source)
        manager.create_backup(source)

        assert (tmp_path / "pool" / "notes.txt").exists()

    def test_manual_copy_with_backup_prefix_kept(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path, max_backups=1), clock=_ticking_clock())
        (tmp_path / "pool").mkdir()
        manual = tmp_path / "pool" / f"{BACKUP_PREFIX}manual"
        manual.write_text('{"env": {}}')

        manager.create_backup(source)
        latest = manager.create_backup(source)

        assert manual.read_text() == '{"env": {}}'
        assert [info.path for info in manager.list_backups()] == [latest]
        assert manager.most_recent_backup().path == latest

    def test_copy_failure_is_backup_error(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        store = _store(tmp_path)
        (tmp_path / "pool").write_text("a file where the directory should be")
        with pytest.raises(GateError) as exc_info:
            BackupManager(store).create_backup(source)
        assert exc_info.value.kind is ErrorKind.BACKUP


class TestOriginalBackup:
    def test_created_once(self, tmp_path: Path) -> None:
        source = _settings(tmp_path, {"env": {}, "v": 1})
        store = _store(tmp_path)
        manager = BackupManager(store)

        original = manager.create_original_backup(source)
        source.write_text(json.dumps({"env": {}, "v": 2}))
        again = manager.create_original_backup(source)

        assert original == again == tmp_path / "pool" / ORIGINAL_BACKUP
        assert json.loads(original.read_text())["v"] == 1
        assert store.original_settings_backup() == str(original)

    def test_missing_source(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        assert BackupManager(store).create_original_backup(tmp_path / "nope.json") is None
        assert store.original_settings_backup() is None


# ---------------------------------------------------------------------------
# Restore and listing
# ---------------------------------------------------------------------------


class TestRestore:
    def test_restore_backs_up_current_first(self, tmp_path: Path) -> None:
        target = _settings(tmp_path, {"env": {}, "v": "current"})
        backup = tmp_path / "saved.json"
        backup.write_text(json.dumps({"env": {}, "v": "saved"}))
        manager = BackupManager(_store(tmp_path), clock=lambda: START)

        manager.restore_backup(backup, target)

        assert json.loads(target.read_text())["v"] == "saved"
        pool = _pool(tmp_path)
        assert len(pool) == 1
        assert json.loads((tmp_path / "pool" / pool[0]).read_text())["v"] == "current"

    def test_restore_into_missing_target(self, tmp_path: Path) -> None:
        backup = tmp_path / "saved.json"
        backup.write_text('{"env": {}}')
        target = tmp_path / "claude" / "settings.json"

        BackupManager(_store(tmp_path)).restore_backup(backup, target)

        assert target.read_text() == '{"env": {}}'
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_missing_backup(self, tmp_path: Path) -> None:
        target = _settings(tmp_path)
        before = target.read_text()
        with pytest.raises(GateError) as exc_info:
            BackupManager(_store(tmp_path)).restore_backup(tmp_path / "gone.json", target)
        assert exc_info.value.kind is ErrorKind.BACKUP
        assert "Backup file not found" in exc_info.value.message
        assert target.read_text() == before

    def test_invalid_json_backup(self, tmp_path: Path) -> None:
        target = _settings(tmp_path)
        before = target.read_text()
        backup = tmp_path / "broken.json"
        backup.write_text("{ truncated")
        with pytest.raises(GateError) as exc_info:
            BackupManager(_store(tmp_path)).restore_backup(backup, target)
        assert exc_info.value.kind is ErrorKind.BACKUP
        assert "not valid JSON" in exc_info.value.message
        assert target.read_text() == before
        assert not (tmp_path / "pool").exists()


class TestListing:
    def test_empty(self, tmp_path: Path) -> None:
        manager = BackupManager(_store(tmp_path))
        assert manager.list_backups() == []
        assert manager.most_recent_backup() is None

    def test_newest_first_with_original(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path), clock=_ticking_clock())
        manager.create_original_backup(source)
        first = manager.create_backup(source)
        second = manager.create_backup(source)

        listing = manager.list_backups()

        assert len(listing) == 3
        assert [info.is_original for info in listing].count(True) == 1
        pool_names = [info.file_name for info in listing if not info.is_original]
        assert pool_names == [second.name, first.name]
        assert all(info.size_bytes == source.stat().st_size for info in listing)

    def test_most_recent_excludes_original(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path), clock=_ticking_clock())
        manager.create_backup(source)
        latest = manager.create_backup(source)
        manager.create_original_backup(source)

        recent = manager.most_recent_backup()

        assert recent is not None
        assert recent.path == latest
        assert recent.is_original is False

    def test_size_formatted(self, tmp_path: Path) -> None:
        source = _settings(tmp_path)
        manager = BackupManager(_store(tmp_path))
        manager.create_backup(source)
        info = manager.list_backups()[0]
        assert info.size_formatted == f"{source.stat().st_size} B"
