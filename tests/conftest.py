"""Shared test fixtures for gatecli.

Provides reusable fixtures for isolated config environments, storage
components rooted in ``tmp_path``, output state resets, and running CLI
commands. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from gatecli.models import Defaults
from gatecli.output import reset_output
from gatecli.storage import BackupManager, ClaudeSettingsFile, ConfigurationStore


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _reset_logging_between_tests() -> None:
    """Undo configure_logging() so caplog sees gatecli records again.

    The RichHandler installed by the CLI callback writes to the console of
    the CliRunner invocation, which is closed once the test finishes.
    """
    yield
    logger = logging.getLogger("gatecli")
    for handler in list(logger.handlers):
        if getattr(handler, "_gatecli_handler", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path and points CLAUDE_CONFIG_DIR at
    ``tmp_path/claude`` so that tests never touch real user files.
    Changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("CLAUDE_CONFIG_DIR", str(tmp_path / "claude"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setattr("gatecli.config._is_xdg_platform", lambda: True)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> ConfigurationStore:
    """A configuration store writing ``tmp_path/gatecli/config.json``."""
    return ConfigurationStore(
        tmp_path / "gatecli" / "config.json",
        defaults=Defaults(),
        default_backup_dir=tmp_path / "gatecli" / "backups",
    )


@pytest.fixture
def backups(store: ConfigurationStore) -> BackupManager:
    return BackupManager(store)


@pytest.fixture
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "claude" / "settings.json"


@pytest.fixture
def settings_file(settings_path: Path, backups: BackupManager) -> ClaudeSettingsFile:
    return ClaudeSettingsFile(settings_path, backups)


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()
