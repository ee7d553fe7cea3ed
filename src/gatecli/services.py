"""Wiring: build every component with its on-disk locations.

This is the only place that resolves real paths (XDG config directory,
``$CLAUDE_CONFIG_DIR``). Commands call :func:`build_services` once and
work with the returned :class:`Services`; tests construct the components
directly against ``tmp_path``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from gatecli.auth.client_credentials import TokenService
from gatecli.auth.discovery import DiscoveryClient
from gatecli.auth.login import LoginOrchestrator
from gatecli.config import (
    get_claude_settings_path,
    get_config_path,
    load_defaults,
)
from gatecli.storage.backup import BackupManager
from gatecli.storage.claude_settings import ClaudeSettingsFile
from gatecli.storage.config_store import ConfigurationStore


@dataclass
class Services:
    """The component graph used by the CLI commands."""

    store: ConfigurationStore
    backups: BackupManager
    settings_file: ClaudeSettingsFile
    token_service: TokenService
    discovery: DiscoveryClient

    def login_orchestrator(
        self, on_progress: Optional[Callable[[str], None]] = None
    ) -> LoginOrchestrator:
        """A PKCE orchestrator using the configured callback timeout."""
        return LoginOrchestrator(
            discovery=self.discovery,
            callback_timeout=self.store.callback_timeout(),
            on_progress=on_progress,
        )


def build_services(
    config_path: Optional[Path] = None,
    settings_path: Optional[Path] = None,
    strict: bool = False,
) -> Services:
    """Create the default component graph.

    Args:
        config_path: Override for ``config.json``.
        settings_path: Override for the consuming application's settings file.
        strict: Treat a corrupt ``config.json`` as an error.
    """
    config_path = config_path or get_config_path()
    store = ConfigurationStore(
        config_path,
        defaults=load_defaults(),
        default_backup_dir=config_path.parent / "backups",
        strict=strict,
    )
    backups = BackupManager(store)
    settings_file = ClaudeSettingsFile(settings_path or get_claude_settings_path(), backups)
    return Services(
        store=store,
        backups=backups,
        settings_file=settings_file,
        token_service=TokenService(),
        discovery=DiscoveryClient(),
    )
