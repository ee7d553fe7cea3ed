"""Durable state: connection config, settings backups, and the settings file."""

from gatecli.storage.backup import BackupManager
from gatecli.storage.claude_settings import ClaudeSettingsFile
from gatecli.storage.config_store import ConfigurationStore

__all__ = ["BackupManager", "ClaudeSettingsFile", "ConfigurationStore"]
