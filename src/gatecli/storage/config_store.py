"""Durable connection configuration (``config.json``).

:class:`ConfigurationStore` owns one JSON document, a
:class:`~gatecli.models.ConnectionConfig`. Every mutation is a
read-modify-write that ends in :func:`~gatecli.config.atomic_write`, so
the file on disk is always either the previous or the next complete
version, never a mix.

Effective settings resolve as ``config.json`` value, then the built-in
:class:`~gatecli.models.Defaults`, then ``None``. Empty strings count as
unset. The client secret has no built-in default.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from gatecli.config import atomic_write, dump_json, read_json
from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import (
    AuthType,
    BackupSettings,
    ConnectionConfig,
    ConnectionSettings,
    CurrentConnection,
    Defaults,
    utcnow,
)

logger = logging.getLogger(__name__)

SETTING_NAMES = ("api_url", "issuer_uri", "client_id", "client_secret")


def _non_empty(value: Optional[str]) -> Optional[str]:
    return value if value else None


class ConfigurationStore:
    """Read and update the persisted connection configuration.

    Args:
        path: Location of ``config.json``.
        defaults: Built-in defaults for effective-setting resolution.
        default_backup_dir: Backup pool used when the file names none.
        strict: Raise on a corrupt file instead of treating it as absent.
        clock: Source of ``lastConnected`` timestamps.

    Example::

        store = ConfigurationStore(path, load_defaults(), path.parent / "backups")
        store.set_setting("issuer_uri", "https://auth.example.com")
        if store.is_connected():
            print(store.current_connection().api_url)
    """

    def __init__(
        self,
        path: Path,
        defaults: Optional[Defaults] = None,
        default_backup_dir: Optional[Path] = None,
        strict: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._path = path
        self._defaults = defaults or Defaults()
        self._default_backup_dir = default_backup_dir or path.parent / "backups"
        self._strict = strict
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    @property
    def defaults(self) -> Defaults:
        return self._defaults

    # ------------------------------------------------------------------ #
    # Raw document access
    # ------------------------------------------------------------------ #

    def read(self) -> Optional[ConnectionConfig]:
        """Load the configuration.

        Returns:
            The parsed config, or ``None`` when the file does not exist or
            (in non-strict mode) cannot be parsed.

        Raises:
            GateError: ``PERSISTENCE`` for a corrupt file in strict mode or
                an unreadable file.
        """
        if not self._path.is_file():
            logger.debug("Configuration file does not exist: %s", self._path)
            return None
        try:
            data = read_json(self._path)
            return ConnectionConfig.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            if self._strict:
                raise GateError(
                    ErrorKind.PERSISTENCE,
                    f"Invalid configuration file at {self._path}: {exc}",
                ) from exc
            logger.warning(
                "Configuration file exists but is invalid, treating as non-existent: %s",
                self._path,
            )
            return None
        except OSError as exc:
            raise GateError(
                ErrorKind.PERSISTENCE,
                f"Cannot read configuration file {self._path}: {exc}",
            ) from exc

    def write(self, config: ConnectionConfig) -> None:
        """Persist *config* atomically (JSON, indent 2, nulls omitted, ``0o600``).

        Raises:
            GateError: ``PERSISTENCE`` naming the path; the previous file
                content is untouched.
        """
        try:
            atomic_write(self._path, dump_json(config.to_json()))
        except OSError as exc:
            raise GateError(
                ErrorKind.PERSISTENCE,
                f"Failed to write configuration file {self._path}: {exc}",
            ) from exc

    def _load_or_new(self) -> ConnectionConfig:
        config = self.read()
        if config is None:
            config = ConnectionConfig(
                backup_settings=BackupSettings(
                    max_backups=self._defaults.max_backups,
                    backup_directory=str(self._default_backup_dir),
                )
            )
        return config

    # ------------------------------------------------------------------ #
    # Connection lifecycle
    # ------------------------------------------------------------------ #

    def save_connection(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        api_url: str,
        token_expiration: Optional[datetime],
        issuer_uri: Optional[str] = None,
    ) -> CurrentConnection:
        """Record a client-credentials connection.

        Settings, backup settings and the original-backup pointer already in
        the file are preserved.
        """
        connection = CurrentConnection(
            auth_type=AuthType.CLIENT_CREDENTIALS,
            client_id=client_id,
            client_secret=client_secret,
            issuer_uri=issuer_uri,
            token_url=token_url,
            api_url=api_url,
            last_connected=self._clock(),
            token_expiration=token_expiration,
        )
        self._store_connection(connection)
        return connection

    def save_login_connection(
        self,
        client_id: str,
        issuer_uri: str,
        token_url: str,
        api_url: str,
        token_expiration: Optional[datetime],
    ) -> CurrentConnection:
        """Record a PKCE (browser login) connection. No secret is stored."""
        connection = CurrentConnection(
            auth_type=AuthType.PKCE,
            client_id=client_id,
            issuer_uri=issuer_uri,
            token_url=token_url,
            api_url=api_url,
            last_connected=self._clock(),
            token_expiration=token_expiration,
        )
        self._store_connection(connection)
        return connection

    def _store_connection(self, connection: CurrentConnection) -> None:
        config = self._load_or_new()
        config.current_connection = connection
        self.write(config)
        logger.info("Saved %s connection to %s", connection.auth_type.value, self._path)

    def update_token_expiration(self, token_expiration: Optional[datetime]) -> None:
        """Refresh bookkeeping: set ``tokenExpiration`` and ``lastConnected`` only.

        Raises:
            GateError: ``CONFIGURATION`` when there is no active connection.
        """
        config = self.read()
        if config is None or config.current_connection is None:
            raise GateError(
                ErrorKind.CONFIGURATION, "No active connection configuration found"
            )
        config.current_connection.token_expiration = token_expiration
        config.current_connection.last_connected = self._clock()
        self.write(config)
        logger.debug("Updated token expiration to %s", token_expiration)

    def clear_connection(self) -> None:
        """Forget the current connection. The file itself is kept."""
        config = self.read()
        if config is None or config.current_connection is None:
            return
        config.current_connection = None
        self.write(config)
        logger.info("Cleared connection configuration")

    def is_connected(self) -> bool:
        return self.current_connection() is not None

    def current_connection(self) -> Optional[CurrentConnection]:
        config = self.read()
        return config.current_connection if config else None

    # ------------------------------------------------------------------ #
    # Backups
    # ------------------------------------------------------------------ #

    def backup_settings(self) -> BackupSettings:
        """Backup pool settings, with the default directory filled in."""
        config = self.read()
        settings = (
            config.backup_settings
            if config is not None
            else BackupSettings(max_backups=self._defaults.max_backups)
        )
        if not settings.backup_directory:
            settings = settings.model_copy(
                update={"backup_directory": str(self._default_backup_dir)}
            )
        return settings

    def backup_dir(self) -> Path:
        """The backup pool directory as an expanded path."""
        return Path(self.backup_settings().backup_directory or self._default_backup_dir).expanduser()

    def original_settings_backup(self) -> Optional[str]:
        config = self.read()
        return config.original_settings_backup if config else None

    def set_original_settings_backup(self, backup_path: Optional[str]) -> None:
        """Record (or clear, with ``None``) the original snapshot's path."""
        config = self._load_or_new()
        config.original_settings_backup = backup_path
        self.write(config)
        logger.debug("Set original settings backup path: %s", backup_path)

    # ------------------------------------------------------------------ #
    # User settings
    # ------------------------------------------------------------------ #

    def settings(self) -> ConnectionSettings:
        config = self.read()
        if config is None or config.settings is None:
            return ConnectionSettings()
        return config.settings

    def set_setting(self, name: str, value: Optional[str]) -> None:
        """Store one user setting; ``None`` or ``""`` clears it.

        Args:
            name: One of ``api_url``, ``issuer_uri``, ``client_id``,
                ``client_secret``.
            value: The new value.

        Raises:
            ValueError: For an unknown setting name.
        """
        if name not in SETTING_NAMES:
            raise ValueError(f"Unknown setting: {name}")
        config = self._load_or_new()
        settings = config.settings or ConnectionSettings()
        config.settings = settings.model_copy(update={name: _non_empty(value)})
        self.write(config)
        if name == "client_secret":
            logger.debug("Set client_secret: ****")
        else:
            logger.debug("Set %s: %s", name, value)

    def reset_settings(self) -> None:
        """Drop all user settings so the built-in defaults apply again."""
        config = self.read()
        if config is None or config.settings is None:
            return
        config.settings = None
        self.write(config)
        logger.info("Reset settings to default values")

    # ------------------------------------------------------------------ #
    # Effective values
    # ------------------------------------------------------------------ #

    def effective_api_url(self) -> Optional[str]:
        return _non_empty(self.settings().api_url) or _non_empty(self._defaults.api_url)

    def effective_issuer_uri(self) -> Optional[str]:
        return _non_empty(self.settings().issuer_uri) or _non_empty(self._defaults.issuer_uri)

    def effective_client_id(self) -> Optional[str]:
        return _non_empty(self.settings().client_id) or _non_empty(self._defaults.client_id)

    def effective_client_secret(self) -> Optional[str]:
        return _non_empty(self.settings().client_secret)

    def effective_scope(self) -> str:
        return self._defaults.scope

    def effective_callback_port(self) -> int:
        return self._defaults.callback_port

    def callback_timeout(self) -> timedelta:
        return timedelta(seconds=self._defaults.callback_timeout_seconds)
