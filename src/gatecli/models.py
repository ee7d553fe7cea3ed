"""Canonical Pydantic models shared across all gatecli modules.

The models fall into three groups:

**Auth value objects** -- produced by the OAuth2 flows and never persisted
as-is: :class:`PKCEPair`, :class:`AuthorizationResult`,
:class:`TokenResponse`, :class:`OIDCConfiguration`.

**Persisted configuration** -- the JSON document owned by
:class:`~gatecli.storage.config_store.ConfigurationStore`:
:class:`ConnectionConfig` with its :class:`ConnectionSettings`,
:class:`CurrentConnection` and :class:`BackupSettings` parts. These use
camelCase aliases on disk and accept snake_case names in Python.

**Everything else** -- :class:`BackupInfo` (computed per listing),
:class:`ClaudeSettings` (the consuming application's settings file, unknown
keys preserved) and :class:`Defaults` (loaded from ``defaults.yaml``).
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

CONFIG_VERSION = "2.0"

ENV_BASE_URL = "ANTHROPIC_BASE_URL"
ENV_AUTH_TOKEN = "ANTHROPIC_AUTH_TOKEN"


def utcnow() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# --- Auth value objects ---


class PKCEPair(BaseModel):
    """A PKCE code verifier and its S256 challenge (RFC 7636)."""

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str


class AuthorizationResult(BaseModel):
    """The ``code`` and ``state`` delivered to the local callback listener."""

    model_config = ConfigDict(frozen=True)

    code: str
    state: str


class TokenResponse(BaseModel):
    """An access token issued by the token endpoint.

    ``expires_at`` is computed once, when the response is received, as
    ``received_at + expires_in``. A response without ``expires_in`` has an
    unknown expiry and ``expires_at`` stays ``None``.

    Example::

        token = TokenResponse.from_payload(
            {"access_token": "abc", "token_type": "Bearer", "expires_in": 3600},
            received_at=utcnow(),
        )
    """

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_payload(
        cls, payload: dict[str, Any], received_at: datetime
    ) -> TokenResponse:
        """Build a token from an RFC 6749 JSON payload.

        Args:
            payload: The decoded JSON body. Must contain ``access_token``.
            received_at: When the response arrived; the expiry anchor.

        Returns:
            The token with ``expires_at`` filled in when ``expires_in`` is known.
        """
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            expires_in = int(expires_in)
        expires_at = (
            received_at + timedelta(seconds=expires_in)
            if expires_in is not None
            else None
        )
        return cls(
            access_token=payload["access_token"],
            token_type=payload.get("token_type") or "Bearer",
            expires_in=expires_in,
            scope=payload.get("scope"),
            expires_at=expires_at,
        )


class OIDCConfiguration(BaseModel):
    """The subset of OpenID Provider metadata gatecli uses.

    Unknown metadata fields are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    issuer: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    jwks_uri: Optional[str] = None


# --- Persisted configuration ---


class AuthType(str, enum.Enum):
    """How the current connection obtained its token."""

    PKCE = "pkce"
    CLIENT_CREDENTIALS = "client_credentials"


_CAMEL = ConfigDict(populate_by_name=True)


class ConnectionSettings(BaseModel):
    """User-supplied settings from ``gatecli config set``."""

    model_config = _CAMEL

    api_url: Optional[str] = Field(default=None, alias="apiUrl")
    issuer_uri: Optional[str] = Field(default=None, alias="issuerUri")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    client_secret: Optional[str] = Field(default=None, alias="clientSecret")


class CurrentConnection(BaseModel):
    """The active connection. Its presence in the config means "connected"."""

    model_config = _CAMEL

    auth_type: AuthType = Field(alias="authType")
    client_id: str = Field(alias="clientId")
    client_secret: Optional[str] = Field(default=None, alias="clientSecret")
    issuer_uri: Optional[str] = Field(default=None, alias="issuerUri")
    token_url: str = Field(alias="tokenUrl")
    api_url: str = Field(alias="apiUrl")
    last_connected: datetime = Field(alias="lastConnected")
    token_expiration: Optional[datetime] = Field(
        default=None, alias="tokenExpiration"
    )


class BackupSettings(BaseModel):
    """Backup pool configuration."""

    model_config = _CAMEL

    max_backups: int = Field(default=10, ge=1, alias="maxBackups")
    backup_directory: Optional[str] = Field(default=None, alias="backupDirectory")


class ConnectionConfig(BaseModel):
    """The root document persisted by the configuration store.

    Serialise with :meth:`to_json` so that keys are camelCase and ``None``
    values are omitted.
    """

    model_config = _CAMEL

    version: str = CONFIG_VERSION
    settings: Optional[ConnectionSettings] = None
    current_connection: Optional[CurrentConnection] = Field(
        default=None, alias="currentConnection"
    )
    backup_settings: BackupSettings = Field(
        default_factory=BackupSettings, alias="backupSettings"
    )
    original_settings_backup: Optional[str] = Field(
        default=None, alias="originalSettingsBackup"
    )

    def to_json(self) -> dict[str, Any]:
        """Return the on-disk JSON representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Backups ---


class BackupInfo(BaseModel):
    """Metadata about one backup file, computed at listing time."""

    path: Path
    file_name: str
    size_bytes: int
    created_at: datetime
    is_original: bool = False

    @property
    def size_formatted(self) -> str:
        """Human-readable size: ``512 B``, ``1.5 KB``, ``2.0 MB``."""
        if self.size_bytes < 1024:
            return f"{self.size_bytes} B"
        if self.size_bytes < 1024 * 1024:
            return f"{self.size_bytes / 1024:.1f} KB"
        return f"{self.size_bytes / (1024 * 1024):.1f} MB"


# --- Consuming application settings ---


class ClaudeSettings(BaseModel):
    """The consuming application's ``settings.json``.

    Only ``env.ANTHROPIC_BASE_URL`` and ``env.ANTHROPIC_AUTH_TOKEN`` are
    interpreted. All other top-level keys are kept in ``model_extra`` and
    written back unchanged; other ``env`` entries are preserved as well.
    """

    model_config = ConfigDict(extra="allow")

    env: dict[str, Any] = Field(default_factory=dict)

    @property
    def api_url(self) -> Optional[str]:
        return self.env.get(ENV_BASE_URL)

    @property
    def auth_token(self) -> Optional[str]:
        return self.env.get(ENV_AUTH_TOKEN)

    def has_custom_config(self) -> bool:
        """Return True when either gatecli-managed env key is set."""
        return ENV_BASE_URL in self.env or ENV_AUTH_TOKEN in self.env


# --- Built-in defaults ---


class Defaults(BaseModel):
    """Built-in defaults shipped as ``gatecli/defaults.yaml``.

    ``api_url``, ``issuer_uri`` and ``client_id`` are the fallbacks used when
    the user has not configured a value. The client secret has no default.
    """

    api_url: Optional[str] = None
    issuer_uri: Optional[str] = None
    client_id: Optional[str] = None
    scope: str = "openid"
    callback_port: int = Field(default=8080, ge=1, le=65535)
    callback_timeout_seconds: int = Field(default=300, ge=1)
    max_backups: int = Field(default=10, ge=1)
