"""Connection commands -- obtain, renew and drop the OAuth2 connection.

Typical workflow::

    gatecli config set --issuer-uri https://auth.example.com \\
        --client-id my-client --api-url https://llm.example.com
    gatecli login          # browser (PKCE), or `gatecli connect` for M2M
    gatecli refresh        # later, when the token expires
    gatecli disconnect     # restore the settings file to its original state

``connect`` and ``login`` snapshot the settings file as the pristine
original on the first connection, back it up, point it at the custom API
and record the connection in ``config.json``. None of these steps are
transactional: a failure part-way leaves the earlier steps in place.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from gatecli.auth.login import redirect_uri_for
from gatecli.auth.tokens import format_duration, time_until_expiration
from gatecli.commands.common import fail, format_timestamp, require_setting
from gatecli.exceptions import ErrorKind, GateError
from gatecli.exit_codes import EXIT_INVALID_USAGE
from gatecli.models import AuthType
from gatecli.output import error, info, print_record, success, suggest, warning


def _print_summary(
    api_url: str, auth_type: str, expires_at: Optional[datetime], settings_path: Path
) -> None:
    print_record(
        {
            "API URL": api_url,
            "Auth Type": auth_type,
            "Token expires": format_timestamp(expires_at) or "Unknown",
            "Settings file": str(settings_path),
        },
        title="Configuration Summary",
    )


def connect_command() -> None:
    """Connect with the OAuth2 client-credentials grant (machine-to-machine).

    Requires ``client-id``, ``client-secret``, ``issuer-uri`` and
    ``api-url`` to be configured. The token endpoint is discovered from
    the issuer.

    Example::

        gatecli connect
    """
    from gatecli.services import build_services

    services = build_services()
    store = services.store
    settings_file = services.settings_file

    client_id = require_setting(store.effective_client_id(), "client-id", "<id>")
    client_secret = require_setting(
        store.effective_client_secret(), "client-secret", "<secret>"
    )
    issuer_uri = require_setting(store.effective_issuer_uri(), "issuer-uri", "<url>")
    api_url = require_setting(store.effective_api_url(), "api-url", "<url>")

    try:
        info("Discovering token endpoint...")
        token_url = services.discovery.discover(issuer_uri).token_endpoint
        assert token_url

        connected = store.is_connected()
        if connected and settings_file.exists():
            warning("Claude Code settings already configured; overwriting the current connection.")
        if not connected:
            settings_file.ensure_original_backup()

        info("Connecting to OAuth2 server...")
        token = services.token_service.get_access_token(client_id, client_secret, token_url)
        success("Obtained access token")

        settings_file.update(api_url, token.access_token, create_backup=True)
        success("Updated Claude Code settings")

        store.save_connection(
            client_id,
            client_secret,
            token_url,
            api_url,
            token.expires_at,
            issuer_uri=issuer_uri,
        )
        success("Saved connection configuration")
    except GateError as exc:
        fail("Connection failed", exc)

    _print_summary(
        api_url, "OAuth2 Client Credentials (M2M)", token.expires_at, settings_file.path
    )


def login_command() -> None:
    """Log in through the browser with OAuth2 Authorization Code + PKCE.

    Requires ``issuer-uri``, ``client-id`` and ``api-url``. A local
    listener on ``http://localhost:<port>/callback`` receives the redirect.

    Example::

        gatecli login
    """
    from gatecli.services import build_services

    services = build_services()
    store = services.store
    settings_file = services.settings_file

    issuer_uri = require_setting(store.effective_issuer_uri(), "issuer-uri", "<url>")
    client_id = require_setting(store.effective_client_id(), "client-id", "<id>")
    api_url = require_setting(store.effective_api_url(), "api-url", "<url>")

    info("Starting OAuth2 login...")
    info(f"  Issuer:    {issuer_uri}")
    info(f"  Client ID: {client_id}")

    orchestrator = services.login_orchestrator(on_progress=info)
    try:
        token = orchestrator.login(
            issuer_uri,
            client_id,
            store.effective_scope(),
            redirect_uri_for(store.effective_callback_port()),
        )
        success("Login successful")

        if not store.is_connected():
            settings_file.ensure_original_backup()
        settings_file.update(api_url, token.access_token, create_backup=True)
        success("Updated Claude Code settings")

        metadata = orchestrator.last_metadata
        assert metadata is not None and metadata.token_endpoint
        store.save_login_connection(
            client_id, issuer_uri, metadata.token_endpoint, api_url, token.expires_at
        )
        success("Saved connection configuration")
    except GateError as exc:
        fail("Login failed", exc)

    _print_summary(api_url, "OAuth2 PKCE (Public Client)", token.expires_at, settings_file.path)


def refresh_command() -> None:
    """Obtain a new token for the current connection.

    Client-credentials connections re-use the stored credentials. PKCE
    connections repeat the browser login against the stored issuer. Only
    the token in the settings file and the expiry bookkeeping change; no
    backup is taken.
    """
    from gatecli.services import build_services

    services = build_services()
    store = services.store

    connection = store.current_connection()
    if connection is None:
        error("No stored connection configuration found.")
        suggest("Use 'gatecli connect' or 'gatecli login' first.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    try:
        info("Refreshing OAuth2 token...")
        if connection.auth_type is AuthType.CLIENT_CREDENTIALS:
            if not connection.client_secret:
                raise GateError(
                    ErrorKind.CONFIGURATION,
                    "Stored connection has no client secret. Run 'gatecli connect' again.",
                )
            token = services.token_service.get_access_token(
                connection.client_id, connection.client_secret, connection.token_url
            )
        else:
            issuer_uri = connection.issuer_uri or store.effective_issuer_uri()
            if not issuer_uri:
                raise GateError(
                    ErrorKind.CONFIGURATION,
                    "Stored connection has no issuer URI. Run 'gatecli login' again.",
                )
            token = services.login_orchestrator(on_progress=info).login(
                issuer_uri,
                connection.client_id,
                store.effective_scope(),
                redirect_uri_for(store.effective_callback_port()),
            )

        services.settings_file.update(connection.api_url, token.access_token, create_backup=False)
        store.update_token_expiration(token.expires_at)
    except GateError as exc:
        fail("Token refresh failed", exc)

    success("Token refreshed successfully")
    remaining = time_until_expiration(token.expires_at)
    print_record(
        {
            "New token expires": format_timestamp(token.expires_at) or "Unknown",
            "Valid for": format_duration(remaining) if remaining is not None else None,
        }
    )


def disconnect_command() -> None:
    """Disconnect and restore the original settings file.

    If no original snapshot exists (there was no settings file before the
    first connection), the settings file is deleted.
    """
    from gatecli.services import build_services

    services = build_services()
    store = services.store

    try:
        if not store.is_connected():
            warning("Not currently connected to any custom API endpoint.")
            return

        info("Restoring original settings...")
        restored = services.settings_file.restore_original(store.original_settings_backup())
        if restored:
            success("Restored original Claude Code settings")
        else:
            success("Removed Claude Code settings (no original file existed)")

        store.clear_connection()
        success("Cleared connection configuration")
    except GateError as exc:
        fail("Disconnect failed", exc)

    info("Status: Disconnected")
