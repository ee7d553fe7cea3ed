"""Status and restore commands.

``status`` summarises the current connection, token validity and the
state of the settings file. ``restore`` lists or restores settings
backups::

    gatecli status
    gatecli restore --list
    gatecli restore                       # most recent pool backup
    gatecli restore -b ~/.config/gatecli/backups/settings.json.original
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer

from gatecli.auth.tokens import format_duration, is_expired, time_until_expiration
from gatecli.commands.common import fail, format_timestamp
from gatecli.exceptions import GateError
from gatecli.exit_codes import EXIT_GENERIC_FAILURE
from gatecli.models import AuthType, CurrentConnection
from gatecli.output import error, info, print_record, print_table, success, suggest

_AUTH_TYPE_LABELS = {
    AuthType.CLIENT_CREDENTIALS: "OAuth2 Client Credentials (M2M)",
    AuthType.PKCE: "OAuth2 PKCE (Public Client)",
}


def _token_status(connection: CurrentConnection) -> str:
    expires_at = connection.token_expiration
    if expires_at is None:
        return "Unknown"
    if is_expired(expires_at):
        return "Expired"
    return f"Valid (expires in {format_duration(time_until_expiration(expires_at))})"


def status_command() -> None:
    """Show connection status, token validity and settings file state.

    Example::

        gatecli status
        gatecli --json status
    """
    from gatecli.services import build_services

    try:
        services = build_services()
        connection = services.store.current_connection()
        backup_count = len(services.backups.list_backups())
    except GateError as exc:
        fail("Cannot read status", exc)

    settings_file = services.settings_file
    record: dict[str, Any] = {}
    expired = False
    if connection is None:
        record["Status"] = "Not connected"
    else:
        record["Status"] = "Connected"
        record["Auth Type"] = _AUTH_TYPE_LABELS[connection.auth_type]
        record["API URL"] = connection.api_url
        record["Client ID"] = connection.client_id
        record["Token Status"] = _token_status(connection)
        record["Token Expires"] = format_timestamp(connection.token_expiration)
        record["Last Connected"] = format_timestamp(connection.last_connected)
        expired = is_expired(connection.token_expiration)

    record["Available Backups"] = backup_count
    record["Settings File"] = str(settings_file.path)
    modified = settings_file.last_modified()
    record["Last Modified"] = (
        format_timestamp(modified) if modified is not None else "File does not exist"
    )

    print_record(record, title="gatecli status")

    if connection is None:
        suggest("Use 'gatecli connect' or 'gatecli login' to connect.")
    elif expired:
        suggest("Use 'gatecli refresh' to obtain a new token.")


def restore_command(
    backup: Optional[Path] = typer.Option(
        None, "--backup", "-b", help="Backup file to restore (default: most recent)."
    ),
    list_backups: bool = typer.Option(
        False, "--list", "-l", help="List available backups instead of restoring."
    ),
) -> None:
    """Restore the settings file from a backup, or list backups.

    The current settings file is itself backed up before being replaced.

    Raises:
        typer.Exit: With the ``BACKUP`` exit code when the backup is missing
            or not valid JSON.
    """
    from gatecli.services import build_services

    services = build_services()
    backups = services.backups

    try:
        if list_backups:
            available = backups.list_backups()
            if not available:
                info("No backups available.")
                return
            print_table(
                ["#", "File", "Size", "Created", "Path"],
                [
                    [
                        str(index),
                        entry.file_name + (" (original)" if entry.is_original else ""),
                        entry.size_formatted,
                        format_timestamp(entry.created_at) or "",
                        str(entry.path),
                    ]
                    for index, entry in enumerate(available, start=1)
                ],
                title="Available backups",
            )
            return

        if backup is None:
            latest = backups.most_recent_backup()
            if latest is None:
                error("No backups available to restore.")
                suggest("Backups are created when gatecli modifies the settings file.")
                raise typer.Exit(code=EXIT_GENERIC_FAILURE)
            backup = latest.path

        info(f"Restoring from: {backup}")
        backups.restore_backup(backup, services.settings_file.path)
    except GateError as exc:
        fail("Restore failed", exc)

    success("Settings restored successfully")
