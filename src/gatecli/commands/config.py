"""Config commands -- view and modify connection settings.

Settings are stored in ``config.json`` under ``settings`` and take
precedence over the built-in defaults from ``defaults.yaml``::

    gatecli config set --issuer-uri https://auth.example.com --client-id cli
    gatecli config show
    gatecli config reset
"""

from __future__ import annotations

from typing import Optional

import typer

from gatecli.commands.common import fail
from gatecli.exceptions import GateError
from gatecli.exit_codes import EXIT_INVALID_USAGE
from gatecli.output import error, print_record, success, suggest

config_app = typer.Typer(no_args_is_help=True)


def _mask(secret: Optional[str]) -> Optional[str]:
    return "****" if secret else None


@config_app.command("show")
def config_show() -> None:
    """Show effective settings and where they are stored.

    Example::

        gatecli config show
        gatecli --json config show
    """
    from gatecli.services import build_services

    try:
        services = build_services()
        store = services.store
        record = {
            "API URL": store.effective_api_url(),
            "Issuer URI": store.effective_issuer_uri(),
            "Client ID": store.effective_client_id(),
            "Client Secret": _mask(store.effective_client_secret()),
            "Scope": store.effective_scope(),
            "Callback Port": store.effective_callback_port(),
            "Config File": str(store.path),
            "Settings File": str(services.settings_file.path),
        }
    except GateError as exc:
        fail("Cannot read configuration", exc)
    print_record(record, title="gatecli configuration")


@config_app.command("set")
def config_set(
    api_url: Optional[str] = typer.Option(
        None, "--api-url", help="Custom API endpoint written to ANTHROPIC_BASE_URL."
    ),
    issuer_uri: Optional[str] = typer.Option(
        None, "--issuer-uri", help="OIDC issuer used for endpoint discovery."
    ),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth2 client ID."),
    client_secret: Optional[str] = typer.Option(
        None, "--client-secret", help="OAuth2 client secret (client credentials only)."
    ),
) -> None:
    """Store one or more connection settings.

    An empty value (``--client-secret ""``) clears that setting.

    Raises:
        typer.Exit: With code 2 if no option is given or a URL is malformed.
    """
    from gatecli.auth.tokens import is_valid_url
    from gatecli.services import build_services

    updates = {
        "api_url": api_url,
        "issuer_uri": issuer_uri,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    updates = {name: value for name, value in updates.items() if value is not None}
    if not updates:
        error("Nothing to set.")
        suggest("Use --api-url, --issuer-uri, --client-id or --client-secret.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    for name in ("api_url", "issuer_uri"):
        value = updates.get(name)
        if value and not is_valid_url(value):
            error(f"Invalid URL for --{name.replace('_', '-')}: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE)

    try:
        store = build_services().store
        for name, value in updates.items():
            store.set_setting(name, value)
    except GateError as exc:
        fail("Configuration failed", exc)

    for name in updates:
        success(f"Set {name.replace('_', '-')}")


@config_app.command("reset")
def config_reset() -> None:
    """Forget all stored settings so the built-in defaults apply again."""
    from gatecli.services import build_services

    try:
        build_services().store.reset_settings()
    except GateError as exc:
        fail("Configuration reset failed", exc)
    success("Settings reset to defaults")
