"""gatecli -- connect Claude Code to an OAuth2-protected custom API endpoint.

The tool obtains an access token (OAuth2 client credentials or the
browser-based authorization code flow with PKCE), writes the endpoint and
token into Claude Code's ``settings.json``, and keeps enough state on disk to
refresh the token or undo everything later.

Typical workflow::

    gatecli config set --issuer-uri https://idp.example.com --client-id cli
    gatecli config set --api-url https://llm-gateway.example.com
    gatecli login                 # browser login (PKCE)
    gatecli status
    gatecli disconnect            # restore the original settings.json

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware paths, atomic writes, and built-in defaults.
    exceptions: Tagged error type with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    services: Wiring of stores and token services for the commands.
"""

__version__ = "0.3.0"
