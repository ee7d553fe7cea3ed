"""Error type for gatecli.

Every failure the tool reports is a :class:`GateError` tagged with one
:class:`ErrorKind` from a closed set. Callers branch on ``exc.kind`` rather
than on exception subclasses, and the wrapped cause (an ``httpx`` error,
an ``OSError``...) is chained with ``raise ... from``.

Kinds and exit codes::

    AUTHENTICATION    (exit 3)  token endpoint rejected the client (HTTP 4xx)
    CALLBACK          (exit 3)  denied / state mismatch / missing code / timeout
    SERVER            (exit 5)  token endpoint HTTP 5xx, possibly transient
    INVALID_RESPONSE  (exit 5)  2xx without a usable token payload
    DISCOVERY         (exit 5)  missing or unreadable OIDC metadata
    CONNECTION        (exit 6)  network-level failure
    PERSISTENCE       (exit 7)  config or settings file read/write failure
    BACKUP            (exit 7)  backup not found / invalid / copy failure
    CONFIGURATION     (exit 2)  required setting missing or not connected
    BROWSER           (exit 1)  the system browser could not be launched

Nothing is retried automatically: a retry is always a fresh invocation.
"""

from __future__ import annotations

import enum

from gatecli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SERVER_ERROR,
    EXIT_STORAGE_ERROR,
)


class ErrorKind(str, enum.Enum):
    """Closed set of failure categories surfaced to the user."""

    AUTHENTICATION = "authentication"
    SERVER = "server"
    INVALID_RESPONSE = "invalid_response"
    CONNECTION = "connection"
    DISCOVERY = "discovery"
    CALLBACK = "callback"
    BROWSER = "browser"
    PERSISTENCE = "persistence"
    BACKUP = "backup"
    CONFIGURATION = "configuration"


_EXIT_CODES: dict[ErrorKind, int] = {
    ErrorKind.AUTHENTICATION: EXIT_AUTH_FAILURE,
    ErrorKind.CALLBACK: EXIT_AUTH_FAILURE,
    ErrorKind.SERVER: EXIT_SERVER_ERROR,
    ErrorKind.INVALID_RESPONSE: EXIT_SERVER_ERROR,
    ErrorKind.DISCOVERY: EXIT_SERVER_ERROR,
    ErrorKind.CONNECTION: EXIT_CONNECTION_ERROR,
    ErrorKind.PERSISTENCE: EXIT_STORAGE_ERROR,
    ErrorKind.BACKUP: EXIT_STORAGE_ERROR,
    ErrorKind.CONFIGURATION: EXIT_INVALID_USAGE,
    ErrorKind.BROWSER: EXIT_GENERIC_FAILURE,
}


class GateError(Exception):
    """The single exception type raised by gatecli.

    Args:
        kind: Failure category, used for exit-code mapping and hints.
        message: Human-readable error description printed to stderr.

    Example::

        try:
            service.get_access_token(client_id, secret, token_url)
        except GateError as exc:
            if exc.kind is ErrorKind.SERVER:
                ...
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def exit_code(self) -> int:
        """Process exit code for this error's kind."""
        return _EXIT_CODES.get(self.kind, EXIT_GENERIC_FAILURE)

    def with_context(self, prefix: str) -> GateError:
        """Return a copy whose message is prefixed, keeping the kind."""
        return GateError(self.kind, f"{prefix}: {self.message}")

    def __repr__(self) -> str:
        return f"GateError({self.kind.value!r}, {self.message!r})"


def remediation_hints(exc: GateError) -> list[str]:
    """Return troubleshooting hints for *exc*, keyed off its kind and message.

    Args:
        exc: The error being reported.

    Returns:
        Zero or more short hint lines, in display order.
    """
    msg = exc.message.lower()

    if exc.kind is ErrorKind.CONNECTION or "connect" in msg:
        return [
            "Verify the URL is correct and accessible",
            "Check your network connection",
            "Verify firewall/proxy settings",
        ]
    if exc.kind is ErrorKind.AUTHENTICATION or "401" in msg or "403" in msg:
        return [
            "Verify your client ID and secret are correct",
            "Check if the client is registered at the OAuth2 server",
            "Ensure the client_credentials grant type is enabled",
        ]
    if "permission" in msg:
        return [
            "Check file permissions: ls -la ~/.claude/settings.json",
            "Fix permissions: chmod 600 ~/.claude/settings.json",
        ]
    if exc.kind is ErrorKind.DISCOVERY:
        return [
            "Verify the issuer URI: gatecli config set --issuer-uri <url>",
            "The issuer must serve /.well-known/openid-configuration",
        ]
    if exc.kind is ErrorKind.BACKUP and "not found" in msg:
        return [
            "Use 'gatecli restore --list' to see available backups",
            "Verify the backup file path is correct",
        ]
    return []
