"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to one or more :class:`~gatecli.exceptions.ErrorKind`
values. Shell wrappers can inspect the exit code to tell a rejected client
secret from an unreachable token endpoint without parsing stderr.

Example::

    $ gatecli connect
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- client credentials were rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing settings."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed (bad credentials, denied consent, state mismatch)."""

EXIT_SERVER_ERROR = 5
"""The authorization server returned an HTTP 5xx error or an unusable response."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORAGE_ERROR = 7
"""A configuration, settings, or backup file could not be read or written."""

EXIT_CANCELLED = 130
"""The user interrupted the command (Ctrl-C)."""
