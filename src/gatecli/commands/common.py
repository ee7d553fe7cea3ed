"""Helpers shared by the command modules."""

from __future__ import annotations

from datetime import datetime
from typing import NoReturn, Optional

import typer

from gatecli.exceptions import GateError, remediation_hints
from gatecli.exit_codes import EXIT_INVALID_USAGE
from gatecli.output import error, info, suggest

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def fail(title: str, exc: GateError) -> NoReturn:
    """Report *exc* under *title* with troubleshooting hints, then exit.

    Raises:
        typer.Exit: Always, with the error kind's exit code.
    """
    error(title, exc.message)
    hints = remediation_hints(exc)
    if hints:
        info("Troubleshooting:")
        for hint in hints:
            suggest(hint)
    raise typer.Exit(code=exc.exit_code)


def require_setting(value: Optional[str], option: str, placeholder: str) -> str:
    """Return *value* or exit with a pointer to the ``config set`` option.

    Args:
        value: The effective setting.
        option: CLI name, e.g. ``client-id``.
        placeholder: Metavar for the hint, e.g. ``<id>``.
    """
    if not value:
        error(f"Missing configuration: {option}")
        suggest(f"Use 'gatecli config set --{option} {placeholder}' to set it.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)
    return value


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render *value* in local time, or ``None``."""
    if value is None:
        return None
    return value.astimezone().strftime(TIMESTAMP_FORMAT)
