"""Built-in CLI sub-commands for gatecli.

* :mod:`~gatecli.commands.config` -- ``config show | set | reset``.
* :mod:`~gatecli.commands.connection` -- ``connect``, ``login``,
  ``refresh``, ``disconnect`` / ``logout``.
* :mod:`~gatecli.commands.status` -- ``status`` and ``restore``.

Command callbacks are plain functions registered on the root app in
:mod:`gatecli.app`; ``config`` is a :class:`typer.Typer` sub-application.
"""
