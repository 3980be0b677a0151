"""Built-in CLI sub-commands for uxlint.

* :mod:`~uxlint.commands.auth` -- sign in, sign out, and inspect the
  UXLint Cloud session.
* :mod:`~uxlint.commands.config` -- view and modify global settings.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app by :func:`uxlint.app.main`.
"""
