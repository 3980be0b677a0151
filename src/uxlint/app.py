"""Typer application and CLI entry point for uxlint.

This module wires together the top-level Typer application and registers the
built-in sub-command groups (``auth``, ``config``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~uxlint.exceptions.UxlintError` exits cleanly with its exit code;
any other exception is written to a crash log under the data directory.

See Also:
    :mod:`uxlint.output`: Output formatting initialised in :func:`main_callback`.
    :mod:`uxlint.logging_setup`: File logging initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import typer

from uxlint import __version__
from uxlint.commands.auth import auth_app
from uxlint.commands.config import config_app
from uxlint.exit_codes import EXIT_GENERIC_FAILURE

logger = logging.getLogger(__name__)


app = typer.Typer(
    name="uxlint",
    help="UXLint command-line client.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(auth_app, name="auth", help="UXLint Cloud authentication.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"uxlint {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output and debug-level file logging."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~uxlint.output.OutputManager` and the
    rotating log file from CLI flags, and stores shared options in the
    Typer context so that sub-commands can read them via ``ctx.obj``.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostics and file logging.
        force: Skip interactive confirmations.
    """
    from uxlint.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)

    log_path = _setup_logging(verbose)
    output.debug(f"Logging to {log_path}")

    ctx.ensure_object(dict)
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_logging(verbose: bool) -> Path:
    """Configure file logging at DEBUG for ``--verbose``, else the configured level."""
    from uxlint.config import load_global_config
    from uxlint.exceptions import ConfigError
    from uxlint.logging_setup import configure_logging

    level = "DEBUG"
    if not verbose:
        try:
            level = load_global_config().log_level
        except ConfigError:
            # Let the command itself report the broken config.
            level = "INFO"
    log_path = configure_logging(level)
    logger.debug("uxlint %s started: %s", __version__, " ".join(sys.argv[1:]))
    return log_path


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from uxlint.config import get_log_dir

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = get_log_dir() / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``uxlint`` console script.

    Unhandled :class:`~uxlint.exceptions.UxlintError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from uxlint.exceptions import UxlintError
        from uxlint.output import error

        if isinstance(exc, UxlintError):
            error(exc.message)
            sys.exit(exc.exit_code)
        else:
            logger.exception("Unhandled error")
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
