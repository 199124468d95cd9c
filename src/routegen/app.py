"""Typer application and console-script entry point for routegen.

Sub-commands:

* ``routegen generate ROUTES [-o DIR] [--spec PATH]`` -- compile and write.
* ``routegen check ROUTES [--spec PATH]`` -- compile and list the routes.

Global flags (``--json``, ``--plain``, ``--no-color``, ``-q``, ``-v``) are
handled by :func:`main_callback`, which installs the
:class:`~routegen.output.OutputManager` every command prints through.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from routegen import __version__
from routegen.commands.check import check_command
from routegen.commands.generate import generate_command
from routegen.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="routegen",
    help="Generate typed Starlette request classes from routing declarations and an OpenAPI document.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("generate")(generate_command)
app.command("check")(check_command)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"routegen {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Set up output formatting and logging before every sub-command."""
    from routegen.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    output.configure_logging()
    set_output(output)


def _setup_signal_handlers() -> None:
    def _handler(signum: int, frame: Any) -> None:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback to the log directory and return its path."""
    from routegen.config import get_log_dir

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = get_log_dir() / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc(), encoding="utf-8")
    return str(log_path)


def main() -> None:
    """Console-script entry point.

    A :class:`~routegen.exceptions.RoutegenError` escaping a command exits
    with that error's ``exit_code``; anything else writes a crash log and
    exits with :data:`~routegen.exit_codes.EXIT_GENERIC_FAILURE`.
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
        from routegen.exceptions import RoutegenError
        from routegen.output import error

        if isinstance(exc, RoutegenError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
