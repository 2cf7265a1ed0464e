"""Typer application and CLI entry point for reqcache.

This module wires together the top-level Typer application and registers the
built-in commands (``install``, ``activate``, ``status``, ``fetch``, ``push``,
and the ``config`` group).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the data directory.

See Also:
    :mod:`reqcache.config`: Configuration resolution.
    :mod:`reqcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from reqcache import __version__
from reqcache.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="reqcache",
    help="Generation-versioned intercepting request cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"reqcache {__version__}")
        raise typer.Exit()


def _configured_format() -> str:
    """Output format from the user config, or ``auto`` when it cannot be read."""
    from reqcache.config import load_global_config
    from reqcache.exceptions import ConfigError

    try:
        return load_global_config().output.format
    except ConfigError:
        return "auto"


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
    origin: Optional[str] = typer.Option(
        None, "--origin", help="Origin the layer serves, e.g. https://knower.life."
    ),
    generation: Optional[int] = typer.Option(
        None, "--generation", "-g", min=1, help="Deploy generation number."
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
        False, "--verbose", "-v", help="Show cache decisions on stderr."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~reqcache.output.OutputManager` from CLI
    flags (falling back to ``output.format`` in the user config) and stores
    shared options in ``ctx.obj`` for the sub-commands.
    """
    from reqcache.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        try:
            fmt = OutputFormat(_configured_format())
        except ValueError:
            fmt = OutputFormat.AUTO

    set_output(
        OutputManager(
            format=fmt,
            no_color=no_color,
            quiet=quiet,
            verbose=verbose,
        )
    )

    ctx.ensure_object(dict)
    ctx.obj["origin"] = origin
    ctx.obj["generation"] = generation
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


from reqcache.commands.cache import (  # noqa: E402
    activate_command,
    fetch_command,
    install_command,
    push_command,
    status_command,
)
from reqcache.commands.config import config_app  # noqa: E402

app.command("install")(install_command)
app.command("activate")(activate_command)
app.command("status")(status_command)
app.command("fetch")(fetch_command)
app.command("push")(push_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from reqcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``reqcache`` console script.

    Unhandled :class:`~reqcache.exceptions.ReqcacheError` instances cause a
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
        from reqcache.exceptions import ReqcacheError
        from reqcache.output import error

        if isinstance(exc, ReqcacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
