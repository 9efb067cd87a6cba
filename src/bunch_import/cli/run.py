"""
CLI: ``bunch-import run`` -- import all files of a configuration.
"""

from __future__ import annotations

import typer

from bunch_import.cli.utils import console, fail, load_settings, output_json, print_status
from bunch_import.core.errors import ConfigError
from bunch_import.framework.application import Application
from bunch_import.framework.config import load_configuration


def run_command(
    config: str = typer.Argument(..., help="YAML import configuration."),
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database for rows and status."),
    halt_on_error: bool | None = typer.Option(
        None, "--halt-on-error/--continue-on-error", help="Stop the run at the first failed file."
    ),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Import every file matched by the configured subjects."""
    settings = load_settings(database, halt_on_error=halt_on_error)
    try:
        configuration = load_configuration(config)
    except ConfigError as e:
        raise fail(e.message) from e

    with Application.from_settings(configuration, settings) as application:
        status = application.run()
        stop_reason = application.stop_reason
        fatal = application.fatal_error is not None

    if json_out:
        output_json({"status": status, "stop_reason": stop_reason})
    else:
        print_status(status)
        if stop_reason:
            console.print(f"[yellow]Stopped:[/yellow] {stop_reason}")

    if fatal:
        raise typer.Exit(code=1)
