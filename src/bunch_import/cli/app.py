"""
Root Typer application for the bunch-import CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from bunch_import.framework.logging import configure_logging

app = Typer(
    name="bunch-import",
    help="bunch-import: bulk import of row-based files through pluggable handlers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("bunch-import")
        except PackageNotFoundError:
            from bunch_import import __version__ as v
        typer.echo(f"bunch-import {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """bunch-import CLI: run imports, inspect handlers and run status."""
    from bunch_import.cli.utils import load_settings

    settings = load_settings()
    configure_logging(level=settings.log_level, format=settings.log_format, force=True)


# ── Command registration ─────────────────────────────────────────────────

from bunch_import.cli.handlers import handlers_command  # noqa: E402
from bunch_import.cli.run import run_command  # noqa: E402
from bunch_import.cli.status import status_command  # noqa: E402

app.command("run")(run_command)
app.command("handlers")(handlers_command)
app.command("status")(status_command)
