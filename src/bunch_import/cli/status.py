"""
CLI: ``bunch-import status`` -- show the persisted run status.
"""

from __future__ import annotations

import typer

from bunch_import.cli.utils import console, load_settings, output_json, print_status
from bunch_import.core.registry import CacheKeys, SqliteRegistry


def status_command(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Print the run status accumulated in the status registry."""
    settings = load_settings(database)
    registry = SqliteRegistry(settings.database)
    try:
        status = registry.get_attribute(CacheKeys.STATUS) or {}
    finally:
        registry.close()

    if json_out:
        output_json(status)
    elif not status:
        console.print("[dim]No runs recorded.[/dim]")
    else:
        print_status(status)
