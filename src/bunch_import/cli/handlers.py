"""
CLI: ``bunch-import handlers`` -- list registered observer kinds.
"""

from __future__ import annotations

import typer
from rich.table import Table

from bunch_import.cli.utils import console, output_json
from bunch_import.framework.observers import get_observer_class, list_observers


def handlers_command(json_out: bool = typer.Option(False, "--json")) -> None:
    """List the handler kinds usable in callback trees."""
    rows = []
    for kind in list_observers():
        cls = get_observer_class(kind)
        rows.append(
            {
                "kind": kind,
                "capabilities": sorted(capability.value for capability in cls.capabilities),
                "description": cls.description,
            }
        )

    if json_out:
        output_json(rows)
        return

    table = Table(title="Handlers")
    table.add_column("Kind", style="bold")
    table.add_column("Capabilities")
    table.add_column("Description")
    for row in rows:
        table.add_row(row["kind"], ", ".join(row["capabilities"]), row["description"])
    console.print(table)
