"""
CLI utility helpers: output formatting and settings overrides.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from bunch_import.core.settings import ImportSettings, get_settings

console = Console()
err_console = Console(stderr=True)


def load_settings(database: str | None = None, **overrides: Any) -> ImportSettings:
    """Cached settings with command line options applied on top."""
    settings = get_settings()
    update = {key: value for key, value in overrides.items() if value is not None}
    if database:
        update["database"] = Path(database)
    return settings.model_copy(update=update) if update else settings


def fail(message: str, *, code: int = 1) -> typer.Exit:
    """Print an error and return the exit to raise."""
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    return typer.Exit(code=code)


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_status(status: dict[str, Any], *, title: str = "Run status") -> None:
    """Render a run-status mapping: totals first, then one row per subject."""
    totals = Table(title=title, show_header=False)
    totals.add_column("Key", style="bold")
    totals.add_column("Value")
    for key in ("serial", "bunches", "failed"):
        if key in status:
            totals.add_row(key, str(status[key]))
    console.print(totals)

    subjects = status.get("subjects") or {}
    if subjects:
        table = Table(title="Subjects")
        for column in ("subject", "prefix", "matches", "bunches", "failed", "skipped"):
            table.add_column(column)
        for subject_id, summary in subjects.items():
            table.add_row(
                subject_id,
                *(str(summary.get(column, "")) for column in ("prefix", "matches", "bunches", "failed", "skipped")),
            )
        console.print(table)

    for error in status.get("errors") or []:
        context = error.get("context", {})
        where = context.get("path") or context.get("subject") or ""
        err_console.print(f"[red]{error.get('error_type')}[/red] {where}: {error.get('message')}")
