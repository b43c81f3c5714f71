"""CLI command: rustlink events - show the durable event log."""

from __future__ import annotations

from datetime import datetime

import click
from rich.table import Table

from rustlink.cli.common import console, load_config, with_db
from rustlink.storage.repos import EventLogRepo


@click.command()
@click.option("--limit", "-n", type=int, default=50, show_default=True, help="Rows to show.")
@click.option("--type", "event_type", default=None, help="Only show one event kind.")
@click.pass_context
def events(ctx: click.Context, limit: int, event_type: str | None) -> None:
    """Show the most recent logged session events, newest first."""
    config = load_config(ctx)
    rows = with_db(config, lambda db: EventLogRepo(db).recent(limit, event_type))

    if not rows:
        console.print("[dim]No events logged.[/dim]")
        return

    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Time", style="dim")
    table.add_column("Player")
    table.add_column("Event", style="cyan")
    table.add_column("Details")

    for row in rows:
        when = datetime.fromtimestamp(row["timestamp"]).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(when, row["player_id"], row["event_type"], row["message"])

    console.print(table)
