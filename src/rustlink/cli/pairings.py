"""CLI commands: rustlink pairings / rustlink pair - manage server pairings."""

from __future__ import annotations

from datetime import datetime

import aiosqlite
import click
from rich.table import Table

from rustlink.cli.common import console, load_config, parse_address, with_db
from rustlink.storage.repos import PairingRepo, UserRepo


@click.command()
@click.pass_context
def pairings(ctx: click.Context) -> None:
    """List the servers sessions are opened for."""
    config = load_config(ctx)
    rows = with_db(config, lambda db: PairingRepo(db).list_all())

    if not rows:
        console.print("[dim]No server pairings yet. Add one with 'rustlink pair'.[/dim]")
        return

    table = Table(title=f"Server pairings ({len(rows)})")
    table.add_column("Server", style="cyan")
    table.add_column("Name")
    table.add_column("Player")
    table.add_column("Routing", style="dim")
    table.add_column("Token", justify="center")
    table.add_column("Added", style="dim")

    for row in rows:
        added = datetime.fromtimestamp(row["created_at"]).strftime("%Y-%m-%d %H:%M")
        token = "[green]yes[/green]" if row.get("player_token") else "[red]missing[/red]"
        table.add_row(
            f"{row['server_host']}:{row['server_port']}",
            row["server_name"] or "-",
            row["player_id"],
            row["routing_target"] or "-",
            token,
            added,
        )

    console.print(table)


@click.command()
@click.argument("address")
@click.argument("player_id")
@click.option("--token", type=int, default=None, help="Player token for this server.")
@click.option("--name", "server_name", default="", help="Display name for the server.")
@click.option("--player-name", default="", help="Display name for the player.")
@click.option("--routing", "routing_target", default=None, help="Routing target for requests.")
@click.option("--remove", is_flag=True, help="Remove the pairing instead of adding it.")
@click.pass_context
def pair(
    ctx: click.Context,
    address: str,
    player_id: str,
    token: int | None,
    server_name: str,
    player_name: str,
    routing_target: str | None,
    remove: bool,
) -> None:
    """Pair a server (HOST:PORT) with the player whose token opens its session."""
    config = load_config(ctx)
    server = parse_address(address)

    if remove:
        removed = with_db(config, lambda db: PairingRepo(db).delete(server))
        if removed:
            console.print(f"Removed pairing for [cyan]{server}[/cyan]")
        else:
            console.print(f"[yellow]No pairing for {server}[/yellow]")
        return
    if token is None:
        raise click.UsageError("--token is required when adding a pairing")

    async def _save(db: aiosqlite.Connection) -> None:
        await UserRepo(db).upsert(player_id, token, player_name=player_name)
        await PairingRepo(db).upsert(
            player_id, server, server_name=server_name, routing_target=routing_target
        )

    with_db(config, _save)
    console.print(
        f"[green]Paired[/green] [cyan]{server}[/cyan] with player [bold]{player_id}[/bold]"
    )
