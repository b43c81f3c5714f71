"""CLI command: rustlink device - name smart devices and record their type."""

from __future__ import annotations

import aiosqlite
import click
from rich.table import Table

from rustlink.cli.common import console, load_config, parse_address, with_db
from rustlink.session.models import EntityType
from rustlink.storage.repos import DeviceRepo, PairingRepo


@click.command()
@click.argument("address")
@click.argument("entity_id", type=int, required=False)
@click.argument("name", required=False)
@click.option(
    "--type",
    "device_type",
    type=click.Choice(["switch", "alarm", "storage"], case_sensitive=False),
    default=None,
    help="Device kind, used to classify its state changes.",
)
@click.pass_context
def device(
    ctx: click.Context,
    address: str,
    entity_id: int | None,
    name: str | None,
    device_type: str | None,
) -> None:
    """Name a device on a paired server, or list the server's devices.

    With only HOST:PORT, prints the known devices. With ENTITY_ID and NAME,
    stores (or renames) the device under the server's paired player.
    """
    config = load_config(ctx)
    server = parse_address(address)

    if entity_id is None:
        rows = with_db(config, lambda db: DeviceRepo(db).list_for_server(server))
        if not rows:
            console.print(f"[dim]No devices stored for {server}[/dim]")
            return
        table = Table(title=f"Devices on {server}")
        table.add_column("Entity", justify="right", style="cyan")
        table.add_column("Name")
        table.add_column("Type", style="dim")
        for row in rows:
            table.add_row(str(row["entity_id"]), row["name"], row["device_type"] or "-")
        console.print(table)
        return

    if not name:
        raise click.UsageError("NAME is required when ENTITY_ID is given")
    kind = EntityType.parse(device_type) if device_type else None

    async def _save(db: aiosqlite.Connection) -> bool:
        pairing = await PairingRepo(db).get(server)
        if pairing is None:
            return False
        await DeviceRepo(db).upsert(
            pairing["player_id"], server, entity_id, name, device_type=kind
        )
        return True

    if not with_db(config, _save):
        console.print(
            f"[red]No pairing for {server}.[/red] Add one with 'rustlink pair' first."
        )
        raise SystemExit(1)

    suffix = f" ({kind.name.lower()})" if kind else ""
    console.print(f"Stored device [cyan]{entity_id}[/cyan] as [bold]{name}[/bold]{suffix}")
