"""CLI command: rustlink run - connect every paired server and relay events."""

from __future__ import annotations

import asyncio
import signal

import click

from rustlink.app import RustLinkApp
from rustlink.cli.common import console, load_config
from rustlink.config import RustLinkConfig
from rustlink.session.events import (
    AlarmTriggered,
    Connected,
    Despawn,
    Disconnected,
    ReconnectFailed,
    Reconnecting,
    SessionError,
    SessionEvent,
    Spawn,
    StorageUpdated,
    SwitchChanged,
    TeamMessage,
)
from rustlink.transport.base import TransportFactory
from rustlink.transport.loader import load_transport_factory
from rustlink.world.timers import ICONS, LABELS


def format_event(event: SessionEvent) -> str:
    """One rich-markup line for the live event stream."""
    where = f"[dim]{event.server}[/dim]"
    if isinstance(event, Connected):
        return f"{where} [green]connected[/green]"
    if isinstance(event, Disconnected):
        note = " (closed)" if event.intentional else ""
        return f"{where} [yellow]disconnected[/yellow]{note}"
    if isinstance(event, Reconnecting):
        return (
            f"{where} [yellow]reconnecting[/yellow] attempt {event.attempt} "
            f"in {event.delay_ms / 1000:.1f}s"
        )
    if isinstance(event, ReconnectFailed):
        return f"{where} [red]gave up after {event.attempts} attempt(s)[/red]"
    if isinstance(event, SessionError):
        return f"{where} [red]error[/red] {event.message}"
    if isinstance(event, TeamMessage):
        return f"{where} [bold]{event.sender_name}[/bold]: {event.text}"
    if isinstance(event, AlarmTriggered):
        return f"{where} [red]alarm[/red] {event.entity_id}"
    if isinstance(event, SwitchChanged):
        state = "on" if event.value else "off"
        return f"{where} switch {event.entity_id} {state}"
    if isinstance(event, StorageUpdated):
        return (
            f"{where} storage {event.entity_id} "
            f"{len(event.items)}/{event.capacity} slots"
        )
    if isinstance(event, (Spawn, Despawn)):
        verb = "spawned" if isinstance(event, Spawn) else "despawned"
        return f"{where} {ICONS[event.event]} {LABELS[event.event]} {verb}"
    return f"{where} {event.kind}"


@click.command()
@click.option(
    "--transport",
    "transport_path",
    default=None,
    help="Transport factory as package.module:callable (overrides config).",
)
@click.option("--no-poll", is_flag=True, help="Disable world event polling.")
@click.option("--quiet", "-q", is_flag=True, help="Do not print the live event stream.")
@click.pass_context
def run(
    ctx: click.Context, transport_path: str | None, no_poll: bool, quiet: bool
) -> None:
    """Open a session for every paired server and run until interrupted."""
    config = load_config(ctx)
    path = transport_path or config.transport
    if not path:
        console.print(
            "[red]No transport configured.[/red] "
            "Pass --transport or set 'transport' in the config file."
        )
        raise SystemExit(2)

    try:
        factory = load_transport_factory(path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(2)

    asyncio.run(_serve(config, factory, poll=not no_poll, quiet=quiet))


async def _serve(
    config: RustLinkConfig, factory: TransportFactory, poll: bool, quiet: bool
) -> None:
    def on_event(event: SessionEvent) -> None:
        console.print(format_event(event))

    app = RustLinkApp(
        config,
        factory,
        start_pollers=poll,
        subscribers=[] if quiet else [on_event],
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    try:
        count = await app.start()
        if count == 0:
            console.print("[yellow]No sessions opened.[/yellow] Add one with 'rustlink pair'.")
            return
        console.print(
            f"[bold]RustLink[/bold] relaying [cyan]{count}[/cyan] session(s). "
            "Press Ctrl+C to stop.\n"
        )
        await stop.wait()
    finally:
        sessions = app.registry.list_sessions() if app.started else []
        for session in sessions:
            poller = app.registry.get_poller(session.address)
            if poller is not None and poller.running:
                console.print(f"\n[dim]{session.address}[/dim]\n{poller.summary()}")
        await app.shutdown()
        console.print("[dim]Stopped.[/dim]")
