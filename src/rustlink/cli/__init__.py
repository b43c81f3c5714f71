"""CLI entry point: Click group with global options."""

from __future__ import annotations

import logging

import click

from rustlink import __version__


@click.group()
@click.version_option(version=__version__, prog_name="rustlink")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """RustLink: keep game-server companion sessions alive and relay their events."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from rustlink.cli.devices import device  # noqa: F811
    from rustlink.cli.events import events  # noqa: F811
    from rustlink.cli.pairings import pair, pairings  # noqa: F811
    from rustlink.cli.run import run  # noqa: F811

    main.add_command(run)
    main.add_command(pairings)
    main.add_command(pair)
    main.add_command(device)
    main.add_command(events)


_register_commands()
