"""Helpers shared by the CLI commands."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import aiosqlite
import click
from rich.console import Console

from rustlink.config import RustLinkConfig
from rustlink.session.models import ServerAddress
from rustlink.storage.db import get_db

T = TypeVar("T")

console = Console(stderr=True)


def load_config(ctx: click.Context) -> RustLinkConfig:
    """Load configuration, turning bad files into a usage error."""
    obj: dict[str, Any] = ctx.obj or {}
    try:
        config = RustLinkConfig.load(obj.get("config_path"))
    except (OSError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e
    config.verbose = bool(obj.get("verbose"))
    return config


def parse_address(value: str) -> ServerAddress:
    try:
        return ServerAddress.parse(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="HOST:PORT") from e


def with_db(
    config: RustLinkConfig, fn: Callable[[aiosqlite.Connection], Awaitable[T]]
) -> T:
    """Open the database, run ``fn`` against it and close it again."""

    async def _main() -> T:
        db = await get_db(config.database)
        try:
            return await fn(db)
        finally:
            await db.close()

    return asyncio.run(_main())
