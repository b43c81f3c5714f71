"""SQLite database connection management and schema migrations."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    player_id TEXT PRIMARY KEY,
    player_name TEXT NOT NULL DEFAULT '',
    player_token INTEGER,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS server_pairings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    player_id TEXT NOT NULL,
    server_host TEXT NOT NULL,
    server_port INTEGER NOT NULL,
    server_name TEXT NOT NULL DEFAULT '',
    routing_target TEXT,
    created_at REAL NOT NULL,
    UNIQUE (server_host, server_port),
    FOREIGN KEY (player_id) REFERENCES users(player_id)
);

CREATE TABLE IF NOT EXISTS devices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    player_id TEXT NOT NULL,
    entity_id INTEGER NOT NULL,
    device_type TEXT NOT NULL DEFAULT '',
    name TEXT NOT NULL DEFAULT '',
    server_host TEXT NOT NULL,
    server_port INTEGER NOT NULL,
    created_at REAL NOT NULL,
    UNIQUE (server_host, server_port, entity_id),
    FOREIGN KEY (player_id) REFERENCES users(player_id)
);

CREATE TABLE IF NOT EXISTS event_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    player_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    message TEXT NOT NULL DEFAULT '',
    timestamp REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_devices_server
    ON devices(server_host, server_port);
CREATE INDEX IF NOT EXISTS idx_event_logs_time
    ON event_logs(timestamp);
"""


async def get_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open (or create) the database and run migrations."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")

    await _migrate(db)
    return db


async def _migrate(db: aiosqlite.Connection) -> None:
    """Run schema migrations if needed."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    row = await cursor.fetchone()

    if row is None:
        # Fresh database: create everything
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        await db.commit()
        logger.info("Database initialized at schema version %d", SCHEMA_VERSION)
        return

    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    current = row[0] if row else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported "
            f"version {SCHEMA_VERSION}"
        )
    if current < SCHEMA_VERSION:
        logger.info(
            "Migrating database from version %d to %d",
            current,
            SCHEMA_VERSION,
        )
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "UPDATE schema_version SET version = ?",
            (SCHEMA_VERSION,),
        )
        await db.commit()
