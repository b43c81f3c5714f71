"""Repository classes for async CRUD operations on SQLite."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import aiosqlite

from rustlink.session.models import EntityType, ServerAddress

logger = logging.getLogger(__name__)


class UserRepo:
    """Players whose tokens authorise the sessions."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def upsert(
        self, player_id: str, player_token: int, player_name: str = ""
    ) -> None:
        await self._db.execute(
            "INSERT INTO users (player_id, player_name, player_token, created_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(player_id) DO UPDATE SET "
            "player_token = excluded.player_token, "
            "player_name = CASE WHEN excluded.player_name != '' "
            "THEN excluded.player_name ELSE users.player_name END",
            (player_id, player_name, player_token, time.time()),
        )
        await self._db.commit()

    async def get(self, player_id: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM users WHERE player_id = ?", (player_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None


class PairingRepo:
    """Which servers to open sessions for, and on whose behalf."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def upsert(
        self,
        player_id: str,
        address: ServerAddress,
        server_name: str = "",
        routing_target: str | None = None,
    ) -> None:
        await self._db.execute(
            "INSERT INTO server_pairings "
            "(player_id, server_host, server_port, server_name, "
            "routing_target, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(server_host, server_port) DO UPDATE SET "
            "player_id = excluded.player_id, "
            "server_name = excluded.server_name, "
            "routing_target = excluded.routing_target",
            (
                player_id,
                address.host,
                address.port,
                server_name,
                routing_target,
                time.time(),
            ),
        )
        await self._db.commit()

    async def list_all(self) -> list[dict]:
        """All pairings, oldest first, with the owning player's token."""
        cursor = await self._db.execute(
            "SELECT p.*, u.player_token FROM server_pairings p "
            "LEFT JOIN users u ON u.player_id = p.player_id "
            "ORDER BY p.created_at ASC, p.id ASC"
        )
        return [dict(row) async for row in cursor]

    async def get(self, address: ServerAddress) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM server_pairings WHERE server_host = ? AND server_port = ?",
            (address.host, address.port),
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def delete(self, address: ServerAddress) -> bool:
        cursor = await self._db.execute(
            "DELETE FROM server_pairings WHERE server_host = ? AND server_port = ?",
            (address.host, address.port),
        )
        await self._db.commit()
        return cursor.rowcount > 0


class DeviceRepo:
    """Named smart devices; doubles as the bridge's name lookup."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def upsert(
        self,
        player_id: str,
        address: ServerAddress,
        entity_id: int,
        name: str,
        device_type: EntityType | None = None,
    ) -> None:
        await self._db.execute(
            "INSERT INTO devices "
            "(player_id, entity_id, device_type, name, server_host, "
            "server_port, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(server_host, server_port, entity_id) DO UPDATE SET "
            "name = excluded.name, device_type = excluded.device_type",
            (
                player_id,
                int(entity_id),
                device_type.name.lower() if device_type else "",
                name,
                address.host,
                address.port,
                time.time(),
            ),
        )
        await self._db.commit()

    async def list_for_server(self, address: ServerAddress) -> list[dict]:
        cursor = await self._db.execute(
            "SELECT * FROM devices WHERE server_host = ? AND server_port = ? "
            "ORDER BY name",
            (address.host, address.port),
        )
        return [dict(row) async for row in cursor]

    async def resolve_device_name(
        self, entity_id: int, server: ServerAddress
    ) -> str | None:
        cursor = await self._db.execute(
            "SELECT name FROM devices "
            "WHERE entity_id = ? AND server_host = ? AND server_port = ?",
            (int(entity_id), server.host, server.port),
        )
        row = await cursor.fetchone()
        return row["name"] if row and row["name"] else None

    async def entity_types(self, address: ServerAddress) -> dict[int, EntityType]:
        """Known device types on a server, for seeding the classifier cache."""
        types: dict[int, EntityType] = {}
        for row in await self.list_for_server(address):
            if not row["device_type"]:
                continue
            try:
                types[int(row["entity_id"])] = EntityType.parse(row["device_type"])
            except ValueError:
                logger.warning(
                    "Ignoring device %s with unknown type %r",
                    row["entity_id"],
                    row["device_type"],
                )
        return types


class EventLogRepo:
    """Append-only event log; doubles as the sessions' durable log sink."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def record(
        self, actor_id: str, event_kind: str, payload: dict[str, Any] | str
    ) -> None:
        message = payload if isinstance(payload, str) else json.dumps(payload, default=str)
        await self._db.execute(
            "INSERT INTO event_logs (player_id, event_type, message, timestamp) "
            "VALUES (?, ?, ?, ?)",
            (actor_id, event_kind, message, time.time()),
        )
        await self._db.commit()

    async def recent(self, limit: int = 50, event_type: str | None = None) -> list[dict]:
        if event_type:
            cursor = await self._db.execute(
                "SELECT * FROM event_logs WHERE event_type = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (event_type, limit),
            )
        else:
            cursor = await self._db.execute(
                "SELECT * FROM event_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            )
        return [dict(row) async for row in cursor]
