"""Composition root: database, registry and per-session services wired together."""

from __future__ import annotations

import logging

import aiosqlite

from rustlink.bridge.notifier import NotificationBridge
from rustlink.config import RustLinkConfig
from rustlink.session.connection import Session
from rustlink.session.events import Handler
from rustlink.session.models import ServerAddress, SessionConfig
from rustlink.session.registry import SessionRegistry
from rustlink.storage.db import get_db
from rustlink.storage.repos import DeviceRepo, EventLogRepo, PairingRepo
from rustlink.transport.base import TransportFactory
from rustlink.world.poller import WorldEventPoller

logger = logging.getLogger(__name__)


class RustLinkApp:
    """Owns the database handle and the session registry for one process."""

    def __init__(
        self,
        config: RustLinkConfig,
        transport_factory: TransportFactory,
        db: aiosqlite.Connection | None = None,
        start_pollers: bool = True,
        subscribers: list[Handler] | None = None,
    ) -> None:
        self._config = config
        self._transport_factory = transport_factory
        self._db = db
        self._owns_db = db is None
        self._start_pollers = start_pollers
        self._subscribers = list(subscribers or ())
        self._registry: SessionRegistry | None = None

    @property
    def started(self) -> bool:
        return self._registry is not None

    @property
    def registry(self) -> SessionRegistry:
        if self._registry is None:
            raise RuntimeError("App not started: call start() first")
        return self._registry

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("App not started: call start() first")
        return self._db

    async def start(self) -> int:
        """Open storage, build the registry and connect every stored pairing.

        Returns the number of sessions created. A bad pairing is skipped; it
        never stops the others from connecting.
        """
        if self._db is None:
            self._db = await get_db(self._config.database)

        devices = DeviceRepo(self._db)
        self._registry = SessionRegistry(
            self._transport_factory,
            event_log=EventLogRepo(self._db),
            poller_factory=self._make_poller if self._start_pollers else None,
            bridge_factory=lambda s: NotificationBridge(
                s, names=devices, threshold=self._config.storage_threshold
            ),
        )

        pairings = await PairingRepo(self._db).list_all()
        logger.info("Found %d server pairing(s), opening sessions", len(pairings))

        count = 0
        for pairing in pairings:
            address = ServerAddress(pairing["server_host"], int(pairing["server_port"]))
            if not pairing.get("player_token"):
                logger.warning(
                    "Skipping pairing %s (%s): no player token for %s",
                    pairing["id"],
                    address,
                    pairing["player_id"],
                )
                continue
            try:
                await self.open_session(
                    address,
                    player_id=pairing["player_id"],
                    player_token=int(pairing["player_token"]),
                    routing_target=pairing.get("routing_target"),
                )
            except Exception as e:
                logger.error("Failed to open session for %s: %s", address, e)
                continue
            count += 1

        logger.info("Opened %d session(s)", count)
        return count

    async def open_session(
        self,
        address: ServerAddress,
        player_id: str,
        player_token: int,
        routing_target: str | None = None,
    ) -> Session:
        """Create (or replace) a session and seed its entity types from storage."""
        config = SessionConfig(
            address=address,
            player_id=player_id,
            player_token=player_token,
            routing_target=routing_target,
            reconnect=self._config.reconnect,
            request_timeout=self._config.request_timeout,
            connect_timeout=self._config.connect_timeout,
        )
        known = await DeviceRepo(self.db).entity_types(address)
        session = await self.registry.create_session(config)
        for entity_id, entity_type in known.items():
            session.register_entity_type(entity_id, entity_type)
        for handler in self._subscribers:
            session.events.subscribe_all(handler)
        return session

    async def shutdown(self) -> None:
        if self._registry is not None:
            await self._registry.close_all()
        if self._db is not None and self._owns_db:
            await self._db.close()
            self._db = None

    def _make_poller(self, session: Session) -> WorldEventPoller:
        return WorldEventPoller(session, interval=self._config.poll_interval)
