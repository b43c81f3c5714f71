"""Session registry: the table of live sessions keyed by server address."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rustlink.session.connection import Session
from rustlink.session.models import ServerAddress, SessionConfig
from rustlink.storage.base import EventLogSink
from rustlink.transport.base import TransportFactory

if TYPE_CHECKING:
    from rustlink.bridge.notifier import NotificationBridge
    from rustlink.world.poller import WorldEventPoller

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    session: Session
    poller: WorldEventPoller | None = None
    bridge: NotificationBridge | None = None


class SessionRegistry:
    """Owns every session; create replaces, remove disconnects first.

    Mutations for all keys are serialised by one lock so a replace can never
    interleave with a remove of the same server.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        event_log: EventLogSink | None = None,
        poller_factory: Callable[[Session], WorldEventPoller] | None = None,
        bridge_factory: Callable[[Session], NotificationBridge] | None = None,
    ) -> None:
        self._transport_factory = transport_factory
        self._event_log = event_log
        self._poller_factory = poller_factory
        self._bridge_factory = bridge_factory
        self._entries: dict[ServerAddress, _Entry] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, config: SessionConfig) -> Session:
        """Register and connect a session, replacing any for the same address."""
        async with self._lock:
            existing = self._entries.pop(config.address, None)
            if existing is not None:
                logger.info("Replacing existing session for %s", config.address)
                await self._teardown(existing)

            session = Session(config, self._transport_factory, self._event_log)
            entry = _Entry(session=session)
            if self._bridge_factory is not None:
                entry.bridge = self._bridge_factory(session)
                entry.bridge.attach()
            self._entries[config.address] = entry

            session.connect()
            if self._poller_factory is not None:
                entry.poller = self._poller_factory(session)
                entry.poller.start()

            logger.info(
                "Session created for %s (player %s)", config.address, config.player_id
            )
        if existing is not None:
            await existing.session.drain()
        return session

    def get_session(self, address: ServerAddress | str) -> Session | None:
        entry = self._lookup(address)
        return entry.session if entry else None

    def get_poller(self, address: ServerAddress | str) -> WorldEventPoller | None:
        entry = self._lookup(address)
        return entry.poller if entry else None

    def list_sessions(self) -> list[Session]:
        return [entry.session for entry in self._entries.values()]

    async def remove_session(self, address: ServerAddress | str) -> bool:
        """Disconnect and forget a session. Returns False if none was registered."""
        key = _key(address)
        if key is None:
            return False
        async with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            await self._teardown(entry)
        await entry.session.drain()
        logger.info("Session removed for %s", key)
        return True

    async def close_all(self) -> None:
        """Disconnect every session (process shutdown)."""
        async with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            for entry in entries:
                try:
                    await self._teardown(entry)
                except Exception as e:
                    logger.error(
                        "Error disconnecting %s during shutdown: %s",
                        entry.session.address,
                        e,
                    )
        for entry in entries:
            await entry.session.drain()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, (ServerAddress, str)):
            return False
        return self._lookup(address) is not None

    def _lookup(self, address: ServerAddress | str) -> _Entry | None:
        key = _key(address)
        return self._entries.get(key) if key is not None else None

    @staticmethod
    async def _teardown(entry: _Entry) -> None:
        # Callers drain the session once the lock is released.
        await entry.session.disconnect()
        if entry.poller is not None:
            entry.poller.stop()
        if entry.bridge is not None:
            entry.bridge.detach()


def _key(address: ServerAddress | str) -> ServerAddress | None:
    if isinstance(address, ServerAddress):
        return address
    try:
        return ServerAddress.parse(address)
    except ValueError:
        logger.debug("Ignoring malformed server address %r", address)
        return None
