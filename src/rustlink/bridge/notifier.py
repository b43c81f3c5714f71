"""Notification bridge: relays alarm and full-storage alerts into team chat."""

from __future__ import annotations

import logging

from rustlink.session.connection import Session
from rustlink.session.events import AlarmTriggered, StorageUpdated
from rustlink.storage.base import DeviceNameLookup

logger = logging.getLogger(__name__)

STORAGE_FULL_THRESHOLD = 0.9


class NotificationBridge:
    """Forwards alarm triggers and storage threshold crossings to team chat.

    Storage alerts fire only when an entity's fill ratio crosses the threshold
    from below. The per-entity "above threshold" flag is updated on every
    update, so a container that drains and fills up again alerts again.
    """

    def __init__(
        self,
        session: Session,
        names: DeviceNameLookup | None = None,
        threshold: float = STORAGE_FULL_THRESHOLD,
    ) -> None:
        self._session = session
        self._names = names
        self._threshold = threshold
        self._above_threshold: dict[int, bool] = {}
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        """Subscribe to the session's events. Calling twice is a no-op."""
        if self._attached:
            logger.debug("Bridge already attached for %s", self._session.address)
            return
        self._session.events.subscribe(AlarmTriggered, self.on_alarm)
        self._session.events.subscribe(StorageUpdated, self.on_storage)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        self._session.events.unsubscribe(AlarmTriggered, self.on_alarm)
        self._session.events.unsubscribe(StorageUpdated, self.on_storage)
        self._attached = False

    async def on_alarm(self, event: AlarmTriggered) -> None:
        name = await self.device_name(event.entity_id)
        await self._session.notify_team(f"\U0001f6a8 Alarm: {name} has been triggered!")

    async def on_storage(self, event: StorageUpdated) -> None:
        if event.capacity <= 0:
            return

        was_above = self._above_threshold.get(event.entity_id, False)
        is_above = event.fill_ratio >= self._threshold
        self._above_threshold[event.entity_id] = is_above
        if not is_above or was_above:
            return

        name = await self.device_name(event.entity_id)
        await self._session.notify_team(
            f"\u26a0\ufe0f {name} is almost full! "
            f"({len(event.items)} / {event.capacity} slots)"
        )

    async def device_name(self, entity_id: int) -> str:
        """Stored display name, falling back to the raw entity id."""
        if self._names is None:
            return str(entity_id)
        try:
            name = await self._names.resolve_device_name(
                entity_id, self._session.address
            )
        except Exception as e:
            logger.warning("Device name lookup failed for %s: %s", entity_id, e)
            return str(entity_id)
        return name or str(entity_id)
