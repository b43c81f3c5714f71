"""Collaborator protocols the bridge core consumes from the storage layer."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from rustlink.session.models import ServerAddress


@runtime_checkable
class EventLogSink(Protocol):
    """Durable append-only log of session events."""

    async def record(
        self, actor_id: str, event_kind: str, payload: dict[str, Any]
    ) -> None:
        """Persist one event. May raise; callers log and carry on."""
        ...


@runtime_checkable
class DeviceNameLookup(Protocol):
    """Resolves a device's display name on a given server."""

    async def resolve_device_name(
        self, entity_id: int, server: ServerAddress
    ) -> str | None:
        """Return the stored name, or None when the device is unknown."""
        ...
