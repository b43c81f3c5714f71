"""Entity classifier: turn an untyped entity-changed payload into events.

Entity-changed broadcasts do not say what kind of device changed. The payload
shape decides first (an item list with a capacity means a storage monitor); for
boolean payloads the session's type cache breaks the tie between switches and
alarms. Unknown boolean entities emit a switch change and, when the value turns
true, an alarm as well, so an unclassified alarm is never missed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from rustlink.session.events import (
    AlarmTriggered,
    SessionEvent,
    StorageItem,
    StorageUpdated,
    SwitchChanged,
)
from rustlink.session.models import EntityType

logger = logging.getLogger(__name__)


def classify(
    server: str,
    entity_id: int,
    payload: Any,
    cached_type: EntityType | None = None,
) -> list[SessionEvent]:
    """Return the events raised by one entity-changed payload.

    Never raises; anything that is not a mapping yields no events.
    """
    if not isinstance(payload, Mapping):
        return []

    items = payload.get("items")
    capacity = payload.get("capacity")
    has_storage_shape = isinstance(items, (list, tuple)) and capacity is not None

    if has_storage_shape or cached_type is EntityType.STORAGE_MONITOR:
        return [
            StorageUpdated(
                server=server,
                entity_id=entity_id,
                items=_parse_items(items),
                capacity=_as_int(capacity),
            )
        ]

    value = payload.get("value")
    if not isinstance(value, bool):
        logger.debug("Dropping entity %s payload with no known shape", entity_id)
        return []

    if cached_type is EntityType.SWITCH:
        return [SwitchChanged(server=server, entity_id=entity_id, value=value)]
    if cached_type is EntityType.ALARM:
        return [AlarmTriggered(server=server, entity_id=entity_id)]

    events: list[SessionEvent] = [
        SwitchChanged(server=server, entity_id=entity_id, value=value)
    ]
    if value:
        events.append(AlarmTriggered(server=server, entity_id=entity_id))
    return events


def _parse_items(items: Any) -> tuple[StorageItem, ...]:
    if not isinstance(items, (list, tuple)):
        return ()
    parsed = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        parsed.append(
            StorageItem(
                item_id=_as_int(item.get("itemId")),
                quantity=_as_int(item.get("quantity"), default=1),
                is_blueprint=bool(item.get("itemIsBlueprint", False)),
            )
        )
    return tuple(parsed)


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
