"""Normalized session events and the observer registry that fans them out.

The event set is closed: subscribers register for one of the concrete event
classes below (or for all of them) and never see transport-level detail.
"""

from __future__ import annotations

import dataclasses
import enum
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

logger = logging.getLogger(__name__)


class WorldEventKind(enum.Enum):
    """Transient world events tracked by the marker poller."""

    CARGO = "cargo"
    HELI = "heli"
    BRADLEY = "bradley"
    OILRIG = "oilrig"


@dataclass(frozen=True)
class StorageItem:
    """One stack inside a storage container."""

    item_id: int
    quantity: int = 1
    is_blueprint: bool = False


@dataclass(frozen=True)
class _BaseEvent:
    kind: ClassVar[str] = ""

    server: str
    timestamp: float = field(default_factory=time.time, kw_only=True)

    def to_payload(self) -> dict[str, Any]:
        """JSON-friendly representation used for the durable event log."""
        payload = dataclasses.asdict(self)
        for key, value in payload.items():
            if isinstance(value, enum.Enum):
                payload[key] = value.value
        return payload


@dataclass(frozen=True)
class TeamMessage(_BaseEvent):
    kind: ClassVar[str] = "team_chat"

    sender_id: str
    sender_name: str
    text: str
    time: int = 0


@dataclass(frozen=True)
class AlarmTriggered(_BaseEvent):
    kind: ClassVar[str] = "alarm_triggered"

    entity_id: int


@dataclass(frozen=True)
class SwitchChanged(_BaseEvent):
    kind: ClassVar[str] = "switch_changed"

    entity_id: int
    value: bool


@dataclass(frozen=True)
class StorageUpdated(_BaseEvent):
    kind: ClassVar[str] = "storage_updated"

    entity_id: int
    items: tuple[StorageItem, ...] = ()
    capacity: int = 0

    @property
    def fill_ratio(self) -> float:
        if self.capacity <= 0:
            return 0.0
        return len(self.items) / self.capacity


@dataclass(frozen=True)
class Connected(_BaseEvent):
    kind: ClassVar[str] = "connected"


@dataclass(frozen=True)
class Disconnected(_BaseEvent):
    kind: ClassVar[str] = "disconnected"

    intentional: bool


@dataclass(frozen=True)
class Reconnecting(_BaseEvent):
    kind: ClassVar[str] = "reconnecting"

    attempt: int
    delay_ms: float


@dataclass(frozen=True)
class ReconnectFailed(_BaseEvent):
    kind: ClassVar[str] = "reconnect_failed"

    attempts: int


@dataclass(frozen=True)
class SessionError(_BaseEvent):
    kind: ClassVar[str] = "error"

    message: str


@dataclass(frozen=True)
class Spawn(_BaseEvent):
    kind: ClassVar[str] = "spawn"

    event: WorldEventKind


@dataclass(frozen=True)
class Despawn(_BaseEvent):
    kind: ClassVar[str] = "despawn"

    event: WorldEventKind


SessionEvent = Union[
    TeamMessage,
    AlarmTriggered,
    SwitchChanged,
    StorageUpdated,
    Connected,
    Disconnected,
    Reconnecting,
    ReconnectFailed,
    SessionError,
    Spawn,
    Despawn,
]

EVENT_TYPES: tuple[type, ...] = SessionEvent.__args__  # type: ignore[attr-defined]

Handler = Callable[[Any], Union[None, Awaitable[None]]]
Spawner = Callable[[Awaitable[None]], object]


class EventHub:
    """Typed observer registry for one session.

    Handlers may be plain callables or coroutine functions. Coroutines are
    handed to ``spawn`` (normally the owning session's task tracker) so that
    emission itself never awaits. A failing handler is logged and does not
    stop delivery to the others.
    """

    def __init__(self, spawn: Spawner | None = None) -> None:
        self._spawn = spawn
        self._handlers: dict[type, list[Handler]] = {t: [] for t in EVENT_TYPES}
        self._any: list[Handler] = []

    def subscribe(self, event_type: type, handler: Handler) -> None:
        """Register ``handler`` for one event class."""
        if event_type not in self._handlers:
            raise TypeError(f"{event_type!r} is not a session event type")
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register ``handler`` for every event."""
        self._any.append(handler)

    def unsubscribe(self, event_type: type | None, handler: Handler) -> bool:
        handlers = self._any if event_type is None else self._handlers.get(event_type, [])
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        return True

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, ())) + len(self._any)

    def emit(self, event: SessionEvent) -> None:
        for handler in (*self._handlers[type(event)], *self._any):
            try:
                result = handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed handling %s", handler, event.kind
                )
                continue
            if inspect.isawaitable(result):
                if self._spawn is None:
                    logger.warning(
                        "Dropping async subscriber result for %s: no task spawner",
                        event.kind,
                    )
                    if inspect.iscoroutine(result):
                        result.close()
                    continue
                self._spawn(result)
