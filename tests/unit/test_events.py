"""Tests for session events, the event hub and the core data models."""

from __future__ import annotations

import asyncio

import pytest

from rustlink.session.events import (
    EVENT_TYPES,
    AlarmTriggered,
    Connected,
    Despawn,
    EventHub,
    Reconnecting,
    Spawn,
    StorageItem,
    StorageUpdated,
    WorldEventKind,
)
from rustlink.session.models import (
    EntityType,
    ReconnectPolicy,
    ServerAddress,
    SessionConfig,
)


class TestEventPayloads:
    def test_kinds_are_unique(self):
        kinds = [t.kind for t in EVENT_TYPES]
        assert len(set(kinds)) == len(kinds) == 11

    def test_payload_serializes_enums_and_items(self):
        event = Spawn(server="h:1", event=WorldEventKind.CARGO, timestamp=5.0)
        assert event.to_payload() == {"server": "h:1", "timestamp": 5.0, "event": "cargo"}

        update = StorageUpdated(
            server="h:1", entity_id=3, items=(StorageItem(10, 2),), capacity=4, timestamp=1.0
        )
        payload = update.to_payload()
        assert list(payload["items"]) == [{"item_id": 10, "quantity": 2, "is_blueprint": False}]
        assert update.fill_ratio == 0.25

    def test_events_are_immutable(self):
        event = Connected(server="h:1")
        with pytest.raises(AttributeError):
            event.server = "other"  # type: ignore[misc]


class TestEventHub:
    def test_typed_and_catch_all_subscribers(self):
        hub = EventHub()
        alarms, everything = [], []
        hub.subscribe(AlarmTriggered, alarms.append)
        hub.subscribe_all(everything.append)

        hub.emit(AlarmTriggered(server="h:1", entity_id=1))
        hub.emit(Connected(server="h:1"))

        assert len(alarms) == 1
        assert len(everything) == 2
        assert hub.handler_count(AlarmTriggered) == 2

    def test_failing_handler_does_not_stop_delivery(self):
        hub = EventHub()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        hub.subscribe(Connected, broken)
        hub.subscribe(Connected, seen.append)
        hub.emit(Connected(server="h:1"))
        assert len(seen) == 1

    def test_unknown_event_type_rejected(self):
        with pytest.raises(TypeError):
            EventHub().subscribe(dict, print)

    def test_unsubscribe(self):
        hub = EventHub()
        seen = []
        hub.subscribe(Despawn, seen.append)
        assert hub.unsubscribe(Despawn, seen.append) is True
        assert hub.unsubscribe(Despawn, seen.append) is False
        hub.subscribe_all(seen.append)
        assert hub.unsubscribe(None, seen.append) is True
        hub.emit(Despawn(server="h:1", event=WorldEventKind.HELI))
        assert seen == []

    def test_async_handler_goes_to_spawner(self):
        spawned = []
        hub = EventHub(spawn=spawned.append)

        async def handler(event):
            pass

        hub.subscribe(Reconnecting, handler)
        hub.emit(Reconnecting(server="h:1", attempt=1, delay_ms=5000))
        assert len(spawned) == 1
        assert asyncio.iscoroutine(spawned[0])
        spawned[0].close()

    def test_async_handler_without_spawner_is_dropped(self):
        hub = EventHub()
        calls = []

        async def handler(event):
            calls.append(event)

        hub.subscribe(Connected, handler)
        hub.emit(Connected(server="h:1"))
        assert calls == []


class TestModels:
    def test_reconnect_delays(self):
        policy = ReconnectPolicy()
        assert policy.delay_ms(0) == 5000
        assert policy.delay_ms(1) == 7500
        assert policy.delay_ms(2) == 11250
        assert policy.delay_ms(20) == 60000

    def test_exhausted(self):
        policy = ReconnectPolicy(max_retries=2)
        assert not policy.exhausted(1)
        assert policy.exhausted(2)
        assert not ReconnectPolicy(max_retries=0).exhausted(1000)

    def test_server_address(self):
        address = ServerAddress.parse("203.0.113.7:28082")
        assert address == ServerAddress("203.0.113.7", 28082)
        assert str(address) == "203.0.113.7:28082"
        with pytest.raises(ValueError):
            ServerAddress.parse("no-port")
        with pytest.raises(ValueError):
            ServerAddress.parse("host:abc")

    @pytest.mark.parametrize(
        "value,expected",
        [
            (1, EntityType.SWITCH),
            ("2", EntityType.ALARM),
            ("storage", EntityType.STORAGE_MONITOR),
            ("Storage Monitor", EntityType.STORAGE_MONITOR),
            ("switch", EntityType.SWITCH),
        ],
    )
    def test_entity_type_parse(self, value, expected):
        assert EntityType.parse(value) is expected

    def test_entity_type_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            EntityType.parse("turret")
        with pytest.raises(ValueError):
            EntityType.parse(9)

    def test_session_config_requires_credentials(self):
        address = ServerAddress("h", 1)
        with pytest.raises(ValueError):
            SessionConfig(address=address, player_id="", player_token=1)
        with pytest.raises(ValueError):
            SessionConfig(address=address, player_id="p", player_token=0)
        with pytest.raises(ValueError):
            SessionConfig(address=ServerAddress("", 1), player_id="p", player_token=1)
