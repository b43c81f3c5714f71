"""Tests for the team-chat notification bridge."""

from __future__ import annotations

import asyncio

import pytest

from rustlink.bridge.notifier import NotificationBridge
from rustlink.session.events import (
    AlarmTriggered,
    EventHub,
    StorageItem,
    StorageUpdated,
    SwitchChanged,
)
from rustlink.session.models import ServerAddress

SERVER = ServerAddress("203.0.113.7", 28082)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


class StubSession:
    address = SERVER

    def __init__(self, fail: bool = False) -> None:
        self.tasks: list[asyncio.Future] = []
        self.events = EventHub(spawn=self._spawn)
        self.sent: list[str] = []
        self.fail = fail

    def _spawn(self, awaitable):
        task = asyncio.ensure_future(awaitable)
        self.tasks.append(task)
        return task

    async def drain(self) -> None:
        await asyncio.gather(*self.tasks)

    async def notify_team(self, text: str) -> bool:
        # Mirrors the real session: delivery failures are reported, not raised.
        if self.fail:
            return False
        self.sent.append(text)
        return True


class Names:
    def __init__(self, names=None, error=None):
        self.names = names or {}
        self.error = error
        self.calls: list[tuple[int, ServerAddress]] = []

    async def resolve_device_name(self, entity_id, server):
        self.calls.append((entity_id, server))
        if self.error:
            raise self.error
        return self.names.get(entity_id)


def storage(entity_id: int, used: int, capacity: int) -> StorageUpdated:
    items = tuple(StorageItem(item_id=i) for i in range(used))
    return StorageUpdated(server=str(SERVER), entity_id=entity_id, items=items, capacity=capacity)


class TestStorageThreshold:
    def test_alerts_only_on_upward_crossings(self):
        async def scenario():
            session = StubSession()
            bridge = NotificationBridge(session, names=Names({4: "Loot Room"}))
            bridge.attach()
            for used in (50, 95, 97, 80, 92):
                session.events.emit(storage(4, used, 100))
            await session.drain()
            return session.sent

        sent = run_async(scenario())
        assert sent == [
            "\u26a0\ufe0f Loot Room is almost full! (95 / 100 slots)",
            "\u26a0\ufe0f Loot Room is almost full! (92 / 100 slots)",
        ]

    def test_entities_tracked_separately(self):
        async def scenario():
            session = StubSession()
            bridge = NotificationBridge(session)
            bridge.attach()
            session.events.emit(storage(1, 19, 20))
            session.events.emit(storage(2, 19, 20))
            session.events.emit(storage(1, 20, 20))
            await session.drain()
            return session.sent

        sent = run_async(scenario())
        assert len(sent) == 2
        assert sent[0].startswith("\u26a0\ufe0f 1 ")
        assert sent[1].startswith("\u26a0\ufe0f 2 ")

    def test_zero_capacity_ignored(self):
        async def scenario():
            session = StubSession()
            bridge = NotificationBridge(session)
            await bridge.on_storage(storage(4, 0, 0))
            return session.sent

        assert run_async(scenario()) == []

    def test_custom_threshold(self):
        async def scenario():
            session = StubSession()
            bridge = NotificationBridge(session, threshold=0.5)
            await bridge.on_storage(storage(4, 5, 10))
            return session.sent

        assert len(run_async(scenario())) == 1


class TestAlarms:
    def test_alarm_uses_device_name(self):
        names = Names({9: "Front Door"})

        async def scenario():
            session = StubSession()
            NotificationBridge(session, names=names).attach()
            session.events.emit(AlarmTriggered(server=str(SERVER), entity_id=9))
            session.events.emit(SwitchChanged(server=str(SERVER), entity_id=9, value=True))
            await session.drain()
            return session.sent

        assert run_async(scenario()) == ["\U0001f6a8 Alarm: Front Door has been triggered!"]
        assert names.calls == [(9, SERVER)]

    @pytest.mark.parametrize("names", [None, Names(), Names(error=RuntimeError("db gone"))])
    def test_name_falls_back_to_entity_id(self, names):
        async def scenario():
            session = StubSession()
            bridge = NotificationBridge(session, names=names)
            await bridge.on_alarm(AlarmTriggered(server=str(SERVER), entity_id=31337))
            return session.sent

        assert run_async(scenario()) == ["\U0001f6a8 Alarm: 31337 has been triggered!"]

    def test_failed_send_still_updates_threshold(self):
        async def scenario():
            session = StubSession(fail=True)
            bridge = NotificationBridge(session)
            await bridge.on_storage(storage(4, 19, 20))
            session.fail = False
            await bridge.on_storage(storage(4, 20, 20))
            return session.sent

        assert run_async(scenario()) == []


class TestAttach:
    def test_attach_is_idempotent_and_detach_unsubscribes(self):
        async def scenario():
            session = StubSession()
            bridge = NotificationBridge(session)
            bridge.attach()
            bridge.attach()
            assert bridge.attached
            assert session.events.handler_count(AlarmTriggered) == 1

            bridge.detach()
            assert not bridge.attached
            assert session.events.handler_count(AlarmTriggered) == 0
            session.events.emit(AlarmTriggered(server=str(SERVER), entity_id=1))
            await session.drain()
            return session.sent

        assert run_async(scenario()) == []
