"""Tests for the session registry."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import MagicMock

from rustlink.session.events import ReconnectFailed
from rustlink.session.models import ServerAddress, SessionState
from rustlink.session.registry import SessionRegistry


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


async def eventually(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


class TestSessionRegistry:
    def test_create_and_lookup(self, session_config, transport_factory):
        async def scenario():
            registry = SessionRegistry(transport_factory)
            session = await registry.create_session(session_config)
            await eventually(session.is_connected)

            assert len(registry) == 1
            assert registry.get_session(session_config.address) is session
            assert registry.get_session("203.0.113.7:28082") is session
            assert "203.0.113.7:28082" in registry
            assert ServerAddress("203.0.113.7", 1) not in registry
            assert 42 not in registry
            assert registry.list_sessions() == [session]
            await registry.close_all()

        run_async(scenario())

    def test_replace_disconnects_old_session_once(self, session_config, transport_factory):
        async def scenario():
            registry = SessionRegistry(transport_factory)
            first = await registry.create_session(session_config)
            await eventually(first.is_connected)
            old_transport = transport_factory.last

            second = await registry.create_session(
                replace(session_config, player_token=987654321)
            )
            await eventually(second.is_connected)

            assert first is not second
            assert len(registry) == 1
            assert registry.get_session(session_config.address) is second
            assert old_transport.disconnect_calls == 1
            assert first.state is SessionState.IDLE
            assert transport_factory.last.player_token == 987654321
            await registry.close_all()

        run_async(scenario())

    def test_remove_session(self, session_config, transport_factory):
        async def scenario():
            registry = SessionRegistry(transport_factory)
            session = await registry.create_session(session_config)
            await eventually(session.is_connected)

            assert await registry.remove_session(session_config.address) is True
            assert await registry.remove_session(session_config.address) is False
            assert len(registry) == 0
            assert session.state is SessionState.IDLE
            assert transport_factory.last.disconnect_calls == 1

        run_async(scenario())

    def test_services_follow_session_lifetime(self, session_config, transport_factory):
        poller = MagicMock()
        bridge = MagicMock()
        poller_factory = MagicMock(return_value=poller)
        bridge_factory = MagicMock(return_value=bridge)

        async def scenario():
            registry = SessionRegistry(
                transport_factory,
                poller_factory=poller_factory,
                bridge_factory=bridge_factory,
            )
            session = await registry.create_session(session_config)

            poller_factory.assert_called_once_with(session)
            bridge_factory.assert_called_once_with(session)
            poller.start.assert_called_once()
            bridge.attach.assert_called_once()
            assert registry.get_poller(session_config.address) is poller

            await registry.remove_session(session_config.address)
            poller.stop.assert_called_once()
            bridge.detach.assert_called_once()

        run_async(scenario())

    def test_close_all(self, session_config, transport_factory):
        other = replace(session_config, address=ServerAddress("198.51.100.2", 28083))

        async def scenario():
            registry = SessionRegistry(transport_factory)
            a = await registry.create_session(session_config)
            b = await registry.create_session(other)
            await eventually(lambda: a.is_connected() and b.is_connected())

            await registry.close_all()
            assert len(registry) == 0
            assert a.state is SessionState.IDLE
            assert b.state is SessionState.IDLE
            assert all(t.disconnect_calls == 1 for t in transport_factory.transports)

        run_async(scenario())

    def test_event_log_passed_to_sessions(self, session_config, transport_factory):
        class Sink:
            def __init__(self):
                self.kinds = []

            async def record(self, actor_id, event_kind, payload):
                self.kinds.append(event_kind)

        sink = Sink()

        async def scenario():
            registry = SessionRegistry(transport_factory, event_log=sink)
            session = await registry.create_session(session_config)
            await eventually(session.is_connected)
            await registry.close_all()

        run_async(scenario())
        assert sink.kinds == ["connected", "disconnected"]

    def test_malformed_address_lookups(self, session_config, transport_factory):
        async def scenario():
            registry = SessionRegistry(transport_factory)
            await registry.create_session(session_config)

            assert registry.get_session("garbage") is None
            assert registry.get_poller("no-port:") is None
            assert "garbage" not in registry
            assert await registry.remove_session("garbage") is False
            assert len(registry) == 1
            await registry.close_all()

        run_async(scenario())

    def test_subscriber_can_remove_its_own_session(self, session_config, transport_factory):
        transport_factory.fail_connects = -1
        other = replace(session_config, address=ServerAddress("198.51.100.2", 28083))
        removed = []

        async def scenario():
            registry = SessionRegistry(transport_factory)

            async def on_failed(event):
                removed.append(await registry.remove_session(event.server))

            session = await registry.create_session(session_config)
            session.events.subscribe(ReconnectFailed, on_failed)

            await eventually(lambda: removed)
            assert removed == [True]
            assert len(registry) == 0
            assert session.state is SessionState.IDLE

            # The registry is still usable afterwards.
            transport_factory.fail_connects = 0
            second = await asyncio.wait_for(registry.create_session(other), 1.0)
            await eventually(second.is_connected)
            await asyncio.wait_for(registry.close_all(), 1.0)

        run_async(scenario())

    def test_subscriber_can_replace_its_own_session(self, session_config, transport_factory):
        transport_factory.fail_connects = -1
        replaced = []

        async def scenario():
            registry = SessionRegistry(transport_factory)

            async def on_failed(event):
                transport_factory.fail_connects = 0
                replaced.append(await registry.create_session(session_config))

            first = await registry.create_session(session_config)
            first.events.subscribe(ReconnectFailed, on_failed)

            await eventually(lambda: replaced)
            second = replaced[0]
            assert second is not first
            assert registry.get_session(session_config.address) is second
            await eventually(second.is_connected)
            await asyncio.wait_for(registry.close_all(), 1.0)

        run_async(scenario())
