"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from rustlink.session.models import ReconnectPolicy, ServerAddress, SessionConfig


class FakeTransport:
    """In-memory transport driven by its factory's settings."""

    def __init__(self, factory, address, player_id, player_token, listener, fail=False):
        self.factory = factory
        self.address = address
        self.player_id = player_id
        self.player_token = player_token
        self.listener = listener
        self.fail = fail
        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.sent: list[str] = []
        self.switched: list[tuple[int, bool]] = []

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.factory.hang_connect:
            await asyncio.sleep(3600)
        if self.fail:
            raise ConnectionRefusedError("connection refused")
        self.connected = True
        self.listener.on_connected()

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            self.listener.on_disconnected()

    # Test controls -------------------------------------------------------

    def drop(self) -> None:
        """Simulate the server closing the socket."""
        self.connected = False
        self.listener.on_disconnected()

    def push(self, message: dict[str, Any]) -> None:
        self.listener.on_message(message)

    def push_entity(self, entity_id: int, payload: dict[str, Any]) -> None:
        self.push({"broadcast": {"entityChanged": {"entityId": entity_id, "payload": payload}}})

    # Requests ------------------------------------------------------------

    async def _respond(self, body: dict[str, Any]) -> dict[str, Any]:
        if self.factory.hang_requests:
            await asyncio.sleep(3600)
        if self.factory.error:
            return {"error": self.factory.error}
        return body

    async def send_team_message(self, text: str) -> dict[str, Any]:
        response = await self._respond({"success": {}})
        if "error" not in response:
            self.sent.append(text)
        return response

    async def set_entity_value(self, entity_id: int, value: bool) -> dict[str, Any]:
        response = await self._respond({"success": {}})
        if "error" not in response:
            self.switched.append((entity_id, value))
        return response

    async def get_entity_info(self, entity_id: int) -> dict[str, Any]:
        info = self.factory.entity_info.get(entity_id, {"type": 1, "payload": {"value": False}})
        return await self._respond({"entityInfo": info})

    async def get_map_markers(self) -> dict[str, Any]:
        return await self._respond({"mapMarkers": {"markers": list(self.factory.markers)}})

    async def get_map(self) -> dict[str, Any]:
        return await self._respond({"map": {"width": self.factory.map_width}})


class FakeTransportFactory:
    """Transport factory that records every handle it builds."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.fail_connects = 0  # handshakes left to fail; negative fails all
        self.create_error: Exception | None = None
        self.hang_connect = False
        self.hang_requests = False
        self.error: str | None = None
        self.markers: list[dict[str, Any]] = []
        self.map_width = 3000.0
        self.entity_info: dict[int, dict[str, Any]] = {}

    def __call__(self, address, player_id, player_token, listener) -> FakeTransport:
        if self.create_error is not None:
            raise self.create_error
        fail = self.fail_connects != 0
        if self.fail_connects > 0:
            self.fail_connects -= 1
        transport = FakeTransport(self, address, player_id, player_token, listener, fail)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def address() -> ServerAddress:
    return ServerAddress("203.0.113.7", 28082)


@pytest.fixture
def fast_policy() -> ReconnectPolicy:
    return ReconnectPolicy(
        initial_delay_ms=1, multiplier=2, max_delay_ms=4, max_retries=3
    )


@pytest.fixture
def session_config(address: ServerAddress, fast_policy: ReconnectPolicy) -> SessionConfig:
    return SessionConfig(
        address=address,
        player_id="76561198000000001",
        player_token=123456789,
        routing_target="guild-1",
        reconnect=fast_policy,
        request_timeout=0.2,
        connect_timeout=0.2,
    )


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"
