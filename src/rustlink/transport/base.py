"""Transport protocol: the companion-protocol client every session drives.

The wire codec lives outside this package. A transport implementation only has
to satisfy the protocols below; sessions never look past them.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from rustlink.session.models import ServerAddress

Message = Mapping[str, Any]


class TransportListener(Protocol):
    """Callbacks a transport invokes on the event loop thread."""

    def on_connected(self) -> None: ...

    def on_disconnected(self) -> None: ...

    def on_error(self, error: BaseException) -> None: ...

    def on_message(self, message: Message) -> None:
        """A decoded unsolicited message, e.g. ``{"broadcast": {...}}``."""
        ...


@runtime_checkable
class Transport(Protocol):
    """One connection attempt to one server.

    ``connect()`` completes the handshake and fires ``on_connected``, or raises.
    A handshake that raises must not also fire ``on_disconnected``. Once
    connected, losing the socket (or ``disconnect()``) fires
    ``on_disconnected`` once.

    Request coroutines return the decoded response body, which carries an
    ``"error"`` key when the server rejected the request.
    """

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def send_team_message(self, text: str) -> Message: ...

    async def set_entity_value(self, entity_id: int, value: bool) -> Message: ...

    async def get_entity_info(self, entity_id: int) -> Message: ...

    async def get_map_markers(self) -> Message: ...

    async def get_map(self) -> Message: ...


TransportFactory = Callable[
    [ServerAddress, str, int, TransportListener],
    Transport,
]
"""Build a transport for ``(address, player_id, player_token, listener)``."""
