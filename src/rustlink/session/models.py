"""Session data models: server addresses, reconnect policy and lifecycle state."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class SessionState(enum.Enum):
    """Lifecycle state of a server session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class EntityType(enum.IntEnum):
    """Smart device types, numbered as the companion protocol numbers them."""

    SWITCH = 1
    ALARM = 2
    STORAGE_MONITOR = 3

    @classmethod
    def parse(cls, value: int | str | EntityType) -> EntityType:
        """Accept a protocol number, an enum member or a name like ``"alarm"``."""
        if isinstance(value, EntityType):
            return value
        if isinstance(value, str) and not value.isdigit():
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            if key == "STORAGE":
                key = "STORAGE_MONITOR"
            try:
                return cls[key]
            except KeyError:
                raise ValueError(f"Unknown entity type: {value!r}") from None
        return cls(int(value))


@dataclass(frozen=True, order=True)
class ServerAddress:
    """Remote game server endpoint; unique key of a session."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, text: str) -> ServerAddress:
        """Parse ``"host:port"``."""
        host, sep, port = text.strip().rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Expected host:port, got {text!r}")
        return cls(host=host, port=int(port))


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff parameters for automatic reconnection."""

    initial_delay_ms: float = 5000
    multiplier: float = 1.5
    max_delay_ms: float = 60000
    max_retries: int = 10  # <= 0 disables the ceiling

    def delay_ms(self, attempt: int) -> float:
        """Backoff delay for the given zero-based attempt number."""
        delay = self.initial_delay_ms * (self.multiplier**attempt)
        return min(delay, self.max_delay_ms)

    def exhausted(self, attempt: int) -> bool:
        return self.max_retries > 0 and attempt >= self.max_retries


@dataclass(frozen=True)
class SessionConfig:
    """Everything needed to open a session to one server."""

    address: ServerAddress
    player_id: str
    player_token: int
    routing_target: str | None = None
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    request_timeout: float = 10.0
    connect_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.player_id or not self.player_token:
            raise ValueError("Session config requires player_id and player_token")
        if not self.address.host or not self.address.port:
            raise ValueError("Session config requires a server host and port")
