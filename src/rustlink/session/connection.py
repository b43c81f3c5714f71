"""Session: one managed companion-protocol connection to one game server.

A session owns at most one transport handle at a time, drives the
connect → connected → reconnect state machine with exponential backoff, turns
broadcasts into normalized events and exposes request passthroughs for the
command layer.

All callbacks, timers and tasks run on the event loop that called
``connect()``, so session state is only ever touched from one place at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from rustlink.session.classifier import classify
from rustlink.session.errors import CommandError, NotConnectedError, RequestTimeout
from rustlink.session.events import (
    Connected,
    Disconnected,
    EventHub,
    ReconnectFailed,
    Reconnecting,
    SessionError,
    SessionEvent,
    TeamMessage,
)
from rustlink.session.models import (
    EntityType,
    ServerAddress,
    SessionConfig,
    SessionState,
)
from rustlink.storage.base import EventLogSink
from rustlink.transport.base import Message, Transport, TransportFactory

logger = logging.getLogger(__name__)


class _HandleListener:
    """Routes one transport handle's callbacks back to its session."""

    def __init__(self, session: Session, generation: int) -> None:
        self._session = session
        self._generation = generation

    def on_connected(self) -> None:
        self._session._dispatch(self._generation, self._session._on_connected)

    def on_disconnected(self) -> None:
        self._session._dispatch(self._generation, self._session._on_disconnected)

    def on_error(self, error: BaseException) -> None:
        self._session._dispatch(self._generation, self._session._on_error, error)

    def on_message(self, message: Message) -> None:
        self._session._dispatch(self._generation, self._session._on_message, message)


class Session:
    """Manages the connection lifecycle and event stream for one server."""

    def __init__(
        self,
        config: SessionConfig,
        transport_factory: TransportFactory,
        event_log: EventLogSink | None = None,
    ) -> None:
        self._config = config
        self._factory = transport_factory
        self._event_log = event_log

        self._state = SessionState.IDLE
        self._transport: Transport | None = None
        self._generation = 0
        self._handshake: asyncio.Task[None] | None = None
        self._intentional_close = False
        self._reconnect_attempt = 0
        self._reconnect_delay_ms = 0.0
        self._reconnect_timer: asyncio.TimerHandle | None = None

        self._entity_types: dict[int, EntityType] = {}
        self._tasks: set[asyncio.Future[Any]] = set()
        self.events = EventHub(spawn=self._spawn)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def address(self) -> ServerAddress:
        return self._config.address

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def player_id(self) -> str:
        return self._config.player_id

    @property
    def routing_target(self) -> str | None:
        return self._config.routing_target

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def reconnect_attempt(self) -> int:
        return self._reconnect_attempt

    @property
    def reconnect_delay_ms(self) -> float:
        return self._reconnect_delay_ms

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def __repr__(self) -> str:
        return f"<Session {self.address} {self._state.value}>"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> asyncio.Task[None] | None:
        """Start a fresh connection attempt.

        Cancels any pending reconnect, replaces the current transport handle
        and returns the handshake task (None when the transport could not even
        be constructed, in which case a reconnect is already scheduled).
        """
        loop = asyncio.get_running_loop()
        self._clear_reconnect_timer()
        self._cancel_handshake()
        self._intentional_close = False

        previous = self._transport
        self._transport = None
        self._generation += 1
        generation = self._generation
        if previous is not None:
            self._spawn(self._close_quietly(previous))

        self._state = SessionState.CONNECTING
        logger.info("Connecting to %s (player %s)", self.address, self.player_id)

        listener = _HandleListener(self, generation)
        try:
            transport = self._factory(
                self.address,
                self._config.player_id,
                self._config.player_token,
                listener,
            )
        except Exception as e:
            logger.error("Error creating transport for %s: %s", self.address, e)
            self._emit(SessionError(server=str(self.address), message=str(e)))
            self._state = SessionState.DISCONNECTED
            self._schedule_reconnect()
            return None

        self._transport = transport
        self._handshake = loop.create_task(self._run_handshake(transport, generation))
        return self._handshake

    async def disconnect(self) -> None:
        """Close the connection on purpose; no automatic reconnect follows."""
        logger.info("Intentionally disconnecting from %s", self.address)
        self._intentional_close = True
        self._clear_reconnect_timer()
        self._cancel_handshake()
        self._state = SessionState.IDLE

        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.disconnect()
        except Exception as e:
            logger.warning("Error during disconnect (%s): %s", self.address, e)

    def register_entity_type(self, entity_id: int, entity_type: EntityType | int | str) -> None:
        """Seed the classifier cache; safe before the first connect."""
        self._entity_types[int(entity_id)] = EntityType.parse(entity_type)

    def entity_type(self, entity_id: int) -> EntityType | None:
        return self._entity_types.get(int(entity_id))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_team_message(self, text: str) -> None:
        await self._request("send_team_message", lambda t: t.send_team_message(text))

    async def set_entity_value(self, entity_id: int, value: bool) -> None:
        await self._request(
            "set_entity_value", lambda t: t.set_entity_value(int(entity_id), bool(value))
        )

    async def get_entity_info(self, entity_id: int) -> Mapping[str, Any]:
        """Query one entity; a typed answer refines the classifier cache."""
        response = await self._request(
            "get_entity_info", lambda t: t.get_entity_info(int(entity_id))
        )
        info = response.get("entityInfo")
        if not isinstance(info, Mapping):
            raise CommandError(
                "Unexpected response format for entity info",
                server=str(self.address),
                request="get_entity_info",
            )
        entity_type = info.get("type")
        if entity_type is not None:
            try:
                self.register_entity_type(entity_id, entity_type)
            except ValueError:
                logger.debug("Entity %s reported unknown type %r", entity_id, entity_type)
        return info

    async def get_map_markers(self) -> list[Mapping[str, Any]]:
        response = await self._request("get_map_markers", lambda t: t.get_map_markers())
        markers = response.get("mapMarkers")
        if not isinstance(markers, Mapping):
            raise CommandError(
                "No map markers in response",
                server=str(self.address),
                request="get_map_markers",
            )
        return [m for m in markers.get("markers") or () if isinstance(m, Mapping)]

    async def get_map(self) -> Mapping[str, Any]:
        response = await self._request("get_map", lambda t: t.get_map())
        world = response.get("map")
        if not isinstance(world, Mapping):
            raise CommandError(
                "No map in response", server=str(self.address), request="get_map"
            )
        return world

    async def notify_team(self, text: str) -> bool:
        """Best-effort team chat message; failures are logged, never raised."""
        if not self.is_connected():
            logger.warning(
                "Not connected to %s, skipping team message: %r", self.address, text
            )
            return False
        try:
            await self.send_team_message(text)
        except CommandError as e:
            logger.warning("Team message to %s failed: %s", self.address, e)
            return False
        logger.debug("Team message sent (%s): %s", self.address, text)
        return True

    def publish(self, event: SessionEvent) -> None:
        """Log and fan out an event raised on behalf of this session."""
        self._emit(event)

    async def drain(self) -> None:
        """Wait for outstanding log writes and async subscribers.

        A subscriber that drains its own session (directly or by removing it
        from the registry) is not waited on.
        """
        current = asyncio.current_task()
        while True:
            pending = [task for task in self._tasks if task is not current]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _dispatch(self, generation: int, handler: Callable[..., None], *args: Any) -> None:
        if generation != self._generation:
            logger.debug(
                "Ignoring %s from superseded transport (%s)",
                handler.__name__,
                self.address,
            )
            return
        try:
            handler(*args)
        except Exception:
            logger.exception(
                "Unhandled error in %s handler (%s)", handler.__name__, self.address
            )

    def _on_connected(self) -> None:
        logger.info("Connected to %s", self.address)
        self._state = SessionState.CONNECTED
        self._reconnect_attempt = 0
        self._reconnect_delay_ms = 0.0
        self._clear_reconnect_timer()
        self._emit(Connected(server=str(self.address)))

    def _on_disconnected(self) -> None:
        intentional = self._intentional_close
        logger.info(
            "Disconnected from %s (intentional: %s)", self.address, intentional
        )
        # Later callbacks from this handle are stale.
        self._generation += 1
        self._transport = None
        self._emit(Disconnected(server=str(self.address), intentional=intentional))

        if intentional:
            self._state = SessionState.IDLE
            return
        self._state = SessionState.DISCONNECTED
        self._schedule_reconnect()

    def _on_error(self, error: BaseException) -> None:
        # A disconnect notification follows transport errors and drives the
        # reconnect; nothing to schedule here.
        logger.error("Transport error on %s: %s", self.address, error)
        self._emit(SessionError(server=str(self.address), message=str(error)))

    def _on_message(self, message: Message) -> None:
        if not isinstance(message, Mapping):
            return
        broadcast = message.get("broadcast")
        if not isinstance(broadcast, Mapping):
            return

        team = broadcast.get("teamMessage")
        if isinstance(team, Mapping) and isinstance(team.get("message"), Mapping):
            self._handle_team_message(team["message"])

        changed = broadcast.get("entityChanged")
        if isinstance(changed, Mapping):
            self._handle_entity_changed(changed)

    def _handle_team_message(self, msg: Mapping[str, Any]) -> None:
        try:
            sent_at = int(msg.get("time") or 0)
        except (TypeError, ValueError):
            sent_at = 0
        self._emit(
            TeamMessage(
                server=str(self.address),
                sender_id=str(msg.get("steamId", "")),
                sender_name=str(msg.get("name") or ""),
                text=str(msg.get("message") or ""),
                time=sent_at,
            )
        )

    def _handle_entity_changed(self, changed: Mapping[str, Any]) -> None:
        try:
            entity_id = int(changed.get("entityId"))
        except (TypeError, ValueError):
            logger.debug("Entity change without a usable id on %s", self.address)
            return
        events = classify(
            str(self.address),
            entity_id,
            changed.get("payload"),
            self._entity_types.get(entity_id),
        )
        for event in events:
            self._emit(event)

    # ------------------------------------------------------------------
    # Handshake and reconnection
    # ------------------------------------------------------------------

    async def _run_handshake(self, transport: Transport, generation: int) -> None:
        try:
            await asyncio.wait_for(transport.connect(), self._config.connect_timeout)
        except Exception as e:
            if generation != self._generation or self._intentional_close:
                logger.debug("Discarding stale handshake failure (%s): %s", self.address, e)
                return
            reason = str(e) or type(e).__name__
            logger.warning("Handshake with %s failed: %s", self.address, reason)
            self._generation += 1
            self._transport = None
            self._spawn(self._close_quietly(transport))
            self._emit(SessionError(server=str(self.address), message=reason))
            self._state = SessionState.DISCONNECTED
            self._schedule_reconnect()
        finally:
            if self._handshake is asyncio.current_task():
                self._handshake = None

    def _schedule_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            return

        policy = self._config.reconnect
        if policy.exhausted(self._reconnect_attempt):
            logger.error(
                "Reconnect failed: max retries (%d) exceeded for %s",
                policy.max_retries,
                self.address,
            )
            self._state = SessionState.FAILED
            self._emit(
                ReconnectFailed(
                    server=str(self.address), attempts=self._reconnect_attempt
                )
            )
            return

        delay_ms = policy.delay_ms(self._reconnect_attempt)
        self._reconnect_attempt += 1
        self._reconnect_delay_ms = delay_ms
        self._state = SessionState.RECONNECTING
        logger.info(
            "Reconnecting to %s (attempt %d, delay: %.0fms)",
            self.address,
            self._reconnect_attempt,
            delay_ms,
        )
        self._emit(
            Reconnecting(
                server=str(self.address),
                attempt=self._reconnect_attempt,
                delay_ms=delay_ms,
            )
        )
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(delay_ms / 1000, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        if self._intentional_close or self._state is not SessionState.RECONNECTING:
            logger.debug("Skipping stale reconnect timer for %s", self.address)
            return
        try:
            self.connect()
        except Exception:
            logger.exception("Reconnect attempt for %s failed", self.address)

    def _clear_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _cancel_handshake(self) -> None:
        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()
        self._handshake = None

    async def _close_quietly(self, transport: Transport) -> None:
        try:
            await transport.disconnect()
        except Exception as e:
            logger.debug("Ignoring error closing old transport (%s): %s", self.address, e)

    # ------------------------------------------------------------------
    # Requests, emission and background work
    # ------------------------------------------------------------------

    async def _request(
        self, name: str, call: Callable[[Transport], Awaitable[Message]]
    ) -> Mapping[str, Any]:
        transport = self._transport
        if transport is None or self._state is not SessionState.CONNECTED:
            raise NotConnectedError(
                f"Not connected to {self.address}", server=str(self.address), request=name
            )
        try:
            response = await asyncio.wait_for(call(transport), self._config.request_timeout)
        except (asyncio.TimeoutError, TimeoutError):
            raise RequestTimeout(
                f"{name} timed out after {self._config.request_timeout}s",
                server=str(self.address),
                request=name,
            ) from None
        except CommandError:
            raise
        except Exception as e:
            raise CommandError(
                f"{name} failed: {e}", server=str(self.address), request=name
            ) from e

        if response is None:
            response = {}
        if not isinstance(response, Mapping):
            raise CommandError(
                f"Unexpected response format for {name}",
                server=str(self.address),
                request=name,
            )
        error = response.get("error")
        if error:
            raise CommandError(
                _error_text(error), server=str(self.address), request=name
            )
        return response

    def _emit(self, event: SessionEvent) -> None:
        if self._event_log is not None:
            self._spawn(self._record(event))
        self.events.emit(event)

    async def _record(self, event: SessionEvent) -> None:
        try:
            await self._event_log.record(  # type: ignore[union-attr]
                self.player_id, event.kind, event.to_payload()
            )
        except Exception as e:
            logger.warning("Failed to write %s event log for %s: %s", event.kind, self.address, e)

    def _spawn(self, awaitable: Awaitable[Any]) -> asyncio.Future[Any]:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed for %s", self.address, exc_info=exc
            )


def _error_text(error: Any) -> str:
    if isinstance(error, Mapping):
        return str(error.get("error") or error)
    return str(error)
