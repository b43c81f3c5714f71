"""World event poller: turns periodic map-marker snapshots into spawn/despawn events.

Every ``interval`` seconds the poller asks the session for the current map
markers and compares the presence of each tracked event kind with what it saw
last time. The first successful snapshot only seeds the timers: whatever is
already on the map when polling starts is not announced as new.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from rustlink.session.connection import Session
from rustlink.session.errors import CommandError
from rustlink.session.events import Despawn, Spawn, WorldEventKind
from rustlink.world.markers import (
    MarkerType,
    coord_to_grid,
    is_oilrig_marker,
    marker_type,
    presence,
)
from rustlink.world.timers import (
    DESPAWN_MESSAGES,
    SPAWN_MESSAGES,
    EventTimer,
    timer_line,
    timer_message,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL = 10.0
FIRST_TICK_DELAY = 2.0
MAP_SIZE_DELAY = 3.0

_OILRIG_ICON = "\U0001f6e2\ufe0f"


def _blank_timers() -> dict[WorldEventKind, EventTimer]:
    return {kind: EventTimer() for kind in WorldEventKind}


@dataclass
class PollerState:
    """Everything the poller remembers for one session between ticks."""

    timers: dict[WorldEventKind, EventTimer] = field(default_factory=_blank_timers)
    map_size: float = 0.0
    initialized: bool = False


class WorldEventPoller:
    """Polls one session's map markers and raises Spawn/Despawn events."""

    def __init__(
        self,
        session: Session,
        interval: float = POLL_INTERVAL,
        first_tick_delay: float = FIRST_TICK_DELAY,
        map_size_delay: float = MAP_SIZE_DELAY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session = session
        self._interval = interval
        self._first_tick_delay = first_tick_delay
        self._map_size_delay = map_size_delay
        self._clock = clock
        self._state: PollerState | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> PollerState | None:
        return self._state

    @property
    def timers(self) -> dict[WorldEventKind, EventTimer] | None:
        return self._state.timers if self._state else None

    def start(self) -> None:
        """Begin polling with blank timers; restarts if already running."""
        if self._state is not None:
            self.stop()
        state = PollerState()
        self._state = state
        self._tasks = [
            asyncio.create_task(self._run(state)),
            asyncio.create_task(self._fetch_map_size(state)),
        ]
        logger.info(
            "World event poller started for %s (interval %.1fs)",
            self._session.address,
            self._interval,
        )

    def stop(self) -> None:
        """Cancel scheduled work and discard all timer state silently."""
        if self._state is None:
            return
        self._state = None
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        logger.info("World event poller stopped for %s", self._session.address)

    async def tick(self) -> None:
        """Run one poll immediately."""
        if self._state is not None:
            await self._tick(self._state)

    # ------------------------------------------------------------------
    # Status text
    # ------------------------------------------------------------------

    def summary(self) -> str:
        if self._state is None:
            return (
                "No world event poller active for this server. "
                "The bridge may still be connecting."
            )
        now = self._clock()
        return "\n".join(
            timer_line(kind, timer, now) for kind, timer in self._state.timers.items()
        )

    def timer_message(self, kind: WorldEventKind) -> str:
        if self._state is None:
            return "No world event poller active for this server."
        return timer_message(kind, self._state.timers[kind], self._clock())

    async def live_crate_status(self) -> str:
        """Ask the server right now which oil rig markers are on the map."""
        if not self._session.is_connected():
            return f"{_OILRIG_ICON} Oil Rig: not connected to server."
        try:
            markers = await self._session.get_map_markers()
        except CommandError as e:
            logger.debug("Live crate query failed (%s): %s", self._session.address, e)
            return f"{_OILRIG_ICON} Oil Rig: unable to query map right now."

        rig_markers = [m for m in markers if is_oilrig_marker(m)]
        if not rig_markers:
            return f"{_OILRIG_ICON} No oil rig events active on the map."

        map_size = self._state.map_size if self._state else 0.0
        lines = []
        for m in rig_markers:
            grid = coord_to_grid(_as_float(m.get("x")), _as_float(m.get("y")), map_size)
            if marker_type(m) == MarkerType.CH47:
                lines.append(f"\U0001f681 Oil Rig Chinook active @ {grid}")
            else:
                lines.append(f"{_OILRIG_ICON} Oil Rig Locked Crate active @ {grid}")
        return " | ".join(lines)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(self, state: PollerState) -> None:
        loop = asyncio.get_running_loop()
        await asyncio.sleep(self._first_tick_delay)
        next_at = loop.time()
        while self._state is state:
            try:
                await self._tick(state)
            except Exception:
                logger.exception(
                    "Error processing map markers (%s)", self._session.address
                )
            # Fixed-rate schedule; a tick that overran starts the next one now.
            next_at = max(next_at + self._interval, loop.time())
            await asyncio.sleep(next_at - loop.time())

    async def _tick(self, state: PollerState) -> None:
        session = self._session
        if not session.is_connected():
            logger.debug("Skipping poll, not connected (%s)", session.address)
            return

        try:
            markers = await session.get_map_markers()
        except CommandError as e:
            logger.warning("Map marker query failed (%s): %s", session.address, e)
            return

        if self._state is not state:
            return

        present = presence(markers)
        now = self._clock()

        if not state.initialized:
            for kind, timer in state.timers.items():
                timer.seed(present[kind], now)
            state.initialized = True
            logger.info(
                "Baseline set (%s): %s",
                session.address,
                " ".join(f"{k.value}={present[k]}" for k in WorldEventKind),
            )
            return

        announcements = []
        for kind, timer in state.timers.items():
            change = timer.observe(present[kind], now)
            if change == "spawn":
                logger.info("Spawn detected: %s (%s)", kind.value, session.address)
                session.publish(Spawn(server=str(session.address), event=kind, timestamp=now))
                announcements.append(SPAWN_MESSAGES[kind])
            elif change == "despawn":
                logger.info("Despawn detected: %s (%s)", kind.value, session.address)
                session.publish(Despawn(server=str(session.address), event=kind, timestamp=now))
                announcements.append(DESPAWN_MESSAGES[kind])

        for text in announcements:
            if self._state is not state:
                break
            await session.notify_team(text)

    async def _fetch_map_size(self, state: PollerState) -> None:
        await asyncio.sleep(self._map_size_delay)
        while self._state is state and not state.map_size:
            if self._session.is_connected():
                try:
                    world = await self._session.get_map()
                except CommandError as e:
                    logger.debug("Map size query failed (%s): %s", self._session.address, e)
                else:
                    width = _as_float(world.get("width"))
                    if width > 0 and self._state is state:
                        state.map_size = width
                        logger.debug("Map size for %s: %.0f", self._session.address, width)
                        return
            await asyncio.sleep(self._interval)


def _as_float(value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
