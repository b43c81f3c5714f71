"""Per-event spawn/despawn timers and the human-readable text built from them."""

from __future__ import annotations

import time
from dataclasses import dataclass

from rustlink.session.events import WorldEventKind

# Midpoint of the observed range where the game varies it.
RESPAWN_SECONDS: dict[WorldEventKind, float] = {
    WorldEventKind.CARGO: 1.75 * 60 * 60,
    WorldEventKind.HELI: 2.5 * 60 * 60,
    WorldEventKind.BRADLEY: 30 * 60,
    WorldEventKind.OILRIG: 15 * 60,
}

ICONS: dict[WorldEventKind, str] = {
    WorldEventKind.CARGO: "\U0001f6a2",
    WorldEventKind.HELI: "\U0001f681",
    WorldEventKind.BRADLEY: "\U0001f4a5",
    WorldEventKind.OILRIG: "\U0001f6e2\ufe0f",
}

LABELS: dict[WorldEventKind, str] = {
    WorldEventKind.CARGO: "Cargo",
    WorldEventKind.HELI: "Heli",
    WorldEventKind.BRADLEY: "Bradley",
    WorldEventKind.OILRIG: "Oil Rig",
}

SPAWN_MESSAGES: dict[WorldEventKind, str] = {
    WorldEventKind.CARGO: "\U0001f6a2 Cargo Ship has spawned!",
    WorldEventKind.HELI: "\U0001f681 Patrol Helicopter is incoming!",
    WorldEventKind.BRADLEY: "\U0001f4a5 Bradley APC is active at Launch Site!",
    WorldEventKind.OILRIG: "\U0001f6e2\ufe0f Oil Rig is locked! Scientists called.",
}

DESPAWN_MESSAGES: dict[WorldEventKind, str] = {
    WorldEventKind.CARGO: "\U0001f6a2 Cargo Ship has left the map.",
    WorldEventKind.HELI: "\U0001f681 Patrol Helicopter has been destroyed or left.",
    WorldEventKind.BRADLEY: "\U0001f4a5 Bradley APC has been destroyed. Respawns in ~30 min.",
    WorldEventKind.OILRIG: "\U0001f6e2\ufe0f Oil Rig crate has been looted or timed out.",
}

MAY_HAVE_RESPAWNED = "may have already respawned"


@dataclass
class EventTimer:
    """Presence tracker for one world event kind.

    Never observed: ``active`` is False and ``despawned_at`` is None.
    """

    active: bool = False
    spawned_at: float | None = None
    despawned_at: float | None = None

    def seed(self, present: bool, now: float) -> None:
        """Baseline without announcing: adopt whatever is on the map."""
        self.active = present
        self.spawned_at = now if present else None

    def observe(self, present: bool, now: float) -> str | None:
        """Apply one observation; returns ``"spawn"``, ``"despawn"`` or None."""
        if present and not self.active:
            self.active = True
            self.spawned_at = now
            return "spawn"
        if not present and self.active:
            self.active = False
            self.despawned_at = now
            return "despawn"
        return None


def respawn_remaining(
    kind: WorldEventKind, timer: EventTimer, now: float | None = None
) -> float | None:
    """Seconds until the next expected spawn, or None if there is no despawn to go by.

    The result may be zero or negative once the window has passed.
    """
    if timer.active or timer.despawned_at is None:
        return None
    now = time.time() if now is None else now
    return RESPAWN_SECONDS[kind] - (now - timer.despawned_at)


def format_clock(timestamp: float) -> str:
    """12-hour local time, e.g. ``"3:07pm"``."""
    t = time.localtime(timestamp)
    hours = t.tm_hour % 12 or 12
    suffix = "pm" if t.tm_hour >= 12 else "am"
    return f"{hours}:{t.tm_min:02d}{suffix}"


def format_duration(seconds: float) -> str:
    """``"1h 45min"``, ``"2h"`` or ``"20min"``."""
    if seconds <= 0:
        return "0min"
    total_minutes = round(seconds / 60)
    hours, mins = divmod(total_minutes, 60)
    if hours and mins:
        return f"{hours}h {mins}min"
    if hours:
        return f"{hours}h"
    return f"{mins}min"


def eta_text(kind: WorldEventKind, timer: EventTimer, now: float | None = None) -> str | None:
    remaining = respawn_remaining(kind, timer, now)
    if remaining is None:
        return None
    if remaining <= 0:
        return MAY_HAVE_RESPAWNED
    return f"~{format_duration(remaining)}"


def timer_line(kind: WorldEventKind, timer: EventTimer, now: float | None = None) -> str:
    """One status line for a summary listing."""
    icon, label = ICONS[kind], LABELS[kind]
    if timer.active:
        since = f" (spawned at {format_clock(timer.spawned_at)})" if timer.spawned_at else ""
        return f"{icon} {label}: **ACTIVE**{since}"

    eta = eta_text(kind, timer, now)
    if eta is None:
        return f"{icon} {label}: unknown (bridge wasn't running at last despawn)"
    down_at = format_clock(timer.despawned_at)  # type: ignore[arg-type]
    if eta == MAY_HAVE_RESPAWNED:
        return f"{icon} {label}: down at {down_at} - {MAY_HAVE_RESPAWNED}"
    return f"{icon} {label}: down at {down_at} - next in {eta}"


def timer_message(kind: WorldEventKind, timer: EventTimer, now: float | None = None) -> str:
    """A single-event status sentence suitable for team chat."""
    icon, label = ICONS[kind], LABELS[kind]
    if timer.active:
        since = f" (spawned at {format_clock(timer.spawned_at)})" if timer.spawned_at else ""
        return f"{icon} {label} is currently ACTIVE on the map!{since}"

    eta = eta_text(kind, timer, now)
    if eta is None:
        return f"{icon} {label}: unknown - not seen despawning yet"
    down_at = format_clock(timer.despawned_at)  # type: ignore[arg-type]
    if eta == MAY_HAVE_RESPAWNED:
        return f"{icon} {label} despawned at {down_at} - {MAY_HAVE_RESPAWNED}"
    return f"{icon} {label} despawned at {down_at} - next spawn in {eta}"
