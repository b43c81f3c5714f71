"""Map marker types, presence tests and grid references."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from typing import Any

from rustlink.session.events import WorldEventKind

GRID_CELL_SIZE = 150
UNKNOWN_GRID = "??"


class MarkerType(enum.IntEnum):
    """Marker types as the companion protocol numbers them."""

    PLAYER = 1
    EXPLOSION = 2  # Bradley APC wreck
    VENDING_MACHINE = 3
    CH47 = 4  # Chinook at an oil rig
    CARGO_SHIP = 5
    CRATE = 6  # Locked crate on an oil rig
    GENERIC_RADIUS = 7
    PATROL_HELICOPTER = 8


_KIND_MARKERS: dict[WorldEventKind, frozenset[int]] = {
    WorldEventKind.CARGO: frozenset({MarkerType.CARGO_SHIP}),
    WorldEventKind.HELI: frozenset({MarkerType.PATROL_HELICOPTER}),
    WorldEventKind.BRADLEY: frozenset({MarkerType.EXPLOSION}),
    # Either the Chinook or the locked crate means the rig event is running.
    WorldEventKind.OILRIG: frozenset({MarkerType.CRATE, MarkerType.CH47}),
}


def marker_type(marker: Mapping[str, Any]) -> int | None:
    try:
        return int(marker.get("type"))
    except (TypeError, ValueError):
        return None


def is_oilrig_marker(marker: Mapping[str, Any]) -> bool:
    return marker_type(marker) in _KIND_MARKERS[WorldEventKind.OILRIG]


def presence(markers: Iterable[Mapping[str, Any]]) -> dict[WorldEventKind, bool]:
    """Which tracked world events have at least one marker on the map."""
    seen = {marker_type(m) for m in markers}
    return {kind: bool(types & seen) for kind, types in _KIND_MARKERS.items()}


def column_label(index: int) -> str:
    """Spreadsheet-style column letters: 0 → A, 25 → Z, 26 → AA."""
    label = ""
    index = max(index, 0)
    while True:
        index, rem = divmod(index, 26)
        label = chr(ord("A") + rem) + label
        if index == 0:
            return label
        index -= 1


def coord_to_grid(x: float, y: float, map_size: float) -> str:
    """Convert world coordinates to a grid reference like ``"D5"``.

    ``y`` grows upwards from the bottom edge; rows are numbered from the top.
    """
    if not map_size or map_size <= 0:
        return UNKNOWN_GRID
    col = int(x // GRID_CELL_SIZE)
    row = max(int((map_size - y) // GRID_CELL_SIZE), 0)
    return f"{column_label(col)}{row + 1}"
