"""Per-tile bounding box index.

Each tile packs the boxes of its features into a :class:`shapely.STRtree`
once, after the tile has been materialized.  Packing the whole batch at once
is much cheaper than growing a tree one feature at a time.

An STRtree cannot change after construction, so later visibility toggles work
on top of it: removing an entry that lives in the packed tree only clears its
"active" flag, re-inserting it sets the flag again, and entries that were
never packed go to a small overflow list that is scanned linearly until it is
large enough to justify repacking.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np
from shapely import STRtree
from shapely.geometry import LineString, Point, box
from shapely.geometry.base import BaseGeometry

from .config import INDEX_REBUILD_THRESHOLD


@dataclass(eq=False)
class IndexEntry:
    """Bounding box of one feature, in source ``(lon, lat)`` order.

    Entries compare by identity: the same feature id may legitimately appear
    in two tiles and each tile owns its own entry.
    """

    min_x: float
    min_y: float
    max_x: float
    max_y: float
    id: str

    def intersects(self, min_x: float, min_y: float, max_x: float, max_y: float) -> bool:
        return not (
            self.max_x < min_x or self.min_x > max_x or self.max_y < min_y or self.min_y > max_y
        )


def _envelope(min_x: float, min_y: float, max_x: float, max_y: float) -> BaseGeometry:
    """Build a geometry whose envelope is the given box, degenerate boxes included."""

    if min_x == max_x and min_y == max_y:
        return Point(min_x, min_y)
    if min_x == max_x or min_y == max_y:
        return LineString([(min_x, min_y), (max_x, max_y)])
    return box(min_x, min_y, max_x, max_y)


class TileIndex:
    """Bulk-loaded spatial index supporting incremental insert and remove."""

    def __init__(self, *, rebuild_threshold: int = INDEX_REBUILD_THRESHOLD) -> None:
        self._rebuild_threshold = max(1, int(rebuild_threshold))
        self._tree: STRtree | None = None
        self._packed: list[IndexEntry] = []
        self._positions: dict[IndexEntry, int] = {}
        self._active = np.zeros(0, dtype=bool)
        self._overflow: dict[IndexEntry, None] = {}

    # ------------------------------------------------------------------
    def load(self, entries: Iterable[IndexEntry]) -> "TileIndex":
        """Pack ``entries`` together with any live entries into a new tree."""

        self._pack([*self.entries(), *entries])
        return self

    # ------------------------------------------------------------------
    def insert(self, entry: IndexEntry) -> None:
        """Make ``entry`` searchable; inserting a live entry is a no-op."""

        position = self._positions.get(entry)
        if position is not None:
            self._active[position] = True
            return

        self._overflow[entry] = None
        if len(self._overflow) >= self._rebuild_threshold:
            self._pack(self.entries())

    # ------------------------------------------------------------------
    def remove(self, entry: IndexEntry) -> None:
        """Stop returning ``entry`` from searches; unknown entries are ignored."""

        position = self._positions.get(entry)
        if position is not None:
            self._active[position] = False
        else:
            self._overflow.pop(entry, None)

    # ------------------------------------------------------------------
    def search(self, min_x: float, min_y: float, max_x: float, max_y: float) -> list[IndexEntry]:
        """Return live entries whose box intersects the query box (edges inclusive)."""

        if min_x > max_x:
            min_x, max_x = max_x, min_x
        if min_y > max_y:
            min_y, max_y = max_y, min_y

        results: list[IndexEntry] = []
        if self._tree is not None and self._active.any():
            hits = self._tree.query(_envelope(min_x, min_y, max_x, max_y))
            hits = np.sort(hits[self._active[hits]])
            results.extend(self._packed[int(position)] for position in hits)

        results.extend(
            entry for entry in self._overflow if entry.intersects(min_x, min_y, max_x, max_y)
        )
        return results

    # ------------------------------------------------------------------
    def entries(self) -> list[IndexEntry]:
        """Return every live entry."""

        packed = [self._packed[int(position)] for position in np.flatnonzero(self._active)]
        return packed + list(self._overflow)

    # ------------------------------------------------------------------
    def clear(self) -> None:
        self._tree = None
        self._packed = []
        self._positions = {}
        self._active = np.zeros(0, dtype=bool)
        self._overflow = {}

    # ------------------------------------------------------------------
    def _pack(self, entries: list[IndexEntry]) -> None:
        unique = list(dict.fromkeys(entries))
        self._packed = unique
        self._positions = {entry: position for position, entry in enumerate(unique)}
        self._active = np.ones(len(unique), dtype=bool)
        self._overflow = {}
        if unique:
            self._tree = STRtree(
                [_envelope(e.min_x, e.min_y, e.max_x, e.max_y) for e in unique]
            )
        else:
            self._tree = None

    def __contains__(self, entry: object) -> bool:
        position = self._positions.get(entry)  # type: ignore[arg-type]
        if position is not None:
            return bool(self._active[position])
        return entry in self._overflow

    def __len__(self) -> int:
        return int(self._active.sum()) + len(self._overflow)


__all__ = ["IndexEntry", "TileIndex"]
