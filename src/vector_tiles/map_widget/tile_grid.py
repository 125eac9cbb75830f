"""Tile grid that decides which tiles a view needs.

The grid diffs the tiles covering the current view against those covering the
previous one and reports the difference through Qt signals.  Layers attached
to the grid create tiles on ``tile_requested`` and unload them on
``tile_evicted``.  ``zoom_changed`` is emitted before either so layers can
cancel work that belongs to the previous zoom level.
"""

from __future__ import annotations

import math
from typing import Dict, List

from PySide6.QtCore import QObject, Signal

from ..tile_manager import TileCoords
from .viewport import ViewState


def collect_tiles(view_state: ViewState) -> List[TileCoords]:
    """Return the tiles intersecting the viewport, nearest to the centre first."""

    start_tile_x = math.floor(view_state.view_top_left_x / view_state.scaled_tile_size)
    start_tile_y = math.floor(view_state.view_top_left_y / view_state.scaled_tile_size)
    end_tile_x = math.ceil(
        (view_state.view_top_left_x + view_state.width) / view_state.scaled_tile_size
    )
    end_tile_y = math.ceil(
        (view_state.view_top_left_y + view_state.height) / view_state.scaled_tile_size
    )

    distances: Dict[TileCoords, float] = {}
    for tile_y in range(start_tile_y, end_tile_y):
        if tile_y < 0 or tile_y >= view_state.tiles_across:
            continue
        for tile_x in range(start_tile_x, end_tile_x):
            wrapped_x = tile_x % view_state.tiles_across
            coords = TileCoords(view_state.fetch_zoom, wrapped_x, tile_y)

            tile_origin_x = tile_x * view_state.scaled_tile_size - view_state.view_top_left_x
            tile_origin_y = tile_y * view_state.scaled_tile_size - view_state.view_top_left_y
            tile_center_x = tile_origin_x + view_state.scaled_tile_size / 2.0
            tile_center_y = tile_origin_y + view_state.scaled_tile_size / 2.0
            dist_sq = (
                (tile_center_x - view_state.width / 2.0) ** 2
                + (tile_center_y - view_state.height / 2.0) ** 2
            )
            # At low zoom the same wrapped tile can cover the view twice.
            if coords not in distances or dist_sq < distances[coords]:
                distances[coords] = dist_sq

    return sorted(distances, key=lambda coords: (distances[coords], coords))


class TileGrid(QObject):
    """Track the active tile set of a view and announce changes to it."""

    tile_requested = Signal(int, int, int)
    tile_evicted = Signal(int, int, int)
    zoom_changed = Signal(int)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._active: Dict[TileCoords, None] = {}
        self._zoom: int | None = None

    # ------------------------------------------------------------------
    @property
    def zoom(self) -> int | None:
        """Tile zoom level of the current view."""

        return self._zoom

    # ------------------------------------------------------------------
    def active_tiles(self) -> List[TileCoords]:
        return list(self._active)

    # ------------------------------------------------------------------
    def update_view(self, view_state: ViewState) -> None:
        """Recompute the wanted tiles and emit the difference to the last view."""

        wanted = collect_tiles(view_state)
        wanted_set = set(wanted)

        if self._zoom != view_state.fetch_zoom:
            self._zoom = view_state.fetch_zoom
            self.zoom_changed.emit(view_state.fetch_zoom)

        for coords in list(self._active):
            if coords not in wanted_set:
                del self._active[coords]
                self.tile_evicted.emit(*coords)

        for coords in wanted:
            if coords not in self._active:
                self._active[coords] = None
                self.tile_requested.emit(*coords)

    # ------------------------------------------------------------------
    def clear(self) -> None:
        """Evict every active tile."""

        for coords in list(self._active):
            del self._active[coords]
            self.tile_evicted.emit(*coords)


__all__ = ["TileGrid", "collect_tiles"]
