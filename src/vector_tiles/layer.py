"""Public vector tile layer.

:class:`VectorTileLayer` ties a tile source, the style rules of the layer
and the tile lifecycle together.  Attach it to a
:class:`~vector_tiles.map_widget.tile_grid.TileGrid` (directly or through a
:class:`~vector_tiles.map_widget.map_widget.VectorTileMapWidget`) and it
creates and evicts tiles as the view moves.  Style and visibility changes are
remembered and applied to tiles that load later.

Example::

    layer = VectorTileLayer(
        "https://tiles.example.com/{z}/{x}/{y}.json",
        get_feature_id=lambda feature: feature["properties"]["id"],
    )
    map_widget.add_layer(layer)
    layer.hide_by_property("type", "park")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from PySide6.QtCore import QObject, Signal, Slot

from .config import DEFAULT_MARKER_RADIUS
from .errors import LayerNotAttachedError, TileRegistryError
from .shapes import FeatureGroup, LatLng, Shape
from .style_engine import StyleEngine, StyleTable, load_style_table, property_matches
from .tile_manager import (
    FeatureIdGetter,
    ThreadedTileFetcher,
    Tile,
    TileCoords,
    TileFetcher,
    TileManager,
    tile_key,
)
from .tile_source import open_source

if TYPE_CHECKING:  # pragma: no cover
    from .map_widget.tile_grid import TileGrid

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TilePlaceholder:
    """Handle returned to the grid for a created tile.

    ``debug`` tells the renderer to outline the tile boundary.
    """

    coords: TileCoords
    key: str
    debug: bool = False


class VectorTileLayer(QObject):
    """Interactive layer of vector tile features.

    Parameters
    ----------
    source:
        URL template, tile directory or any object with a ``load_tile(z, x, y)``
        method.  May be ``None`` when ``fetcher`` is supplied.
    get_feature_id:
        Callable returning the unique id of a GeoJSON feature.
    debug:
        Outline each tile's boundary when rendered.
    style:
        Base style table ``{property: {value: style}}`` or a path to a JSON
        file containing one.
    fetcher:
        Replacement for the default threaded fetcher.
    """

    tile_loaded = Signal(tuple)
    tile_unloaded = Signal(tuple)
    tile_failed = Signal(tuple, str)
    changed = Signal()

    def __init__(
        self,
        source: Any = None,
        *,
        get_feature_id: FeatureIdGetter | None = None,
        debug: bool = False,
        style: StyleTable | Path | str | None = None,
        fetcher: TileFetcher | None = None,
        marker_radius: float = DEFAULT_MARKER_RADIUS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        if get_feature_id is None or not callable(get_feature_id):
            raise TypeError("get_feature_id must be a callable returning a feature id")

        if isinstance(style, (str, Path)):
            style = load_style_table(style)

        if fetcher is None:
            if source is None:
                raise TypeError("Either a tile source or a fetcher is required")
            fetcher = ThreadedTileFetcher(open_source(source), parent=self)

        self.debug = bool(debug)
        self._style = StyleEngine(style)
        self._grid: Optional["TileGrid"] = None
        self._manager = TileManager(
            fetcher,
            self._style,
            get_feature_id=get_feature_id,
            marker_radius=marker_radius,
            parent=self,
        )
        self._manager.tile_loaded.connect(self.tile_loaded)
        self._manager.tile_unloaded.connect(self.tile_unloaded)
        self._manager.tile_failed.connect(self.tile_failed)
        self._manager.changed.connect(self.changed)

    # ------------------------------------------------------------------
    @property
    def map(self) -> Optional["TileGrid"]:
        """The grid the layer is attached to, if any."""

        return self._grid

    # ------------------------------------------------------------------
    @property
    def style_engine(self) -> StyleEngine:
        return self._style

    # ------------------------------------------------------------------
    def add_to(self, grid: "TileGrid") -> "VectorTileLayer":
        """Attach the layer to ``grid`` and create the tiles it already shows."""

        if self._grid is grid:
            return self
        if self._grid is not None:
            self.remove()

        self._grid = grid
        grid.tile_requested.connect(self._on_tile_requested)
        grid.tile_evicted.connect(self._on_tile_evicted)
        grid.zoom_changed.connect(self._on_zoom_changed)
        for coords in grid.active_tiles():
            self._on_tile_requested(*coords)
        return self

    # ------------------------------------------------------------------
    def remove(self) -> "VectorTileLayer":
        """Detach from the grid, evicting every registered tile."""

        grid = self._grid
        if grid is None:
            return self

        grid.tile_requested.disconnect(self._on_tile_requested)
        grid.tile_evicted.disconnect(self._on_tile_evicted)
        grid.zoom_changed.disconnect(self._on_zoom_changed)
        self._grid = None
        for tile in self._manager.tiles():
            self._manager.request_eviction(tile.coords)
        return self

    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        """Detach, stop the fetcher and release every tile."""

        self.remove()
        self._manager.shutdown()

    # ------------------------------------------------------------------
    def create_tile(self, coords: Any) -> TilePlaceholder:
        """Register the tile at ``coords`` and start loading it."""

        tile = self._manager.create_tile(coords)
        return TilePlaceholder(coords=tile.coords, key=tile.key, debug=self.debug)

    # ------------------------------------------------------------------
    def destroy_tile(self, coords: Any) -> bool:
        return self._manager.destroy_tile(coords)

    # ------------------------------------------------------------------
    def on_eviction_requested(self, coords: Any) -> None:
        """Unload a tile now, or once it has finished loading."""

        self._manager.request_eviction(coords)

    # ------------------------------------------------------------------
    def tile_keys(self) -> List[str]:
        return [tile.key for tile in self._manager.tiles()]

    # ------------------------------------------------------------------
    def tiles(self) -> List[Tile]:
        return self._manager.tiles()

    # ------------------------------------------------------------------
    def get_tile(self, coords: Any) -> Optional[Tile]:
        return self._manager.get_tile(coords)

    # ------------------------------------------------------------------
    def search(self, min_latlng: LatLng, max_latlng: LatLng) -> List[str]:
        """Return ids of on-map features whose bounding box meets the query box.

        Corners are ``(lat, lng)`` pairs.  Each id is returned once even when
        the feature spans several tiles.
        """

        if self._grid is None:
            raise LayerNotAttachedError("The layer must be added to a map before searching")

        min_lat, min_lng = min_latlng
        max_lat, max_lng = max_latlng
        return self._manager.search(min_lng, min_lat, max_lng, max_lat)

    # ------------------------------------------------------------------
    def hide_by_property(self, prop: str, value: Any) -> "VectorTileLayer":
        """Take every feature with ``prop == value`` off the map, now and later."""

        return self._toggle_by_property(prop, value, False)

    # ------------------------------------------------------------------
    def show_by_property(self, prop: str, value: Any) -> "VectorTileLayer":
        """Put every feature with ``prop == value`` back on the map, now and later."""

        return self._toggle_by_property(prop, value, True)

    # ------------------------------------------------------------------
    def restyle_by_property(self, prop: str, value: Any, style: Mapping[str, Any]) -> "VectorTileLayer":
        """Merge ``style`` into the style of every feature with ``prop == value``."""

        self._style.restyle_by_property(prop, value, style)
        self._manager.refresh(lambda _id, record: property_matches(record.properties, prop, value))
        return self

    # ------------------------------------------------------------------
    def set_feature_style(self, feature_id: str, style: Mapping[str, Any]) -> "VectorTileLayer":
        """Replace the per-feature style override of ``feature_id``."""

        self._style.set_feature_style(feature_id, style)
        self._refresh_feature(feature_id)
        return self

    # ------------------------------------------------------------------
    def reset_feature_style(self, feature_id: str) -> "VectorTileLayer":
        """Drop the per-feature override so property rules apply again."""

        if self._style.reset_feature_style(feature_id):
            self._refresh_feature(feature_id)
        return self

    # ------------------------------------------------------------------
    def hide_feature(self, feature_id: str) -> "VectorTileLayer":
        if self._style.set_feature_visibility(feature_id, False):
            self._refresh_feature(feature_id)
        return self

    # ------------------------------------------------------------------
    def show_feature(self, feature_id: str) -> "VectorTileLayer":
        if self._style.set_feature_visibility(feature_id, True):
            self._refresh_feature(feature_id)
        return self

    # ------------------------------------------------------------------
    def get_feature_group(self) -> FeatureGroup:
        """Return the root group holding one group per loaded tile."""

        return self._manager.feature_group

    # ------------------------------------------------------------------
    def get_layer(self, feature_id: str) -> Optional[Shape]:
        record = self._manager.find_record(feature_id)
        return record.shape if record is not None else None

    # ------------------------------------------------------------------
    def get_geojson(self, feature_id: str) -> Optional[Mapping[str, Any]]:
        record = self._manager.find_record(feature_id)
        return record.geojson if record is not None else None

    # ------------------------------------------------------------------
    def remove_feature(self, feature_id: str) -> "VectorTileLayer":
        """Delete a feature from every loaded tile that contains it."""

        self._manager.remove_feature(feature_id)
        return self

    # ------------------------------------------------------------------
    def _toggle_by_property(self, prop: str, value: Any, visible: bool) -> "VectorTileLayer":
        if self._style.set_property_visibility(prop, value, visible):
            self._manager.refresh(
                lambda _id, record: property_matches(record.properties, prop, value)
            )
        return self

    # ------------------------------------------------------------------
    def _refresh_feature(self, feature_id: str) -> None:
        self._manager.refresh(lambda candidate, _record: candidate == feature_id)

    # ------------------------------------------------------------------
    @Slot(int, int, int)
    def _on_tile_requested(self, z: int, x: int, y: int) -> None:
        try:
            self.create_tile(TileCoords(z, x, y))
        except TileRegistryError as exc:
            _LOGGER.warning("Ignoring duplicate request for tile %s: %s", tile_key((z, x, y)), exc)

    # ------------------------------------------------------------------
    @Slot(int, int, int)
    def _on_tile_evicted(self, z: int, x: int, y: int) -> None:
        self.on_eviction_requested(TileCoords(z, x, y))

    # ------------------------------------------------------------------
    @Slot(int)
    def _on_zoom_changed(self, zoom: int) -> None:
        cancelled = self._manager.cancel_stale(zoom)
        if cancelled:
            _LOGGER.debug("Cancelled %d tiles left over from a previous zoom level", cancelled)


__all__ = ["TilePlaceholder", "VectorTileLayer"]
