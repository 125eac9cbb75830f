"""Tile lifecycle: registration, background fetching, materialization and teardown.

The manager owns one :class:`Tile` per active tile key.  ``create_tile``
registers the tile and asks the fetcher for its data; when the data arrives
(on the owning thread, through a queued Qt signal) every feature is converted
to a shape, styled, attached to the tile's feature group, and finally the
tile's spatial index is bulk loaded.

Evicting a tile whose data is still in flight only marks it invalid.  The
tile is destroyed once, right after its data has been materialized (or its
fetch has failed), so a late response can never touch a tile that is gone.
"""

from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, NamedTuple, Optional

from PySide6.QtCore import QObject, QThread, Signal, Slot

from .config import DEFAULT_MARKER_RADIUS
from .errors import TileLoadingError, TileRegistryError
from .geometry import geojson_to_shape, geometry_bbox
from .shapes import FeatureGroup, Shape
from .spatial_index import IndexEntry, TileIndex
from .style_engine import StyleEngine
from .tile_source import TileLayer, TileSource, normalize_layers

_LOGGER = logging.getLogger(__name__)

FeatureIdGetter = Callable[[Mapping[str, Any]], str]


class TileCoords(NamedTuple):
    """XYZ coordinates of a tile."""

    z: int
    x: int
    y: int


def as_coords(value: Any) -> TileCoords:
    """Accept ``TileCoords``, ``(z, x, y)`` tuples or ``{"z", "x", "y"}`` mappings."""

    if isinstance(value, TileCoords):
        return value
    if isinstance(value, Mapping):
        return TileCoords(int(value["z"]), int(value["x"]), int(value["y"]))
    z, x, y = value
    return TileCoords(int(z), int(x), int(y))


def tile_key(coords: Any) -> str:
    """Return the registry key of a tile, ``"x:y:z"``."""

    z, x, y = as_coords(coords)
    return f"{x}:{y}:{z}"


class TileStatus(enum.Enum):
    PENDING = "pending"
    LOADED = "loaded"
    FAILED = "failed"


class CancellationToken:
    """Cooperative cancellation flag handed to a tile's materialization."""

    def __init__(self, zoom: int) -> None:
        self.zoom = zoom
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass(eq=False)
class FeatureRecord:
    """A materialized feature: source data plus the shape and index entry derived from it."""

    geojson: Mapping[str, Any]
    shape: Shape
    index_entry: Optional[IndexEntry] = None
    on_map: bool = False

    @property
    def properties(self) -> Mapping[str, Any]:
        return self.geojson.get("properties") or {}


@dataclass(eq=False)
class Tile:
    """Registry entry of one active tile."""

    coords: TileCoords
    request_id: int
    token: CancellationToken
    feature_group: FeatureGroup = field(default_factory=FeatureGroup)
    features: Dict[str, FeatureRecord] = field(default_factory=dict)
    index: Optional[TileIndex] = None
    status: TileStatus = TileStatus.PENDING
    valid: bool = True
    error: Optional[str] = None

    @property
    def key(self) -> str:
        return tile_key(self.coords)

    @property
    def loaded(self) -> bool:
        return self.status is TileStatus.LOADED

    @property
    def settled(self) -> bool:
        """``True`` once the fetch has finished, successfully or not."""

        return self.status is not TileStatus.PENDING


class TileFetcher(QObject):
    """Interface between the manager and whatever retrieves tile data.

    Implementations call back through ``tile_fetched(request_id, layers)`` or
    ``tile_failed(request_id, message)``; both must be delivered on the thread
    that owns the manager.
    """

    tile_fetched = Signal(int, object)
    tile_failed = Signal(int, str)

    def fetch(self, request_id: int, z: int, x: int, y: int) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def shutdown(self) -> None:
        """Release resources held by the fetcher."""


class _TileWorker(QObject):
    """Background worker that retrieves tiles without blocking the GUI."""

    tile_loaded = Signal(int, object)
    tile_missing = Signal(int, str)

    def __init__(self, source: TileSource) -> None:
        super().__init__()
        self._source = source

    @Slot(int, int, int, int)
    def request_tile(self, request_id: int, z: int, x: int, y: int) -> None:
        """Load a tile inside the worker thread and report the outcome."""

        try:
            layers = self._source.load_tile(z, x, y)
        except TileLoadingError as exc:
            _LOGGER.warning("Tile %s/%s/%s could not be loaded: %s", z, x, y, exc)
            self.tile_missing.emit(request_id, str(exc))
            return

        self.tile_loaded.emit(request_id, layers)


class ThreadedTileFetcher(TileFetcher):
    """Run a :class:`TileSource` on a dedicated ``QThread``."""

    _request_tile = Signal(int, int, int, int)

    def __init__(self, source: TileSource, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._source = source
        self._loader_thread: QThread | None = QThread(self)
        self._tile_worker = _TileWorker(source)
        self._tile_worker.moveToThread(self._loader_thread)
        self._tile_worker.tile_loaded.connect(self._handle_tile_loaded)
        self._tile_worker.tile_missing.connect(self._handle_tile_missing)
        self._request_tile.connect(self._tile_worker.request_tile)
        self._loader_thread.finished.connect(self._tile_worker.deleteLater)
        self._loader_thread.start()

    # ------------------------------------------------------------------
    def fetch(self, request_id: int, z: int, x: int, y: int) -> None:
        self._request_tile.emit(request_id, z, x, y)

    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        """Stop the background worker thread and close the source."""

        if self._loader_thread is None:
            return

        if self._loader_thread.isRunning():
            self._loader_thread.quit()
            self._loader_thread.wait()

        self._loader_thread = None

        # The worker is idle now, so the source can release its connections.
        close = getattr(self._source, "close", None)
        if callable(close):
            close()

    # ------------------------------------------------------------------
    @Slot(int, object)
    def _handle_tile_loaded(self, request_id: int, layers: object) -> None:
        self.tile_fetched.emit(request_id, layers)

    # ------------------------------------------------------------------
    @Slot(int, str)
    def _handle_tile_missing(self, request_id: int, message: str) -> None:
        self.tile_failed.emit(request_id, message)


class TileManager(QObject):
    """Own the tile registry and drive each tile from fetch to teardown."""

    tile_loaded = Signal(tuple)
    tile_unloaded = Signal(tuple)
    tile_failed = Signal(tuple, str)
    changed = Signal()

    def __init__(
        self,
        fetcher: TileFetcher,
        style: StyleEngine,
        *,
        get_feature_id: FeatureIdGetter,
        marker_radius: float = DEFAULT_MARKER_RADIUS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._fetcher = fetcher
        self._style = style
        self._get_feature_id = get_feature_id
        self._marker_radius = marker_radius

        self._tiles: Dict[str, Tile] = {}
        self._requests: Dict[int, str] = {}
        self._request_ids = itertools.count(1)

        # Every tile's feature group hangs off this root group once loaded.
        self.feature_group = FeatureGroup()

        self._fetcher.tile_fetched.connect(self._handle_tile_fetched)
        self._fetcher.tile_failed.connect(self._handle_tile_failed)

    # ------------------------------------------------------------------
    def create_tile(self, coords: Any) -> Tile:
        """Register a tile and start fetching its data."""

        coords = as_coords(coords)
        key = tile_key(coords)
        existing = self._tiles.get(key)
        if existing is not None:
            if existing.valid or existing.settled:
                raise TileRegistryError(f"Tile {key} is already registered")
            # Evicted while in flight and wanted again before the data arrived.
            existing.valid = True
            _LOGGER.info("Tile %s requested again before it finished loading", key)
            if existing.token.cancelled:
                self._issue_request(existing)
            return existing

        tile = Tile(coords=coords, request_id=0, token=CancellationToken(coords.z))
        self._tiles[key] = tile
        self._issue_request(tile)
        return tile

    # ------------------------------------------------------------------
    def destroy_tile(self, coords: Any) -> bool:
        """Detach a settled tile from the map and drop every structure it owns.

        A tile that is still loading is only invalidated; it will be destroyed
        as soon as its materialization finishes.
        """

        coords = as_coords(coords)
        key = tile_key(coords)
        tile = self._tiles.get(key)
        if tile is None:
            _LOGGER.debug("Ignoring destroy for unknown tile %s", key)
            return False
        if not tile.settled:
            _LOGGER.warning("Tile %s is still loading; deferring its destruction", key)
            tile.valid = False
            return False

        del self._tiles[key]
        self._requests.pop(tile.request_id, None)
        tile.token.cancel()
        self.feature_group.remove_layer(tile.feature_group)
        tile.feature_group.clear()
        tile.features.clear()
        if tile.index is not None:
            tile.index.clear()
            tile.index = None

        self.tile_unloaded.emit(tuple(tile.coords))
        self.changed.emit()
        return True

    # ------------------------------------------------------------------
    def request_eviction(self, coords: Any) -> None:
        """Destroy a settled tile now, or mark a loading tile for deferred destruction."""

        coords = as_coords(coords)
        tile = self._tiles.get(tile_key(coords))
        if tile is None:
            _LOGGER.debug("Ignoring eviction for unknown tile %s", tile_key(coords))
            return

        if tile.settled:
            self.destroy_tile(coords)
        else:
            _LOGGER.debug("Tile %s evicted while loading; destroying after load", tile.key)
            tile.valid = False

    # ------------------------------------------------------------------
    def cancel_stale(self, zoom: int) -> int:
        """Cancel the materialization of loading tiles requested for another zoom."""

        cancelled = 0
        for tile in self._tiles.values():
            if not tile.settled and tile.coords.z != zoom and not tile.token.cancelled:
                tile.token.cancel()
                cancelled += 1
        return cancelled

    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        """Stop fetching and tear down every registered tile."""

        self._fetcher.shutdown()
        for tile in list(self._tiles.values()):
            if not tile.settled:
                tile.token.cancel()
                tile.status = TileStatus.FAILED
                tile.error = "shut down"
            self.destroy_tile(tile.coords)
        self._requests.clear()

    # ------------------------------------------------------------------
    def get_tile(self, coords: Any) -> Optional[Tile]:
        return self._tiles.get(tile_key(coords))

    # ------------------------------------------------------------------
    def tiles(self) -> List[Tile]:
        return list(self._tiles.values())

    # ------------------------------------------------------------------
    def iter_records(self) -> Iterator[tuple[Tile, str, FeatureRecord]]:
        for tile in list(self._tiles.values()):
            for feature_id, record in list(tile.features.items()):
                yield tile, feature_id, record

    # ------------------------------------------------------------------
    def find_record(self, feature_id: str) -> Optional[FeatureRecord]:
        for tile in self._tiles.values():
            record = tile.features.get(feature_id)
            if record is not None:
                return record
        return None

    # ------------------------------------------------------------------
    def search(self, min_x: float, min_y: float, max_x: float, max_y: float) -> List[str]:
        """Return the ids of on-map features whose boxes meet the query box.

        Coordinates are in source ``(lon, lat)`` order.  Tiles without an
        index yet are skipped.
        """

        results: Dict[str, None] = {}
        for tile in self._tiles.values():
            if tile.index is None:
                continue
            for entry in tile.index.search(min_x, min_y, max_x, max_y):
                results[entry.id] = None
        return list(results)

    # ------------------------------------------------------------------
    def refresh(self, predicate: Callable[[str, FeatureRecord], bool]) -> int:
        """Re-resolve style and visibility of every record accepted by ``predicate``."""

        refreshed = 0
        for tile, feature_id, record in self.iter_records():
            if not predicate(feature_id, record):
                continue
            resolution = self._style.resolve(record.properties, feature_id)
            record.shape.set_style(resolution.style)
            self._set_on_map(tile, record, resolution.visible)
            refreshed += 1

        if refreshed:
            self.changed.emit()
        return refreshed

    # ------------------------------------------------------------------
    def remove_feature(self, feature_id: str) -> int:
        """Delete ``feature_id`` from every registered tile."""

        removed = 0
        for tile in self._tiles.values():
            record = tile.features.pop(feature_id, None)
            if record is None:
                continue
            tile.feature_group.remove_layer(record.shape)
            if tile.index is not None and record.index_entry is not None:
                tile.index.remove(record.index_entry)
            removed += 1

        if removed:
            self.changed.emit()
        return removed

    # ------------------------------------------------------------------
    def _issue_request(self, tile: Tile) -> None:
        self._requests.pop(tile.request_id, None)
        tile.request_id = next(self._request_ids)
        tile.token = CancellationToken(tile.coords.z)
        self._requests[tile.request_id] = tile.key
        self._fetcher.fetch(tile.request_id, *tile.coords)

    # ------------------------------------------------------------------
    def _tile_for_request(self, request_id: int) -> Optional[Tile]:
        key = self._requests.pop(request_id, None)
        if key is None:
            _LOGGER.debug("Dropping response for retired request %s", request_id)
            return None
        tile = self._tiles.get(key)
        if tile is None or tile.request_id != request_id or tile.settled:
            return None
        return tile

    # ------------------------------------------------------------------
    @Slot(int, object)
    def _handle_tile_fetched(self, request_id: int, payload: object) -> None:
        tile = self._tile_for_request(request_id)
        if tile is None:
            return

        if isinstance(payload, list) and all(isinstance(layer, TileLayer) for layer in payload):
            layers = payload
        else:
            try:
                layers = normalize_layers(payload)
            except TileLoadingError as exc:
                self._fail(tile, str(exc))
                return

        self._materialize(tile, layers)

    # ------------------------------------------------------------------
    @Slot(int, str)
    def _handle_tile_failed(self, request_id: int, message: str) -> None:
        tile = self._tile_for_request(request_id)
        if tile is None:
            return
        self._fail(tile, message)

    # ------------------------------------------------------------------
    def _fail(self, tile: Tile, message: str) -> None:
        tile.status = TileStatus.FAILED
        tile.error = message
        self.tile_failed.emit(tuple(tile.coords), message)
        if not tile.valid:
            self.destroy_tile(tile.coords)

    # ------------------------------------------------------------------
    def _materialize(self, tile: Tile, layers: List[TileLayer]) -> None:
        token = tile.token
        for layer in layers:
            if token.cancelled:
                break
            for feature in layer.features:
                # The view moved to another zoom level while this tile was in
                # flight; keep what is already committed and stop here.
                if token.cancelled:
                    _LOGGER.debug("Stopped materializing stale tile %s", tile.key)
                    break
                self._add_feature(tile, feature)

        self._bulk_load(tile)
        tile.feature_group.add_to(self.feature_group)
        tile.status = TileStatus.LOADED

        self.tile_loaded.emit(tuple(tile.coords))
        if not tile.valid:
            self.destroy_tile(tile.coords)
        else:
            self.changed.emit()

    # ------------------------------------------------------------------
    def _add_feature(self, tile: Tile, feature: Mapping[str, Any]) -> None:
        feature_id = self._get_feature_id(feature)
        shape = geojson_to_shape(feature, feature_id, radius=self._marker_radius)
        if shape is None:
            return

        previous = tile.features.get(feature_id)
        if previous is not None:
            tile.feature_group.remove_layer(previous.shape)

        record = FeatureRecord(geojson=feature, shape=shape)
        tile.features[feature_id] = record

        resolution = self._style.resolve(record.properties, feature_id)
        shape.set_style(resolution.style)
        if resolution.visible:
            tile.feature_group.add_layer(shape)
            record.on_map = True

    # ------------------------------------------------------------------
    def _bulk_load(self, tile: Tile) -> None:
        """Pack every record into the tile index, then drop the off-map ones."""

        entries: List[IndexEntry] = []
        for feature_id, record in tile.features.items():
            bbox = geometry_bbox(record.geojson.get("geometry") or {})
            if bbox is None:
                continue
            record.index_entry = IndexEntry(*bbox, id=feature_id)
            entries.append(record.index_entry)

        tile.index = TileIndex().load(entries)
        for record in tile.features.values():
            if not record.on_map and record.index_entry is not None:
                tile.index.remove(record.index_entry)

    # ------------------------------------------------------------------
    def _set_on_map(self, tile: Tile, record: FeatureRecord, visible: bool) -> None:
        if record.on_map == visible:
            return

        if visible:
            tile.feature_group.add_layer(record.shape)
            if tile.index is not None and record.index_entry is not None:
                tile.index.insert(record.index_entry)
        else:
            tile.feature_group.remove_layer(record.shape)
            if tile.index is not None and record.index_entry is not None:
                tile.index.remove(record.index_entry)
        record.on_map = visible


__all__ = [
    "CancellationToken",
    "FeatureRecord",
    "ThreadedTileFetcher",
    "Tile",
    "TileCoords",
    "TileFetcher",
    "TileManager",
    "TileStatus",
    "as_coords",
    "tile_key",
]
