"""Tile data sources that turn tile coordinates into layers of GeoJSON features.

Two sources are provided:

* :class:`DirectoryTileSource` reads Mapbox vector tiles (``.pbf``) from a
  ``{z}/{x}/{y}.pbf`` folder hierarchy and keeps a small LRU cache of decoded
  tiles.
* :class:`HttpTileSource` requests tiles from a URL template.  JSON responses
  are expected to be a list of ``{"name": ..., "features": FeatureCollection}``
  layers; protobuf responses are decoded like the files on disk.

Both return a list of :class:`TileLayer` objects whose feature coordinates are
longitude/latitude pairs, or ``None`` when the tile does not exist.  Sources
are called from the fetcher's worker thread.
"""

from __future__ import annotations

import copy
import gzip
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol

import mapbox_vector_tile
import requests

from .errors import TileAccessError, TileDecodeError, TileFetchError, TileLoadingError
from .geometry import map_coordinate_structure, normalize_geometry_type, tile_units_to_lonlat

_LOGGER = logging.getLogger(__name__)

_GZIP_MAGIC = b"\x1f\x8b"
_PROTOBUF_SUFFIXES = (".pbf", ".mvt")


@dataclass
class TileLayer:
    """One named layer of a tile and its GeoJSON features."""

    name: str
    features: List[Dict[str, Any]] = field(default_factory=list)


class TileSource(Protocol):
    """Interface the fetcher expects from a tile data source."""

    def load_tile(self, z: int, x: int, y: int) -> Optional[List[TileLayer]]:  # pragma: no cover
        ...


def normalize_layers(payload: Any) -> List[TileLayer]:
    """Coerce the supported payload shapes into a list of :class:`TileLayer`.

    Accepted shapes are a list of ``{"name", "features"}`` layers (where
    ``features`` is a FeatureCollection or a plain list), a mapping of layer
    name to FeatureCollection, or a single FeatureCollection.
    """

    if payload is None:
        return []

    if isinstance(payload, dict) and payload.get("type") == "FeatureCollection":
        return [TileLayer(name="", features=list(payload.get("features") or []))]

    if isinstance(payload, dict):
        return [
            TileLayer(name=str(name), features=_collection_features(collection))
            for name, collection in payload.items()
        ]

    if isinstance(payload, list):
        layers: List[TileLayer] = []
        for index, raw_layer in enumerate(payload):
            if not isinstance(raw_layer, dict):
                raise TileDecodeError(f"Layer #{index} is not an object")
            name = raw_layer.get("name", raw_layer.get("id", str(index)))
            layers.append(
                TileLayer(name=str(name), features=_collection_features(raw_layer.get("features")))
            )
        return layers

    raise TileDecodeError(f"Unsupported tile payload of type {type(payload).__name__}")


def _collection_features(collection: Any) -> List[Dict[str, Any]]:
    if isinstance(collection, dict):
        features = collection.get("features") or []
    elif isinstance(collection, list):
        features = collection
    else:
        return []
    return [feature for feature in features if isinstance(feature, dict)]


def decode_mvt(data: bytes, z: int, x: int, y: int) -> List[TileLayer]:
    """Decode a Mapbox vector tile and project its features to longitude/latitude."""

    if data.startswith(_GZIP_MAGIC):
        try:
            data = gzip.decompress(data)
        except OSError as exc:
            raise TileDecodeError(f"Failed to decompress tile {z}/{x}/{y}") from exc

    try:
        decoded = mapbox_vector_tile.decode(data, default_options={"y_coord_down": True})
    except Exception as exc:  # pragma: no cover - passthrough for third-party errors
        raise TileDecodeError(f"Failed to decode tile {z}/{x}/{y}") from exc

    layers: List[TileLayer] = []
    for name, layer in decoded.items():
        extent = int(layer.get("extent", 4096)) or 4096

        def transformer(px: float, py: float, extent: int = extent) -> tuple[float, float]:
            return tile_units_to_lonlat(px, py, extent, x, y, z)

        features = []
        for feature in layer.get("features", []):
            geometry = feature.get("geometry") or {}
            features.append(
                {
                    "type": "Feature",
                    "id": feature.get("id"),
                    "properties": dict(feature.get("properties") or {}),
                    "geometry": {
                        "type": normalize_geometry_type(geometry.get("type")),
                        "coordinates": map_coordinate_structure(
                            geometry.get("coordinates", []), transformer
                        ),
                    },
                }
            )
        layers.append(TileLayer(name=name, features=features))
    return layers


class DirectoryTileSource:
    """Load and decode Mapbox vector tiles from a folder hierarchy.

    Parameters
    ----------
    tile_root:
        Path to the folder that contains the ``{z}/{x}/{y}.pbf`` hierarchy.
    cache_size:
        Maximum number of decoded tiles to retain in memory.
    tms:
        ``True`` when the files use the TMS scheme, where the Y axis is
        flipped compared to the XYZ layout requested by the map.
    """

    def __init__(self, tile_root: Path | str, cache_size: int = 512, *, tms: bool = False) -> None:
        self.tile_root = Path(tile_root)
        if not self.tile_root.exists():
            raise TileAccessError(f"Tile directory '{self.tile_root}' does not exist")
        if not self.tile_root.is_dir():
            raise TileAccessError(f"Tile path '{self.tile_root}' is not a directory")
        self._tms = tms
        self._cached_loader = lru_cache(maxsize=cache_size)(self._load_tile)
        # ``functools.lru_cache`` is not thread-safe by default.
        self._lock = Lock()

    # ------------------------------------------------------------------
    def load_tile(self, z: int, x: int, y: int) -> Optional[List[TileLayer]]:
        """Return the decoded tile for the requested XYZ coordinates.

        Each call gets its own copy of the cached features, so callers may
        mutate what they receive.
        """

        with self._lock:
            layers = self._cached_loader(z, x, y)
        return copy.deepcopy(layers)

    # ------------------------------------------------------------------
    def clear_cache(self) -> None:
        with self._lock:
            self._cached_loader.cache_clear()

    # ------------------------------------------------------------------
    def _load_tile(self, z: int, x: int, y: int) -> Optional[List[TileLayer]]:
        path = self._resolve_tile_path(z, x, y)
        if path is None or not path.exists():
            return None

        try:
            data = path.read_bytes()
        except OSError as exc:
            raise TileAccessError(f"Unable to read tile {z}/{x}/{y} from disk") from exc

        return decode_mvt(data, z, x, y)

    # ------------------------------------------------------------------
    def _resolve_tile_path(self, z: int, x: int, y: int) -> Optional[Path]:
        if z < 0:
            return None

        n = 1 << z
        if y < 0 or y >= n:
            return None

        file_y = (n - 1) - y if self._tms else y
        return self.tile_root / str(z) / str(x % n) / f"{file_y}.pbf"


class HttpTileSource:
    """Fetch tiles from a ``{z}/{x}/{y}`` URL template with :mod:`requests`."""

    def __init__(
        self,
        url_template: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        if "{z}" not in url_template or "{x}" not in url_template or "{y}" not in url_template:
            raise TileAccessError(f"URL template '{url_template}' needs {{z}}, {{x}} and {{y}}")
        self.url_template = url_template
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers = dict(headers or {})

    # ------------------------------------------------------------------
    def tile_url(self, z: int, x: int, y: int) -> str:
        return self.url_template.format(z=z, x=x, y=y)

    # ------------------------------------------------------------------
    def load_tile(self, z: int, x: int, y: int) -> Optional[List[TileLayer]]:
        url = self.tile_url(z, x, y)
        try:
            response = self._session.get(url, timeout=self._timeout, headers=self._headers)
        except requests.RequestException as exc:
            raise TileFetchError(f"Request for tile {z}/{x}/{y} failed: {exc}") from exc

        if response.status_code in (204, 404):
            _LOGGER.debug("Tile %s/%s/%s is not available (%s)", z, x, y, response.status_code)
            return None
        if response.status_code >= 400:
            raise TileFetchError(f"Tile {z}/{x}/{y} returned HTTP {response.status_code}")

        content_type = response.headers.get("Content-Type", "")
        if "protobuf" in content_type or url.split("?", 1)[0].endswith(_PROTOBUF_SUFFIXES):
            return decode_mvt(response.content, z, x, y)

        try:
            payload = response.json()
        except ValueError as exc:
            raise TileDecodeError(f"Tile {z}/{x}/{y} is not valid JSON") from exc
        return normalize_layers(payload)

    # ------------------------------------------------------------------
    def close(self) -> None:
        self._session.close()


def open_source(source: Any) -> TileSource:
    """Return a tile source for a URL template, a tile directory or a source object."""

    if isinstance(source, str) and source.startswith(("http://", "https://")):
        return HttpTileSource(source)
    if isinstance(source, (str, Path)):
        return DirectoryTileSource(source)
    if hasattr(source, "load_tile"):
        return source
    raise TypeError(f"Unsupported tile source: {source!r}")


__all__ = [
    "DirectoryTileSource",
    "HttpTileSource",
    "TileLayer",
    "TileLoadingError",
    "TileSource",
    "decode_mvt",
    "normalize_layers",
    "open_source",
]
