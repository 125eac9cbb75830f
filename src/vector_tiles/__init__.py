"""Interactive vector tile layers for PySide6 maps."""

from .errors import (
    LayerNotAttachedError,
    StyleLoadError,
    TileLoadingError,
    TileRegistryError,
    VectorTilesError,
)
from .layer import TilePlaceholder, VectorTileLayer
from .shapes import CircleMarker, FeatureGroup, PolygonShape, Polyline, Shape
from .tile_manager import ThreadedTileFetcher, TileCoords, TileFetcher, TileStatus
from .tile_source import DirectoryTileSource, HttpTileSource, TileLayer

__all__ = [
    "CircleMarker",
    "DirectoryTileSource",
    "FeatureGroup",
    "HttpTileSource",
    "LayerNotAttachedError",
    "PolygonShape",
    "Polyline",
    "Shape",
    "StyleLoadError",
    "ThreadedTileFetcher",
    "TileCoords",
    "TileFetcher",
    "TileLayer",
    "TileLoadingError",
    "TilePlaceholder",
    "TileRegistryError",
    "TileStatus",
    "VectorTileLayer",
    "VectorTilesError",
]
