"""Custom exception hierarchy for the vector tile layer."""

from __future__ import annotations


class VectorTilesError(Exception):
    """Base class for all custom errors raised by ``vector_tiles``."""


# --- Tile loading ---

class TileLoadingError(VectorTilesError):
    """Base exception for recoverable tile loading problems."""


class TileAccessError(TileLoadingError):
    """Raised when a tile source cannot be reached or read."""


class TileDecodeError(TileLoadingError):
    """Raised when a tile payload cannot be decoded into layers."""


class TileFetchError(TileLoadingError):
    """Raised when a remote tile request fails."""


# --- Styling ---

class StyleLoadError(VectorTilesError):
    """Raised when a style table cannot be read or parsed."""


# --- Layer state ---

class LayerNotAttachedError(VectorTilesError):
    """Raised when an operation needs a map but the layer is not on one."""


class TileRegistryError(VectorTilesError):
    """Raised when the tile registry would hold two live tiles for one key."""


__all__ = [
    "VectorTilesError",
    "TileLoadingError",
    "TileAccessError",
    "TileDecodeError",
    "TileFetchError",
    "StyleLoadError",
    "LayerNotAttachedError",
    "TileRegistryError",
]
