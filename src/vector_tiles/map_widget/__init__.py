"""Public package interface for the map widget components."""

from .map_widget import VectorTileMapWidget
from .renderer import CanvasRenderer
from .tile_grid import TileGrid
from .viewport import ViewState, compute_view_state

__all__ = ["CanvasRenderer", "TileGrid", "VectorTileMapWidget", "ViewState", "compute_view_state"]
