"""Viewport computation and Web Mercator projection helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..config import EARTH_RADIUS_M, MAX_ZOOM, MERCATOR_LAT_BOUND, MIN_ZOOM, TILE_SIZE


@dataclass(frozen=True)
class ViewState:
    """Describe the camera parameters used for the current paint pass."""

    zoom: float
    fetch_zoom: int
    width: int
    height: int
    view_top_left_x: float
    view_top_left_y: float
    scaled_tile_size: float
    tiles_across: int
    tile_size: int = TILE_SIZE

    @property
    def world_size(self) -> float:
        """Size of the whole world in pixels at ``zoom``."""

        return float(self.tile_size * (2 ** self.zoom))

    @property
    def center_px(self) -> tuple[float, float]:
        return (
            self.view_top_left_x + self.width / 2.0,
            self.view_top_left_y + self.height / 2.0,
        )


def compute_view_state(
    center_x: float,
    center_y: float,
    zoom: float,
    width: int,
    height: int,
    tile_size: int = TILE_SIZE,
    *,
    min_tile_zoom: int = int(MIN_ZOOM),
    max_tile_zoom: int = int(MAX_ZOOM),
) -> ViewState:
    """Translate widget geometry into the parameters used during rendering.

    ``center_x``/``center_y`` are normalised world coordinates in ``[0, 1]``.
    Tiles are requested at ``floor(zoom)`` clamped to the tile zoom range and
    magnified by ``scaled_tile_size`` to match fractional zoom levels.
    """

    world_size = tile_size * (2 ** zoom)
    center_px = center_x * world_size
    center_py = center_y * world_size
    view_top_left_x = center_px - width / 2.0
    view_top_left_y = center_py - height / 2.0

    fetch_zoom = min(max_tile_zoom, max(min_tile_zoom, math.floor(zoom)))
    tiles_across = 1 << fetch_zoom
    scale_factor = 2 ** (zoom - fetch_zoom)
    scaled_tile_size = tile_size * scale_factor

    return ViewState(
        zoom=zoom,
        fetch_zoom=fetch_zoom,
        width=width,
        height=height,
        view_top_left_x=view_top_left_x,
        view_top_left_y=view_top_left_y,
        scaled_tile_size=scaled_tile_size,
        tiles_across=tiles_across,
        tile_size=tile_size,
    )


def lonlat_to_world(lon: float, lat: float, world_size: float) -> tuple[float, float]:
    """Project geographic coordinates into the continuous Web Mercator plane."""

    lat = max(min(float(lat), MERCATOR_LAT_BOUND), -MERCATOR_LAT_BOUND)
    x = (float(lon) + 180.0) / 360.0 * world_size
    sin_lat = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * world_size
    return x, y


def world_to_lonlat(x: float, y: float, world_size: float) -> tuple[float, float]:
    """Inverse of :func:`lonlat_to_world`."""

    lon = x / world_size * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / world_size))))
    return lon, lat


def meters_per_pixel(lat: float, zoom: float, tile_size: int = TILE_SIZE) -> float:
    """Ground resolution at latitude ``lat``."""

    world_size = tile_size * (2 ** zoom)
    circumference = 2 * math.pi * EARTH_RADIUS_M
    return math.cos(math.radians(lat)) * circumference / world_size


def latlng_to_screen(lat: float, lng: float, view_state: ViewState) -> tuple[float, float]:
    """Return widget-relative coordinates for a ``(lat, lng)`` point.

    The point is wrapped across the antimeridian to the copy of the world
    closest to the view centre.
    """

    world_size = view_state.world_size
    world_x, world_y = lonlat_to_world(lng, lat, world_size)
    center_px, _ = view_state.center_px

    delta_x = world_x - center_px
    if delta_x > world_size / 2.0:
        world_x -= world_size
    elif delta_x < -world_size / 2.0:
        world_x += world_size

    return world_x - view_state.view_top_left_x, world_y - view_state.view_top_left_y


__all__ = [
    "ViewState",
    "compute_view_state",
    "latlng_to_screen",
    "lonlat_to_world",
    "meters_per_pixel",
    "world_to_lonlat",
]
