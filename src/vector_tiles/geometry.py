"""Feature conversion and coordinate helpers.

GeoJSON stores coordinates as ``(longitude, latitude)`` while the map and the
shapes in :mod:`vector_tiles.shapes` use ``(latitude, longitude)``.  Every
conversion therefore swaps each coordinate pair.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterator, Sequence
from typing import Any, Mapping

from .config import DEFAULT_MARKER_RADIUS, MERCATOR_LAT_BOUND
from .shapes import CircleMarker, PolygonShape, Polyline, Shape

_LOGGER = logging.getLogger(__name__)

SUPPORTED_GEOMETRY_TYPES = frozenset({"Point", "LineString", "Polygon", "MultiPolygon"})


def sequence_depth(value: object) -> int:
    """Return how many list/tuple levels ``value`` contains before scalars."""

    depth = 0
    current = value
    while isinstance(current, (list, tuple)) and current:
        depth += 1
        current = current[0]
    return depth


def normalize_geometry_type(raw_type: object) -> str | None:
    """Translate geometry identifiers into canonical GeoJSON-style strings.

    Decoded Mapbox vector tiles may report the raw protobuf geometry codes
    (1, 2, 3) instead of names.
    """

    if isinstance(raw_type, str):
        return raw_type
    if raw_type == 1:
        return "Point"
    if raw_type == 2:
        return "LineString"
    if raw_type == 3:
        return "Polygon"
    return None


def is_number_pair(value: Sequence[object]) -> bool:
    """Return ``True`` when ``value`` looks like an ``(x, y)`` tuple."""

    if len(value) < 2:
        return False
    return all(
        isinstance(component, (int, float)) and not isinstance(component, bool)
        for component in value[:2]
    )


def map_coordinate_structure(
    value: object,
    transform: Callable[[float, float], tuple[float, float]],
) -> object:
    """Apply ``transform`` to every coordinate pair in ``value``."""

    if isinstance(value, (list, tuple)):
        if is_number_pair(value):
            x, y = transform(float(value[0]), float(value[1]))
            return (x, y)
        return [map_coordinate_structure(item, transform) for item in value]
    return value


def swap_coordinates(value: object) -> object:
    """Turn ``(lon, lat)`` pairs into ``(lat, lon)`` pairs at any nesting depth."""

    return map_coordinate_structure(value, lambda x, y: (y, x))


def iter_coordinate_pairs(value: object) -> Iterator[tuple[float, float]]:
    """Yield every ``(x, y)`` pair found in a nested coordinate structure."""

    if not isinstance(value, (list, tuple)):
        return
    if is_number_pair(value):
        yield float(value[0]), float(value[1])
        return
    for item in value:
        yield from iter_coordinate_pairs(item)


def geometry_bbox(geometry: Mapping[str, Any]) -> tuple[float, float, float, float] | None:
    """Return ``(min_x, min_y, max_x, max_y)`` in source ``(lon, lat)`` order.

    Points produce a degenerate box at the point itself.  ``None`` is returned
    when the geometry carries no usable coordinates.
    """

    coordinates = geometry.get("coordinates")
    if normalize_geometry_type(geometry.get("type")) == "Point":
        if isinstance(coordinates, (list, tuple)) and is_number_pair(coordinates):
            x, y = float(coordinates[0]), float(coordinates[1])
            return x, y, x, y
        return None

    xs: list[float] = []
    ys: list[float] = []
    for x, y in iter_coordinate_pairs(coordinates):
        xs.append(x)
        ys.append(y)
    if not xs:
        return None
    return min(xs), min(ys), max(xs), max(ys)


def geojson_to_shape(
    feature: Mapping[str, Any],
    feature_id: str | None = None,
    *,
    radius: float = DEFAULT_MARKER_RADIUS,
) -> Shape | None:
    """Convert a GeoJSON feature into a renderable shape.

    ``Point`` becomes a :class:`CircleMarker`, ``LineString`` a
    :class:`Polyline` and ``Polygon``/``MultiPolygon`` a
    :class:`PolygonShape`.  Any other geometry returns ``None`` which callers
    treat as "skip": the feature is neither drawn nor indexed.
    """

    geometry = feature.get("geometry")
    if not isinstance(geometry, Mapping):
        _LOGGER.debug("Feature %s has no geometry", feature_id)
        return None

    geom_type = normalize_geometry_type(geometry.get("type"))
    coordinates = geometry.get("coordinates")
    if geom_type not in SUPPORTED_GEOMETRY_TYPES or not isinstance(coordinates, (list, tuple)):
        _LOGGER.debug("Unsupported feature type: %s", geometry.get("type"))
        return None

    swapped = swap_coordinates(coordinates)
    if geom_type == "Point":
        if not isinstance(swapped, tuple):
            _LOGGER.debug("Malformed point coordinates for feature %s", feature_id)
            return None
        return CircleMarker(swapped, radius=radius, feature_id=feature_id)
    if geom_type == "LineString":
        return Polyline(swapped, feature_id=feature_id)
    if geom_type == "Polygon":
        return PolygonShape([swapped], feature_id=feature_id)
    return PolygonShape(swapped, feature_id=feature_id)


def tile_bounds(z: int, x: int, y: int) -> tuple[float, float, float, float]:
    """Return ``(west, south, east, north)`` in degrees for an XYZ tile."""

    n = 2.0 ** z
    west = x / n * 360.0 - 180.0
    east = (x + 1) / n * 360.0 - 180.0
    north = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))
    south = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * (y + 1) / n))))
    return west, south, east, north


def tile_units_to_lonlat(
    px: float,
    py: float,
    extent: int,
    tile_x: int,
    tile_y: int,
    zoom: int,
) -> tuple[float, float]:
    """Project tile-relative units (origin top-left) back to longitude/latitude."""

    n = 1 << zoom
    world_x = (tile_x + px / float(extent)) / n
    world_y = (tile_y + py / float(extent)) / n
    lon = world_x * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * world_y))))
    return lon, max(min(lat, MERCATOR_LAT_BOUND), -MERCATOR_LAT_BOUND)


__all__ = [
    "SUPPORTED_GEOMETRY_TYPES",
    "geojson_to_shape",
    "geometry_bbox",
    "is_number_pair",
    "iter_coordinate_pairs",
    "map_coordinate_structure",
    "normalize_geometry_type",
    "sequence_depth",
    "swap_coordinates",
    "tile_bounds",
    "tile_units_to_lonlat",
]
