import logging
import math

import pytest

from vector_tiles.config import DEFAULT_MARKER_RADIUS
from vector_tiles.geometry import (
    geojson_to_shape,
    geometry_bbox,
    normalize_geometry_type,
    swap_coordinates,
    tile_bounds,
    tile_units_to_lonlat,
)
from vector_tiles.shapes import CircleMarker, PolygonShape, Polyline


def _feature(geometry_type, coordinates):
    return {"type": "Feature", "properties": {}, "geometry": {"type": geometry_type, "coordinates": coordinates}}


def test_point_coordinates_are_inverted() -> None:
    shape = geojson_to_shape(_feature("Point", [10, 20]), "p1")

    assert isinstance(shape, CircleMarker)
    assert shape.latlng == (20.0, 10.0)
    assert shape.radius == DEFAULT_MARKER_RADIUS
    assert shape.feature_id == "p1"


def test_linestring_becomes_open_path() -> None:
    shape = geojson_to_shape(_feature("LineString", [[0, 1], [2, 3], [4, 5]]))

    assert isinstance(shape, Polyline)
    assert shape.latlngs == [(1.0, 0.0), (3.0, 2.0), (5.0, 4.0)]


def test_polygon_keeps_every_ring() -> None:
    outer = [[0, 0], [4, 0], [4, 4], [0, 4], [0, 0]]
    hole = [[1, 1], [2, 1], [2, 2], [1, 1]]
    shape = geojson_to_shape(_feature("Polygon", [outer, hole]))

    assert isinstance(shape, PolygonShape)
    assert len(shape.polygons) == 1
    assert len(shape.polygons[0]) == 2
    assert shape.polygons[0][1][1] == (1.0, 2.0)
    assert shape.style["fill"] is True


def test_multipolygon_keeps_every_polygon() -> None:
    first = [[[0, 0], [1, 0], [1, 1], [0, 0]]]
    second = [[[5, 5], [6, 5], [6, 6], [5, 5]]]
    shape = geojson_to_shape(_feature("MultiPolygon", [first, second]))

    assert isinstance(shape, PolygonShape)
    assert len(shape.polygons) == 2
    assert shape.bounds() == (0.0, 0.0, 6.0, 6.0)


def test_unsupported_geometry_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="vector_tiles.geometry"):
        shape = geojson_to_shape(_feature("MultiLineString", [[[0, 0], [1, 1]]]))

    assert shape is None
    assert "Unsupported feature type: MultiLineString" in caplog.text


def test_missing_geometry_is_skipped() -> None:
    assert geojson_to_shape({"type": "Feature", "properties": {}}) is None


def test_geometry_bbox_for_point_is_degenerate() -> None:
    assert geometry_bbox({"type": "Point", "coordinates": [10, 20]}) == (10.0, 20.0, 10.0, 20.0)


def test_geometry_bbox_encloses_all_coordinates() -> None:
    geometry = {"type": "LineString", "coordinates": [[3, -1], [-2, 5], [7, 2]]}

    assert geometry_bbox(geometry) == (-2.0, -1.0, 7.0, 5.0)
    assert geometry_bbox({"type": "Polygon", "coordinates": []}) is None


def test_normalize_geometry_type_accepts_protobuf_codes() -> None:
    assert normalize_geometry_type(1) == "Point"
    assert normalize_geometry_type(2) == "LineString"
    assert normalize_geometry_type(3) == "Polygon"
    assert normalize_geometry_type(7) is None


def test_swap_coordinates_ignores_booleans() -> None:
    assert swap_coordinates([[1, 2], [3, 4]]) == [(2.0, 1.0), (4.0, 3.0)]
    assert swap_coordinates([True, False]) == [True, False]


def test_tile_bounds_of_world_tile() -> None:
    west, south, east, north = tile_bounds(0, 0, 0)

    assert west == -180.0
    assert east == 180.0
    assert north == pytest.approx(85.0511287798)
    assert south == pytest.approx(-85.0511287798)


def test_tile_units_map_to_tile_corners() -> None:
    west, south, east, north = tile_bounds(5, 3, 2)

    assert tile_units_to_lonlat(0, 0, 4096, 3, 2, 5) == pytest.approx((west, north))
    assert tile_units_to_lonlat(4096, 4096, 4096, 3, 2, 5) == pytest.approx((east, south))
    assert not math.isnan(tile_units_to_lonlat(2048, 2048, 4096, 3, 2, 5)[1])
