import pytest

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor, QImage, QPainter

from conftest import get_feature_id, make_feature
from vector_tiles.layer import VectorTileLayer
from vector_tiles.map_widget.renderer import (
    CanvasRenderer,
    make_brush,
    make_color,
    make_pen,
    parse_css_font,
    parse_dash_array,
)
from vector_tiles.map_widget.viewport import compute_view_state, lonlat_to_world

COORDS = (5, 3, 2)


def _render(layer, view_state, background="#ffffff") -> QImage:
    image = QImage(view_state.width, view_state.height, QImage.Format_ARGB32)
    image.fill(Qt.transparent)
    painter = QPainter(image)
    try:
        CanvasRenderer(background=background).render(painter, [layer], view_state)
    finally:
        painter.end()
    return image


def _view_on(lat, lng, zoom, size=200):
    center_x, center_y = lonlat_to_world(lng, lat, 1.0)
    return compute_view_state(center_x, center_y, zoom, size, size)


def _loaded_layer(fetcher, *features, **kwargs):
    layer = VectorTileLayer(get_feature_id=get_feature_id, fetcher=fetcher, **kwargs)
    layer.create_tile(COORDS)
    fetcher.resolve(COORDS, [{"name": "layer", "features": list(features)}])
    return layer


def test_parse_dash_array() -> None:
    assert parse_dash_array(None) == []
    assert parse_dash_array("5, 10") == [5.0, 10.0]
    assert parse_dash_array("4") == [4.0, 4.0]
    assert parse_dash_array([2, 3, 4]) == [2.0, 3.0, 4.0, 2.0, 3.0, 4.0]
    assert parse_dash_array("a, b") == []
    assert parse_dash_array("0 0") == []


def test_make_pen_applies_weight_and_dashes(qapp) -> None:
    pen = make_pen({"color": "#ff0000", "weight": 2.0, "opacity": 0.5, "dashArray": "4, 2"})

    assert pen.widthF() == 2.0
    assert pen.color().red() == 255
    assert pen.color().alphaF() == pytest.approx(0.5, abs=0.01)
    assert pen.dashPattern() == [2.0, 1.0]


def test_make_pen_without_stroke(qapp) -> None:
    assert make_pen({"stroke": False}).style() == Qt.NoPen


def test_make_brush(qapp) -> None:
    assert make_brush({"fill": False}).style() == Qt.NoBrush

    brush = make_brush({"fill": True, "color": "#00ff00", "fillColor": None, "fillOpacity": 0.2})
    assert brush.color().green() == 255
    assert brush.color().alphaF() == pytest.approx(0.2, abs=0.01)


def test_make_color_falls_back_to_black(qapp) -> None:
    assert make_color("not-a-colour") == QColor("#000000")


def test_parse_css_font(qapp) -> None:
    font = parse_css_font("bold 24px 'Font Awesome', sans-serif")

    assert font is not None
    assert font.pixelSize() == 24
    assert font.bold()
    assert font.family() == "Font Awesome"
    assert parse_css_font("large") is None


def test_circle_marker_is_filled(qapp, fetcher) -> None:
    layer = _loaded_layer(fetcher, make_feature("a", "Point", [10, 20]))
    layer.set_feature_style("a", {"fillColor": "#ff0000", "fillOpacity": 1.0, "stroke": False})

    image = _render(layer, _view_on(20, 10, zoom=16))

    center = image.pixelColor(100, 100)
    assert center.red() > 200
    assert center.green() < 60
    corner = image.pixelColor(2, 2)
    assert corner == QColor("#ffffff")


def test_polygon_holes_use_odd_even_fill(qapp, fetcher) -> None:
    outer = [[9, 19], [11, 19], [11, 21], [9, 21], [9, 19]]
    hole = [[9.5, 19.5], [10.5, 19.5], [10.5, 20.5], [9.5, 20.5], [9.5, 19.5]]
    layer = _loaded_layer(fetcher, make_feature("poly", "Polygon", [outer, hole]))
    layer.set_feature_style("poly", {"fillColor": "#0000ff", "fillOpacity": 1.0, "stroke": False})

    view = _view_on(20, 10, zoom=7)
    image = _render(layer, view)

    assert image.pixelColor(100, 100) == QColor("#ffffff")
    ring_x = 100 + int((10.75 - 10) / 360 * view.world_size)
    ring_pixel = image.pixelColor(ring_x, 100)
    assert ring_pixel.blue() > 200
    assert ring_pixel.red() < 60


def test_hidden_features_are_not_drawn(qapp, fetcher) -> None:
    layer = _loaded_layer(fetcher, make_feature("a", "Point", [10, 20], kind="cafe"))
    layer.set_feature_style("a", {"fillColor": "#ff0000", "fillOpacity": 1.0})
    layer.hide_by_property("kind", "cafe")

    image = _render(layer, _view_on(20, 10, zoom=16))

    assert image.pixelColor(100, 100) == QColor("#ffffff")


def test_font_marker_replaces_circle(qapp, fetcher) -> None:
    layer = _loaded_layer(fetcher, make_feature("a", "Point", [10, 20]))
    layer.set_feature_style(
        "a",
        {"fillColor": "#ff0000", "fillOpacity": 1.0, "color": "#0000ff", "content": "X", "font": "48px sans-serif"},
    )

    image = _render(layer, _view_on(20, 10, zoom=16))

    below_left = image.pixelColor(95, 105)
    assert not (below_left.red() > 200 and below_left.green() < 60)


def test_debug_layer_outlines_tiles(qapp, fetcher) -> None:
    layer = VectorTileLayer(get_feature_id=get_feature_id, fetcher=fetcher, debug=True)
    layer.create_tile((1, 0, 0))

    image = _render(layer, compute_view_state(0.5, 0.5, 1, 512, 512))

    edge = min(image.pixelColor(255, 128).green(), image.pixelColor(256, 128).green())
    assert edge < 200
    assert image.pixelColor(128, 128) == QColor("#ffffff")
