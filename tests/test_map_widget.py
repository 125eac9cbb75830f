import pytest

from conftest import get_feature_id
from vector_tiles.layer import VectorTileLayer
from vector_tiles.map_widget import VectorTileMapWidget


@pytest.fixture
def widget(qapp):
    widget = VectorTileMapWidget()
    widget.resize(512, 512)
    yield widget
    widget.deleteLater()


def test_add_layer_requests_visible_tiles(widget, fetcher) -> None:
    layer = VectorTileLayer(get_feature_id=get_feature_id, fetcher=fetcher)
    widget.center_on(0, 0, zoom=1)

    widget.add_layer(layer)

    assert layer.map is widget.tile_grid
    assert sorted(layer.tile_keys()) == ["0:0:1", "0:1:1", "1:0:1", "1:1:1"]


def test_zoom_change_invalidates_previous_level(widget, fetcher) -> None:
    layer = VectorTileLayer(get_feature_id=get_feature_id, fetcher=fetcher)
    widget.center_on(0, 0, zoom=1)
    widget.add_layer(layer)
    old_tiles = layer.tiles()

    widget.set_zoom(2)

    assert all(tile.token.cancelled and not tile.valid for tile in old_tiles)
    assert {coords[0] for _, coords in fetcher.calls} == {1, 2}


def test_center_on_reports_view(widget) -> None:
    seen = []
    widget.viewChanged.connect(lambda lat, lng, zoom: seen.append((lat, lng, zoom)))

    widget.center_on(20, 10, zoom=6)

    lat, lng = widget.center()
    assert lat == pytest.approx(20)
    assert lng == pytest.approx(10)
    assert seen[-1] == pytest.approx((20, 10, 6))


def test_set_zoom_is_clamped(widget) -> None:
    widget.set_zoom(99)

    assert widget.zoom == 18


def test_remove_layer_detaches(widget, fetcher) -> None:
    layer = VectorTileLayer(get_feature_id=get_feature_id, fetcher=fetcher)
    widget.center_on(0, 0, zoom=1)
    widget.add_layer(layer)

    widget.remove_layer(layer)

    assert layer.map is None
    assert widget.layers() == []


def test_preview_window_hosts_layer(qapp, tmp_path) -> None:
    from vector_tiles.preview import PreviewWindow

    window = PreviewWindow(str(tmp_path), get_feature_id=get_feature_id)
    try:
        assert window.map_widget.layers() == [window.layer]
        assert window.windowTitle().startswith("Vector Tiles Preview")
    finally:
        window.map_widget.shutdown()
        window.deleteLater()


def test_arrow_key_pans_west(widget) -> None:
    from PySide6.QtCore import QEvent, Qt
    from PySide6.QtGui import QKeyEvent

    widget.center_on(0, 0, zoom=2)

    widget.keyPressEvent(QKeyEvent(QEvent.Type.KeyPress, Qt.Key_Left, Qt.KeyboardModifier.NoModifier))

    lat, lng = widget.center()
    assert lng == pytest.approx(-80 / 1024 * 360)
    assert lat == pytest.approx(0, abs=1e-9)
