"""QWidget that displays vector tile layers and drives their tile grid."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtCore import QPointF, Qt, QTimer, Signal
from PySide6.QtGui import QCloseEvent, QPainter
from PySide6.QtWidgets import QWidget

from ..config import MAX_ZOOM, MIN_ZOOM, TILE_SIZE
from .input_handler import InputHandler
from .renderer import CanvasRenderer
from .tile_grid import TileGrid
from .viewport import ViewState, compute_view_state, lonlat_to_world, world_to_lonlat

if TYPE_CHECKING:  # pragma: no cover
    from ..layer import VectorTileLayer


class VectorTileMapWidget(QWidget):
    """Interactive map: drag to pan, wheel to zoom."""

    viewChanged = Signal(float, float, float)
    """Signal emitted with ``(lat, lng, zoom)`` whenever the camera moves."""

    DEFAULT_ZOOM = 2.0

    def __init__(
        self,
        parent: QWidget | None = None,
        *,
        min_zoom: float = MIN_ZOOM,
        max_zoom: float = MAX_ZOOM,
        tile_size: int = TILE_SIZE,
    ) -> None:
        super().__init__(parent)
        self._min_zoom = min_zoom
        self._max_zoom = max_zoom
        self._tile_size = tile_size

        self._center_x = 0.5
        self._center_y = 0.5
        self._zoom = self.DEFAULT_ZOOM
        self._layers: list["VectorTileLayer"] = []

        self.tile_grid = TileGrid(self)
        self._renderer = CanvasRenderer()
        self._input_handler = InputHandler(min_zoom=min_zoom, max_zoom=max_zoom, parent=self)
        self._input_handler.pan_requested.connect(self._on_pan_requested)
        self._input_handler.zoom_requested.connect(self._on_zoom_requested)
        self._input_handler.drag_started.connect(lambda: self.setCursor(Qt.ClosedHandCursor))
        self._input_handler.drag_finished.connect(self.unsetCursor)

        # Coalesce repaints triggered by bursts of tile loads.
        self._update_timer = QTimer(self)
        self._update_timer.setSingleShot(True)
        self._update_timer.setInterval(16)
        self._update_timer.timeout.connect(self.update)

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setMinimumSize(320, 240)

    # ------------------------------------------------------------------
    @property
    def zoom(self) -> float:
        return self._zoom

    # ------------------------------------------------------------------
    def layers(self) -> list["VectorTileLayer"]:
        return list(self._layers)

    # ------------------------------------------------------------------
    def add_layer(self, layer: "VectorTileLayer") -> "VectorTileLayer":
        """Attach ``layer`` to this map's tile grid."""

        if layer in self._layers:
            return layer
        self._layers.append(layer)
        layer.changed.connect(self._schedule_update)
        layer.add_to(self.tile_grid)
        self._refresh_grid()
        return layer

    # ------------------------------------------------------------------
    def remove_layer(self, layer: "VectorTileLayer") -> None:
        if layer not in self._layers:
            return
        self._layers.remove(layer)
        layer.changed.disconnect(self._schedule_update)
        layer.remove()
        self.update()

    # ------------------------------------------------------------------
    def set_zoom(self, zoom: float) -> None:
        """Clamp ``zoom`` to the supported range and refresh the view."""

        zoom = max(self._min_zoom, min(self._max_zoom, zoom))
        if zoom == self._zoom:
            return
        self._zoom = zoom
        self._view_changed()

    # ------------------------------------------------------------------
    def center_on(self, lat: float, lng: float, zoom: float | None = None) -> None:
        """Move the camera so ``(lat, lng)`` becomes the viewport centre."""

        if zoom is not None:
            self._zoom = max(self._min_zoom, min(self._max_zoom, zoom))
        world_x, world_y = lonlat_to_world(lng, lat, 1.0)
        self._center_x = world_x % 1.0
        self._center_y = world_y
        self._wrap_center()
        self._view_changed()

    # ------------------------------------------------------------------
    def center(self) -> tuple[float, float]:
        """Return the ``(lat, lng)`` of the viewport centre."""

        lng, lat = world_to_lonlat(self._center_x, self._center_y, 1.0)
        return lat, lng

    # ------------------------------------------------------------------
    def view_state(self) -> ViewState:
        return compute_view_state(
            self._center_x,
            self._center_y,
            self._zoom,
            max(1, self.width()),
            max(1, self.height()),
            self._tile_size,
            min_tile_zoom=int(self._min_zoom),
            max_tile_zoom=int(self._max_zoom),
        )

    # ------------------------------------------------------------------
    def shutdown(self) -> None:
        """Stop every layer's background work before the widget goes away."""

        for layer in list(self._layers):
            layer.shutdown()

    # ------------------------------------------------------------------
    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        try:
            self._renderer.render(painter, self._layers, self.view_state())
        finally:
            painter.end()

    # ------------------------------------------------------------------
    def closeEvent(self, event: QCloseEvent) -> None:  # type: ignore[override]
        """Tear down background threads before the widget is destroyed."""

        self.shutdown()
        super().closeEvent(event)

    # ------------------------------------------------------------------
    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self._wrap_center()
        self._refresh_grid()

    # ------------------------------------------------------------------
    def mousePressEvent(self, event) -> None:  # type: ignore[override]
        self._input_handler.handle_mouse_press(event)
        super().mousePressEvent(event)

    # ------------------------------------------------------------------
    def mouseMoveEvent(self, event) -> None:  # type: ignore[override]
        self._input_handler.handle_mouse_move(event)
        super().mouseMoveEvent(event)

    # ------------------------------------------------------------------
    def mouseReleaseEvent(self, event) -> None:  # type: ignore[override]
        self._input_handler.handle_mouse_release(event)
        super().mouseReleaseEvent(event)

    # ------------------------------------------------------------------
    def mouseDoubleClickEvent(self, event) -> None:  # type: ignore[override]
        if self._input_handler.handle_double_click(event, self._zoom):
            event.accept()
            return
        super().mouseDoubleClickEvent(event)

    # ------------------------------------------------------------------
    def wheelEvent(self, event) -> None:  # type: ignore[override]
        if self._input_handler.handle_wheel_event(event, self._zoom):
            event.accept()
            return
        super().wheelEvent(event)

    # ------------------------------------------------------------------
    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        center = QPointF(self.width() / 2.0, self.height() / 2.0)
        if self._input_handler.handle_key_press(event, self._zoom, center):
            event.accept()
            return
        super().keyPressEvent(event)

    # ------------------------------------------------------------------
    def _schedule_update(self) -> None:
        if not self._update_timer.isActive():
            self._update_timer.start()

    # ------------------------------------------------------------------
    def _refresh_grid(self) -> None:
        self.tile_grid.update_view(self.view_state())

    # ------------------------------------------------------------------
    def _view_changed(self) -> None:
        self._refresh_grid()
        self.update()
        lat, lng = self.center()
        self.viewChanged.emit(lat, lng, self._zoom)

    # ------------------------------------------------------------------
    def _world_size(self) -> float:
        return float(self._tile_size * (2 ** self._zoom))

    # ------------------------------------------------------------------
    def _on_pan_requested(self, delta: QPointF) -> None:
        """Translate drag gestures from screen space to world space."""

        world_size = self._world_size()
        self._center_x -= delta.x() / world_size
        self._center_y -= delta.y() / world_size
        self._wrap_center()
        self._view_changed()

    # ------------------------------------------------------------------
    def _on_zoom_requested(self, new_zoom: float, anchor: QPointF) -> None:
        """Zoom around ``anchor`` to keep the cursor position fixed."""

        world_size = self._world_size()
        view_top_left_x = self._center_x * world_size - self.width() / 2.0
        view_top_left_y = self._center_y * world_size - self.height() / 2.0

        mouse_world_x = (view_top_left_x + anchor.x()) / world_size
        mouse_world_y = (view_top_left_y + anchor.y()) / world_size

        self._zoom = max(self._min_zoom, min(self._max_zoom, new_zoom))
        new_world_size = self._world_size()
        new_center_px = mouse_world_x * new_world_size - anchor.x() + self.width() / 2.0
        new_center_py = mouse_world_y * new_world_size - anchor.y() + self.height() / 2.0

        self._center_x = new_center_px / new_world_size
        self._center_y = new_center_py / new_world_size
        self._wrap_center()
        self._view_changed()

    # ------------------------------------------------------------------
    def _wrap_center(self) -> None:
        """Wrap horizontally and keep the poles out of view vertically."""

        self._center_x %= 1.0

        half_view_ratio = max(1, self.height()) / (2.0 * self._world_size())
        if half_view_ratio >= 0.5:
            self._center_y = 0.5
            return
        self._center_y = min(max(self._center_y, half_view_ratio), 1.0 - half_view_ratio)


__all__ = ["VectorTileMapWidget"]
