"""Mouse, wheel and keyboard navigation for the map widget.

Gestures follow the usual slippy-map conventions: dragging pans once the
cursor has left a small click tolerance, the wheel (or a trackpad) zooms
around the cursor, a double click zooms in by one level (out with Shift) and
the arrow and ``+``/``-`` keys pan and zoom around the view centre.

The handler only translates events.  Zoom requests are clamped here, the
widget applies them.
"""

from __future__ import annotations

import math

from PySide6.QtCore import QObject, QPointF, Qt, Signal

# Pan direction for each arrow key, expressed as a drag of the map content.
_KEY_PAN = {
    Qt.Key_Left: (1.0, 0.0),
    Qt.Key_Right: (-1.0, 0.0),
    Qt.Key_Up: (0.0, 1.0),
    Qt.Key_Down: (0.0, -1.0),
}


class InputHandler(QObject):
    """Turn Qt input events into pan and zoom requests for the map."""

    pan_requested = Signal(QPointF)
    """Screen-space offset to move the map content by."""

    zoom_requested = Signal(float, QPointF)
    """Target zoom and the widget position that must stay fixed."""

    drag_started = Signal()
    drag_finished = Signal()

    ZOOM_PER_NOTCH = 0.5
    WHEEL_PX_PER_ZOOM_LEVEL = 60.0
    CLICK_TOLERANCE_PX = 3.0
    KEY_PAN_PX = 80.0
    KEY_ZOOM_STEP = 1.0

    def __init__(self, *, min_zoom: float, max_zoom: float, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._min_zoom = min_zoom
        self._max_zoom = max_zoom
        self._press_pos: QPointF | None = None
        self._last_pos = QPointF()
        self._dragging = False

    # ------------------------------------------------------------------
    @property
    def is_dragging(self) -> bool:
        return self._dragging

    # ------------------------------------------------------------------
    def clamp_zoom(self, zoom: float) -> float:
        return max(self._min_zoom, min(self._max_zoom, zoom))

    # ------------------------------------------------------------------
    def handle_mouse_press(self, event) -> bool:
        if event.button() != Qt.LeftButton:
            return False
        self._press_pos = event.position()
        self._last_pos = self._press_pos
        return True

    # ------------------------------------------------------------------
    def handle_mouse_move(self, event) -> bool:
        """Emit pan deltas; movement inside the click tolerance is held back."""

        if self._press_pos is None or not event.buttons() & Qt.LeftButton:
            return False

        position = event.position()
        if not self._dragging:
            offset = position - self._press_pos
            if math.hypot(offset.x(), offset.y()) < self.CLICK_TOLERANCE_PX:
                return False
            self._dragging = True
            self.drag_started.emit()

        delta = position - self._last_pos
        self._last_pos = position
        self.pan_requested.emit(delta)
        return True

    # ------------------------------------------------------------------
    def handle_mouse_release(self, event) -> bool:
        if event.button() != Qt.LeftButton or self._press_pos is None:
            return False
        self._press_pos = None
        if self._dragging:
            self._dragging = False
            self.drag_finished.emit()
        return True

    # ------------------------------------------------------------------
    def handle_double_click(self, event, current_zoom: float) -> bool:
        if event.button() != Qt.LeftButton:
            return False
        step = -self.KEY_ZOOM_STEP if event.modifiers() & Qt.ShiftModifier else self.KEY_ZOOM_STEP
        self._request_zoom(current_zoom, current_zoom + step, event.position())
        return True

    # ------------------------------------------------------------------
    def handle_wheel_event(self, event, current_zoom: float) -> bool:
        """Zoom around the cursor; wheels report notches, trackpads pixels."""

        notches = event.angleDelta().y() / 120.0
        if notches:
            levels = notches * self.ZOOM_PER_NOTCH
        else:
            levels = event.pixelDelta().y() / self.WHEEL_PX_PER_ZOOM_LEVEL
        if not levels:
            return False
        self._request_zoom(current_zoom, current_zoom + levels, event.position())
        return True

    # ------------------------------------------------------------------
    def handle_key_press(self, event, current_zoom: float, center: QPointF) -> bool:
        key = event.key()
        direction = _KEY_PAN.get(key)
        if direction is not None:
            self.pan_requested.emit(QPointF(direction[0] * self.KEY_PAN_PX, direction[1] * self.KEY_PAN_PX))
            return True
        if key in (Qt.Key_Plus, Qt.Key_Equal):
            self._request_zoom(current_zoom, current_zoom + self.KEY_ZOOM_STEP, center)
            return True
        if key == Qt.Key_Minus:
            self._request_zoom(current_zoom, current_zoom - self.KEY_ZOOM_STEP, center)
            return True
        return False

    # ------------------------------------------------------------------
    def _request_zoom(self, current_zoom: float, zoom: float, anchor: QPointF) -> None:
        zoom = self.clamp_zoom(zoom)
        if zoom != current_zoom:
            self.zoom_requested.emit(zoom, anchor)


__all__ = ["InputHandler"]
