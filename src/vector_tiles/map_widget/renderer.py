"""QPainter rendering of vector tile layers."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from PySide6.QtCore import QPointF, QRectF, Qt
from PySide6.QtGui import QBrush, QColor, QFont, QPainter, QPainterPath, QPen

from ..geometry import tile_bounds
from ..shapes import CircleMarker, LatLng, PolygonShape, Polyline, Shape
from .viewport import ViewState, latlng_to_screen, meters_per_pixel

if TYPE_CHECKING:  # pragma: no cover
    from ..layer import VectorTileLayer

_LOGGER = logging.getLogger(__name__)

BACKGROUND_COLOR = "#f2efe9"
DEBUG_OUTLINE_COLOR = "#ff0000"

_CSS_FONT = re.compile(
    r"^\s*(?P<modifiers>(?:(?:italic|oblique|bold|normal|[1-9]00)\s+)*)"
    r"(?P<size>\d+(?:\.\d+)?)px\s+(?P<family>.+?)\s*$",
    re.IGNORECASE,
)


def make_color(value: Any, opacity: float = 1.0) -> QColor:
    """Return a ``QColor`` for a style colour string with ``opacity`` applied."""

    color = QColor(str(value)) if value else QColor()
    if not color.isValid():
        _LOGGER.debug("Invalid colour %r, falling back to black", value)
        color = QColor("#000000")
    color.setAlphaF(max(0.0, min(1.0, float(opacity))) * color.alphaF())
    return color


def parse_dash_array(value: Any) -> list[float]:
    """Turn ``"5, 10"`` or ``[5, 10]`` into a list of dash lengths."""

    if value is None:
        return []
    if isinstance(value, str):
        parts = [part for part in re.split(r"[,\s]+", value.strip()) if part]
    else:
        parts = list(value)
    try:
        dashes = [float(part) for part in parts]
    except (TypeError, ValueError):
        _LOGGER.debug("Ignoring malformed dash array %r", value)
        return []
    if any(dash < 0 for dash in dashes) or not any(dashes):
        return []
    # Canvas repeats an odd list to make it even.
    if len(dashes) % 2:
        dashes *= 2
    return dashes


def parse_css_font(value: str) -> QFont | None:
    """Build a ``QFont`` from a CSS-like ``"[bold] 24px Family"`` string."""

    match = _CSS_FONT.match(value or "")
    if match is None:
        return None
    family = match.group("family").split(",")[0].strip().strip("'\"")
    font = QFont(family)
    font.setPixelSize(max(1, round(float(match.group("size")))))
    modifiers = match.group("modifiers").lower().split()
    font.setBold("bold" in modifiers or any(m in ("600", "700", "800", "900") for m in modifiers))
    font.setItalic("italic" in modifiers or "oblique" in modifiers)
    return font


def make_pen(style: Mapping[str, Any]) -> QPen:
    if not style.get("stroke", True):
        return QPen(Qt.NoPen)

    weight = float(style.get("weight") or 0.0)
    pen = QPen(make_color(style.get("color"), style.get("opacity", 1.0)))
    pen.setWidthF(weight)
    pen.setCapStyle(Qt.PenCapStyle.RoundCap)
    pen.setJoinStyle(Qt.PenJoinStyle.RoundJoin)

    dashes = parse_dash_array(style.get("dashArray"))
    if dashes and weight > 0:
        # Qt expresses dash lengths in multiples of the pen width.
        pen.setDashPattern([dash / weight for dash in dashes])
    return pen


def make_brush(style: Mapping[str, Any]) -> QBrush:
    if not style.get("fill"):
        return QBrush(Qt.NoBrush)
    color = style.get("fillColor") or style.get("color")
    return QBrush(make_color(color, style.get("fillOpacity", 0.2)))


class CanvasRenderer:
    """Draw every attached shape of a set of layers into a ``QPainter``."""

    def __init__(self, *, background: str | None = BACKGROUND_COLOR) -> None:
        self._background = background

    # ------------------------------------------------------------------
    def render(
        self,
        painter: QPainter,
        layers: Iterable["VectorTileLayer"],
        view_state: ViewState,
    ) -> None:
        """Draw the current map scene into ``painter``."""

        if self._background:
            painter.fillRect(0, 0, view_state.width, view_state.height, QColor(self._background))
        painter.setRenderHint(QPainter.Antialiasing, True)

        for layer in layers:
            for shape in layer.get_feature_group().iter_shapes():
                self.draw_shape(painter, shape, view_state)
            if layer.debug:
                self._draw_tile_outlines(painter, layer, view_state)

    # ------------------------------------------------------------------
    def draw_shape(self, painter: QPainter, shape: Shape, view_state: ViewState) -> None:
        painter.save()
        try:
            if isinstance(shape, CircleMarker):
                self._draw_circle(painter, shape, view_state)
            elif isinstance(shape, Polyline):
                self._draw_polyline(painter, shape, view_state)
            elif isinstance(shape, PolygonShape):
                self._draw_polygon(painter, shape, view_state)
        finally:
            painter.restore()

    # ------------------------------------------------------------------
    def _draw_circle(self, painter: QPainter, shape: CircleMarker, view_state: ViewState) -> None:
        lat, lng = shape.latlng
        x, y = latlng_to_screen(lat, lng, view_state)
        style = shape.style

        content = style.get("content")
        font = parse_css_font(style["font"]) if content and style.get("font") else None
        if font is not None:
            # Icon fonts: the glyph replaces the circle.
            painter.setFont(font)
            painter.setPen(QPen(make_color(style.get("color"))))
            painter.drawText(QPointF(x, y), str(content))
            return

        resolution = meters_per_pixel(lat, view_state.zoom, view_state.tile_size)
        radius_px = shape.radius / resolution if resolution > 0 else 0.0
        painter.setPen(make_pen(style))
        painter.setBrush(make_brush(style))
        painter.drawEllipse(QPointF(x, y), radius_px, radius_px)

    # ------------------------------------------------------------------
    def _draw_polyline(self, painter: QPainter, shape: Polyline, view_state: ViewState) -> None:
        if len(shape.latlngs) < 2:
            return
        path = QPainterPath()
        self._append_line(path, shape.latlngs, view_state)
        painter.setPen(make_pen(shape.style))
        painter.setBrush(Qt.NoBrush)
        painter.drawPath(path)

    # ------------------------------------------------------------------
    def _draw_polygon(self, painter: QPainter, shape: PolygonShape, view_state: ViewState) -> None:
        path = QPainterPath()
        path.setFillRule(Qt.OddEvenFill)
        for polygon in shape.polygons:
            for ring in polygon:
                self._append_ring(path, ring, view_state)
        if path.isEmpty():
            return
        painter.setPen(make_pen(shape.style))
        painter.setBrush(make_brush(shape.style))
        painter.drawPath(path)

    # ------------------------------------------------------------------
    def _draw_tile_outlines(
        self, painter: QPainter, layer: "VectorTileLayer", view_state: ViewState
    ) -> None:
        pen = QPen(QColor(DEBUG_OUTLINE_COLOR))
        pen.setWidthF(1.0)
        pen.setCosmetic(True)
        painter.save()
        painter.setPen(pen)
        painter.setBrush(Qt.NoBrush)
        for tile in layer.tiles():
            west, south, east, north = tile_bounds(*tile.coords)
            left, top = latlng_to_screen(north, west, view_state)
            right, bottom = latlng_to_screen(south, east, view_state)
            if right < left:
                right += view_state.world_size
            painter.drawRect(QRectF(QPointF(left, top), QPointF(right, bottom)))
        painter.restore()

    # ------------------------------------------------------------------
    def _append_line(self, path: QPainterPath, latlngs: Sequence[LatLng], view_state: ViewState) -> None:
        points = self._project(latlngs, view_state)
        path.moveTo(*points[0])
        for point in points[1:]:
            path.lineTo(*point)

    # ------------------------------------------------------------------
    def _append_ring(self, path: QPainterPath, ring: Sequence[LatLng], view_state: ViewState) -> None:
        if len(ring) < 3:
            return
        self._append_line(path, ring, view_state)
        path.closeSubpath()

    # ------------------------------------------------------------------
    @staticmethod
    def _project(latlngs: Sequence[LatLng], view_state: ViewState) -> list[tuple[float, float]]:
        """Project a path, keeping consecutive points on the same world copy."""

        world_size = view_state.world_size
        points: list[tuple[float, float]] = []
        for lat, lng in latlngs:
            x, y = latlng_to_screen(lat, lng, view_state)
            if points:
                previous_x = points[-1][0]
                if x - previous_x > world_size / 2.0:
                    x -= world_size
                elif previous_x - x > world_size / 2.0:
                    x += world_size
            points.append((x, y))
        return points


__all__ = [
    "CanvasRenderer",
    "make_brush",
    "make_color",
    "make_pen",
    "parse_css_font",
    "parse_dash_array",
]
