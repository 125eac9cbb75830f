"""Renderable shapes and the groups that attach them to a map.

Shapes are plain descriptors in target (latitude, longitude) order.  They do
not draw themselves; :class:`~vector_tiles.map_widget.renderer.CanvasRenderer`
walks the feature groups of a layer and paints whatever is attached.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence, Tuple, Union

from .config import DEFAULT_MARKER_RADIUS, DEFAULT_PATH_STYLE

LatLng = Tuple[float, float]


class Shape:
    """Base class holding the identity and the effective style of a shape."""

    kind = "shape"
    _style_defaults: Mapping[str, Any] = {}

    def __init__(self, feature_id: str | None = None) -> None:
        self.feature_id = feature_id
        self.style: dict[str, Any] = {**DEFAULT_PATH_STYLE, **self._style_defaults}

    # ------------------------------------------------------------------
    def set_style(self, style: Mapping[str, Any]) -> "Shape":
        """Replace the effective style with ``style`` layered on the defaults."""

        self.style = {**DEFAULT_PATH_STYLE, **self._style_defaults, **style}
        return self

    # ------------------------------------------------------------------
    def iter_latlngs(self) -> Iterator[LatLng]:  # pragma: no cover - overridden
        raise NotImplementedError

    # ------------------------------------------------------------------
    def bounds(self) -> tuple[float, float, float, float] | None:
        """Return ``(min_lat, min_lng, max_lat, max_lng)`` or ``None`` when empty."""

        lats: list[float] = []
        lngs: list[float] = []
        for lat, lng in self.iter_latlngs():
            lats.append(lat)
            lngs.append(lng)
        if not lats:
            return None
        return min(lats), min(lngs), max(lats), max(lngs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(feature_id={self.feature_id!r})"


class CircleMarker(Shape):
    """A circle centred on ``latlng`` whose ``radius`` is given in metres."""

    kind = "circle"
    _style_defaults = {"fill": True}

    def __init__(
        self,
        latlng: LatLng,
        radius: float = DEFAULT_MARKER_RADIUS,
        feature_id: str | None = None,
    ) -> None:
        super().__init__(feature_id)
        self.latlng: LatLng = (float(latlng[0]), float(latlng[1]))
        self.radius = float(radius)

    def iter_latlngs(self) -> Iterator[LatLng]:
        yield self.latlng


class Polyline(Shape):
    """An open path through ``latlngs``."""

    kind = "polyline"

    def __init__(self, latlngs: Sequence[LatLng], feature_id: str | None = None) -> None:
        super().__init__(feature_id)
        self.latlngs: list[LatLng] = [(float(lat), float(lng)) for lat, lng in latlngs]

    def iter_latlngs(self) -> Iterator[LatLng]:
        yield from self.latlngs


class PolygonShape(Shape):
    """A closed, filled path.

    ``polygons`` is a list of polygons, each a list of rings.  Keeping every
    ring lets the renderer apply an odd-even fill so holes and multi-part
    features come out right.
    """

    kind = "polygon"
    _style_defaults = {"fill": True}

    def __init__(
        self,
        polygons: Sequence[Sequence[Sequence[LatLng]]],
        feature_id: str | None = None,
    ) -> None:
        super().__init__(feature_id)
        self.polygons: list[list[list[LatLng]]] = [
            [[(float(lat), float(lng)) for lat, lng in ring] for ring in polygon]
            for polygon in polygons
        ]

    def iter_latlngs(self) -> Iterator[LatLng]:
        for polygon in self.polygons:
            for ring in polygon:
                yield from ring


GroupMember = Union[Shape, "FeatureGroup"]


class FeatureGroup:
    """Ordered collection of shapes or nested groups attached as a unit."""

    def __init__(self) -> None:
        self._members: dict[int, GroupMember] = {}
        self.parent: FeatureGroup | None = None

    # ------------------------------------------------------------------
    def add_layer(self, member: GroupMember) -> "FeatureGroup":
        """Attach ``member``; adding an already attached member is a no-op."""

        self._members[id(member)] = member
        if isinstance(member, FeatureGroup):
            member.parent = self
        return self

    # ------------------------------------------------------------------
    def remove_layer(self, member: GroupMember) -> "FeatureGroup":
        """Detach ``member`` when present."""

        removed = self._members.pop(id(member), None)
        if isinstance(removed, FeatureGroup):
            removed.parent = None
        return self

    # ------------------------------------------------------------------
    def has_layer(self, member: GroupMember) -> bool:
        return id(member) in self._members

    # ------------------------------------------------------------------
    def add_to(self, parent: "FeatureGroup") -> "FeatureGroup":
        """Attach this group to ``parent`` and return ``self``."""

        parent.add_layer(self)
        return self

    # ------------------------------------------------------------------
    def layers(self) -> list[GroupMember]:
        return list(self._members.values())

    # ------------------------------------------------------------------
    def iter_shapes(self) -> Iterator[Shape]:
        """Yield every shape in this group and its nested groups, in order."""

        for member in list(self._members.values()):
            if isinstance(member, FeatureGroup):
                yield from member.iter_shapes()
            else:
                yield member

    # ------------------------------------------------------------------
    def clear(self) -> None:
        for member in self._members.values():
            if isinstance(member, FeatureGroup):
                member.parent = None
        self._members.clear()

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[GroupMember]:
        return iter(list(self._members.values()))


__all__ = [
    "CircleMarker",
    "FeatureGroup",
    "LatLng",
    "PolygonShape",
    "Polyline",
    "Shape",
]
