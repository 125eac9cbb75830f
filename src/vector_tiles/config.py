"""Default configuration values for the vector tile layer."""

from __future__ import annotations

from typing import Any, Final, Mapping

# Point features are drawn as circles whose radius is expressed in metres so
# that markers keep their ground size while the map zooms.
DEFAULT_MARKER_RADIUS: Final[float] = 40.0

TILE_SIZE: Final[int] = 256

MIN_ZOOM: Final[float] = 0.0
MAX_ZOOM: Final[float] = 18.0

# Entries inserted after a bulk load live outside the packed tree and are
# scanned linearly.  Once that overflow reaches this size the index is
# repacked.
INDEX_REBUILD_THRESHOLD: Final[int] = 64

EARTH_RADIUS_M: Final[float] = 6378137.0
MERCATOR_LAT_BOUND: Final[float] = 85.05112878

DEFAULT_PATH_STYLE: Final[Mapping[str, Any]] = {
    "stroke": True,
    "color": "#3388ff",
    "weight": 3.0,
    "opacity": 1.0,
    "fill": False,
    "fillColor": None,
    "fillOpacity": 0.2,
    "dashArray": None,
}
