import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

pytest.importorskip("PySide6", reason="PySide6 is required for the layer tests", exc_type=ImportError)

from vector_tiles.tile_manager import TileFetcher  # noqa: E402


class ManualFetcher(TileFetcher):
    """Fetcher double whose requests are completed by the test."""

    def __init__(self) -> None:
        super().__init__()
        self.pending: dict[tuple[int, int, int], int] = {}
        self.calls: list[tuple[int, tuple[int, int, int]]] = []
        self.shut_down = False

    def fetch(self, request_id: int, z: int, x: int, y: int) -> None:
        self.pending[(z, x, y)] = request_id
        self.calls.append((request_id, (z, x, y)))

    def resolve(self, coords, payload) -> None:
        self.tile_fetched.emit(self.pending.pop(tuple(coords)), payload)

    def resolve_request(self, request_id: int, payload) -> None:
        self.tile_fetched.emit(request_id, payload)

    def fail(self, coords, message: str = "boom") -> None:
        self.tile_failed.emit(self.pending.pop(tuple(coords)), message)

    def shutdown(self) -> None:
        self.shut_down = True


def make_feature(feature_id, geometry_type, coordinates, **properties):
    return {
        "type": "Feature",
        "properties": {"id": feature_id, **properties},
        "geometry": {"type": geometry_type, "coordinates": coordinates},
    }


def square(lon, lat, size=1.0):
    return [[
        [lon, lat],
        [lon + size, lat],
        [lon + size, lat + size],
        [lon, lat + size],
        [lon, lat],
    ]]


def get_feature_id(feature):
    return feature["properties"]["id"]


@pytest.fixture(scope="session")
def qapp():
    pytest.importorskip("PySide6.QtWidgets", reason="Qt widgets not available", exc_type=ImportError)
    from PySide6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def fetcher():
    return ManualFetcher()
