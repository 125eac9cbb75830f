import gzip
from pathlib import Path

import mapbox_vector_tile
import pytest
import requests

from vector_tiles.errors import TileAccessError, TileDecodeError, TileFetchError
from vector_tiles.geometry import geometry_bbox, tile_units_to_lonlat
from vector_tiles.tile_source import (
    DirectoryTileSource,
    HttpTileSource,
    TileLayer,
    decode_mvt,
    normalize_layers,
    open_source,
)


def _encode_tile() -> bytes:
    return mapbox_vector_tile.encode(
        [
            {
                "name": "pois",
                "features": [
                    {"geometry": "POINT(2048 2048)", "properties": {"id": "p1", "kind": "cafe"}},
                ],
            },
            {
                "name": "landuse",
                "features": [
                    {
                        "geometry": "POLYGON((0 0, 1024 0, 1024 1024, 0 1024, 0 0))",
                        "properties": {"id": "park-1", "type": "park"},
                    },
                ],
            },
        ],
        default_options={"y_coord_down": True},
    )


def _write_tile(root: Path, z: int, x: int, y: int, data: bytes) -> None:
    path = root / str(z) / str(x) / f"{y}.pbf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def test_decode_mvt_projects_to_lonlat() -> None:
    layers = decode_mvt(_encode_tile(), 5, 3, 2)

    by_name = {layer.name: layer for layer in layers}
    assert set(by_name) == {"pois", "landuse"}

    point = by_name["pois"].features[0]
    assert point["properties"] == {"id": "p1", "kind": "cafe"}
    assert point["geometry"]["type"] == "Point"
    assert tuple(point["geometry"]["coordinates"]) == pytest.approx(
        tile_units_to_lonlat(2048, 2048, 4096, 3, 2, 5)
    )

    polygon = by_name["landuse"].features[0]
    west, north = tile_units_to_lonlat(0, 0, 4096, 3, 2, 5)
    east, south = tile_units_to_lonlat(1024, 1024, 4096, 3, 2, 5)
    assert geometry_bbox(polygon["geometry"]) == pytest.approx((west, south, east, north))


def test_decode_mvt_accepts_gzip() -> None:
    layers = decode_mvt(gzip.compress(_encode_tile()), 5, 3, 2)

    assert sorted(layer.name for layer in layers) == ["landuse", "pois"]


def test_directory_source_reads_and_caches(tmp_path: Path) -> None:
    _write_tile(tmp_path, 5, 3, 2, _encode_tile())
    source = DirectoryTileSource(tmp_path)

    first = source.load_tile(5, 3, 2)
    second = source.load_tile(5, 3, 2)

    assert first == second
    assert sum(len(layer.features) for layer in first) == 2


def test_directory_source_hands_out_independent_copies(tmp_path: Path) -> None:
    _write_tile(tmp_path, 5, 3, 2, _encode_tile())
    source = DirectoryTileSource(tmp_path)

    first = source.load_tile(5, 3, 2)
    first[0].features[0]["properties"]["id"] = "changed"
    first[0].features.clear()

    second = source.load_tile(5, 3, 2)
    assert all(layer.features for layer in second)
    assert "changed" not in [feature["properties"]["id"] for layer in second for feature in layer.features]


def test_directory_source_missing_tile_returns_none(tmp_path: Path) -> None:
    source = DirectoryTileSource(tmp_path)

    assert source.load_tile(5, 3, 2) is None
    assert source.load_tile(2, 0, 9) is None


def test_directory_source_tms_flips_rows(tmp_path: Path) -> None:
    _write_tile(tmp_path, 5, 3, 29, _encode_tile())
    source = DirectoryTileSource(tmp_path, tms=True)

    assert source.load_tile(5, 3, 2) is not None


def test_directory_source_rejects_missing_root(tmp_path: Path) -> None:
    with pytest.raises(TileAccessError):
        DirectoryTileSource(tmp_path / "missing")


class _Response:
    def __init__(self, status_code=200, payload=None, content=b"", content_type="application/json"):
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.headers = {"Content-Type": content_type}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _Session:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requested = []
        self.closed = False

    def get(self, url, timeout=None, headers=None):
        self.requested.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


GEOJSON_TILE = [
    {
        "name": "parks",
        "features": {
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {"id": "f1", "type": "park"},
                    "geometry": {"type": "Point", "coordinates": [10, 20]},
                }
            ],
        },
    }
]


def test_http_source_parses_json_layers() -> None:
    session = _Session(_Response(payload=GEOJSON_TILE))
    source = HttpTileSource("https://tiles.example.com/{z}/{x}/{y}.json", session=session, timeout=3)

    layers = source.load_tile(5, 3, 2)

    assert session.requested == [("https://tiles.example.com/5/3/2.json", 3)]
    assert layers == [TileLayer(name="parks", features=GEOJSON_TILE[0]["features"]["features"])]


def test_http_source_decodes_protobuf_responses() -> None:
    response = _Response(content=_encode_tile(), content_type="application/x-protobuf")
    source = HttpTileSource("https://tiles.example.com/{z}/{x}/{y}", session=_Session(response))

    layers = source.load_tile(5, 3, 2)

    assert sorted(layer.name for layer in layers) == ["landuse", "pois"]


def test_http_source_missing_tile_returns_none() -> None:
    source = HttpTileSource("https://t/{z}/{x}/{y}.json", session=_Session(_Response(status_code=404)))

    assert source.load_tile(1, 0, 0) is None


def test_http_source_server_error_raises() -> None:
    source = HttpTileSource("https://t/{z}/{x}/{y}.json", session=_Session(_Response(status_code=500)))

    with pytest.raises(TileFetchError):
        source.load_tile(1, 0, 0)


def test_http_source_network_error_raises() -> None:
    session = _Session(error=requests.ConnectionError("offline"))
    source = HttpTileSource("https://t/{z}/{x}/{y}.json", session=session)

    with pytest.raises(TileFetchError):
        source.load_tile(1, 0, 0)


def test_http_source_invalid_json_raises() -> None:
    session = _Session(_Response(payload=ValueError("bad json")))
    source = HttpTileSource("https://t/{z}/{x}/{y}.json", session=session)

    with pytest.raises(TileDecodeError):
        source.load_tile(1, 0, 0)


def test_http_source_requires_placeholders() -> None:
    with pytest.raises(TileAccessError):
        HttpTileSource("https://t/tile.json")


def test_http_source_close_closes_session() -> None:
    session = _Session()
    HttpTileSource("https://t/{z}/{x}/{y}", session=session).close()

    assert session.closed


def test_normalize_layers_shapes() -> None:
    collection = {"type": "FeatureCollection", "features": [{"type": "Feature"}]}

    assert normalize_layers(None) == []
    assert normalize_layers(collection) == [TileLayer(name="", features=[{"type": "Feature"}])]
    assert normalize_layers({"roads": collection}) == [TileLayer(name="roads", features=[{"type": "Feature"}])]
    assert normalize_layers([{"name": "a", "features": [{"type": "Feature"}, "junk"]}]) == [
        TileLayer(name="a", features=[{"type": "Feature"}])
    ]

    with pytest.raises(TileDecodeError):
        normalize_layers("nope")
    with pytest.raises(TileDecodeError):
        normalize_layers([1])


def test_open_source_dispatches(tmp_path: Path) -> None:
    assert isinstance(open_source("https://t/{z}/{x}/{y}.pbf"), HttpTileSource)
    assert isinstance(open_source(tmp_path), DirectoryTileSource)

    custom = DirectoryTileSource(tmp_path)
    assert open_source(custom) is custom

    with pytest.raises(TypeError):
        open_source(42)
