from vector_tiles.spatial_index import IndexEntry, TileIndex


def _ids(entries):
    return sorted(entry.id for entry in entries)


def _grid_entries(count):
    return [IndexEntry(i, i, i + 0.5, i + 0.5, id=f"e{i}") for i in range(count)]


def test_bulk_load_then_search() -> None:
    entries = _grid_entries(10)
    index = TileIndex().load(entries)

    assert len(index) == 10
    assert _ids(index.search(-1, -1, 100, 100)) == _ids(entries)
    assert _ids(index.search(2.2, 2.2, 3.1, 3.1)) == ["e2", "e3"]
    assert index.search(50, 50, 60, 60) == []


def test_point_entries_are_found_on_the_edge() -> None:
    point = IndexEntry(10, 20, 10, 20, id="p")
    index = TileIndex().load([point])

    assert _ids(index.search(10, 20, 11, 21)) == ["p"]
    assert _ids(index.search(9, 19, 10, 20)) == ["p"]
    assert index.search(10.1, 20.1, 11, 21) == []


def test_inverted_query_box_is_normalised() -> None:
    index = TileIndex().load(_grid_entries(3))

    assert _ids(index.search(3, 3, -1, -1)) == ["e0", "e1", "e2"]


def test_remove_and_reinsert_packed_entry() -> None:
    entries = _grid_entries(3)
    index = TileIndex().load(entries)

    index.remove(entries[1])
    assert entries[1] not in index
    assert _ids(index.search(-1, -1, 10, 10)) == ["e0", "e2"]

    index.insert(entries[1])
    index.insert(entries[1])
    assert entries[1] in index
    assert len(index) == 3
    assert _ids(index.search(-1, -1, 10, 10)) == ["e0", "e1", "e2"]


def test_removing_twice_is_harmless() -> None:
    entries = _grid_entries(2)
    index = TileIndex().load(entries)

    index.remove(entries[0])
    index.remove(entries[0])
    index.remove(IndexEntry(0, 0, 1, 1, id="unknown"))

    assert _ids(index.entries()) == ["e1"]


def test_overflow_entries_are_searchable_and_repacked() -> None:
    index = TileIndex(rebuild_threshold=3).load(_grid_entries(2))
    extra = [IndexEntry(100 + i, 100, 101 + i, 101, id=f"x{i}") for i in range(3)]

    index.insert(extra[0])
    index.insert(extra[1])
    assert _ids(index.search(99, 99, 200, 200)) == ["x0", "x1"]

    index.insert(extra[2])
    assert len(index) == 5
    assert all(entry in index for entry in extra)
    assert _ids(index.search(99, 99, 200, 200)) == ["x0", "x1", "x2"]

    index.remove(extra[0])
    assert _ids(index.search(99, 99, 200, 200)) == ["x1", "x2"]


def test_same_id_in_two_entries_is_kept_apart() -> None:
    first = IndexEntry(0, 0, 1, 1, id="dup")
    second = IndexEntry(5, 5, 6, 6, id="dup")
    index = TileIndex().load([first, second])

    index.remove(first)

    assert index.search(0, 0, 1, 1) == []
    assert index.search(5, 5, 6, 6) == [second]


def test_clear_empties_the_index() -> None:
    index = TileIndex().load(_grid_entries(4))
    index.clear()

    assert len(index) == 0
    assert index.search(-10, -10, 10, 10) == []
