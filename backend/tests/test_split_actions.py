from __future__ import annotations

import pytest

from railpath.results import SegmentNotFound
from railpath.segment_store import InMemorySegmentStore
from railpath.segments import RailwaySegment, SplitRecord
from railpath.split_actions import remove_split, split_segment, split_segments_geojson, validate_splits


def _store() -> InMemorySegmentStore:
    return InMemorySegmentStore(
        [
            RailwaySegment.from_coordinates("P", [(0.0, 0.0), (0.02, 0.0), (0.04, 0.0)]),
            RailwaySegment.from_coordinates("Q", [(0.04, 0.0), (0.04, 0.02)]),
        ]
    )


def test_split_snaps_click_onto_segment_and_replaces_previous_split() -> None:
    store = _store()
    first = split_segment(store, "P", (0.01, 0.0003))
    assert isinstance(first, SplitRecord)
    assert first.split_id == "split-P"
    assert first.coordinate[0] == pytest.approx(0.01)
    assert first.coordinate[1] == pytest.approx(0.0, abs=1e-12)
    assert first.fraction == pytest.approx(0.25)

    second = split_segment(store, "P", (0.03, -0.0003))
    assert isinstance(second, SplitRecord)
    assert second.fraction == pytest.approx(0.75)
    assert [s.fraction for s in store.load_splits()] == [second.fraction]


def test_split_of_unknown_segment() -> None:
    outcome = split_segment(_store(), "nope", (0.0, 0.0))
    assert isinstance(outcome, SegmentNotFound)
    assert outcome.details == {"part_id": "nope"}


def test_geojson_lists_both_children_and_removal_clears_them() -> None:
    store = _store()
    split_segment(store, "P", (0.02, 0.0))
    collection = split_segments_geojson(store)

    assert collection["type"] == "FeatureCollection"
    props = [f["properties"] for f in collection["features"]]
    assert [p["segment_id"] for p in props] == ["P-1", "P-2"]
    assert [p["segment_index"] for p in props] == [1, 2]
    assert collection["features"][0]["geometry"]["type"] == "LineString"
    assert tuple(collection["features"][1]["geometry"]["coordinates"][0]) == (0.02, 0.0)

    assert remove_split(store, "P") is True
    assert remove_split(store, "P") is False
    assert split_segments_geojson(store)["features"] == []


def test_validate_splits_reports_degenerate_after_reimport() -> None:
    store = _store()
    store.upsert_split(SplitRecord(split_id="split-Q", part_id="Q", coordinate=(0.04, 0.0001), fraction=0.5))
    store.upsert_split(SplitRecord(split_id="split-P", part_id="P", coordinate=(0.02, 0.0), fraction=0.5))

    issues = validate_splits(store, max_offset_m=1.0)
    assert [(i.part_id, i.issue) for i in issues] == [("Q", "degenerate")]
    assert issues[0].to_dict()["offset_m"] == 0.0
