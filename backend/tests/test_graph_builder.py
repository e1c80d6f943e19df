from __future__ import annotations

import math

import pytest

from railpath.graph_builder import NodeIndex, build_graph
from railpath.segments import Original, RailwaySegment, SplitHalf, SplitRecord

# ~0.3 m of longitude on the equator.
NUDGE = 0.3 / 111_195.0


def _segment(segment_id: str, *coords: tuple[float, float]) -> RailwaySegment:
    return RailwaySegment.from_coordinates(segment_id, coords)


def test_node_index_snapping_is_idempotent_and_tolerant() -> None:
    index = NodeIndex(0.5)
    a = index.snap((0.0, 0.0))
    assert index.snap((0.0, 0.0)) == a
    assert index.snap((NUDGE, 0.0)) == a
    b = index.snap((0.001, 0.0))
    assert b != a
    assert index.lookup((0.001 + NUDGE, 0.0)) == b
    assert index.lookup((0.5, 0.5)) is None
    assert len(index) == 2


@pytest.mark.parametrize(("lon", "lat"), [(135.0, 48.0), (35.0, 50.0), (25.0, 50.0), (-122.4, 37.8), (151.2, -33.9)])
@pytest.mark.parametrize("bounded", [True, False])
def test_node_index_merges_close_points_at_any_longitude(lon: float, lat: float, bounded: bool) -> None:
    north = 0.45 / 111_195.0
    east = 0.45 / (111_195.0 * math.cos(math.radians(lat)))
    for i in range(200):
        a = (lon + i * 1e-5, lat + i * 3e-6)
        index = NodeIndex(0.5, max_abs_lat=abs(lat) + 1.0) if bounded else NodeIndex(0.5)
        node = index.snap(a)
        assert index.snap((a[0], a[1] + north)) == node, a
        assert index.snap((a[0] + east, a[1])) == node, a
        assert len(index) == 1


def test_edges_meeting_within_tolerance_share_a_node() -> None:
    graph = build_graph(
        [
            _segment("A", (0.0, 0.0), (0.01, 0.0)),
            _segment("B", (0.01 + NUDGE, 0.0), (0.02, 0.0)),
        ]
    )
    a = graph.edges["A"]
    b = graph.edges["B"]
    assert a.end_node == b.start_node
    assert graph.node_count == 3
    assert {edge.key for edge, _other in graph.neighbours(a.end_node)} == {"A", "B"}


def test_every_endpoint_resolves_to_exactly_one_node() -> None:
    segments = [
        _segment("A", (0.0, 0.0), (0.01, 0.0)),
        _segment("B", (0.01, 0.0), (0.01, 0.01)),
        _segment("C", (0.01, 0.01), (0.0, 0.0)),
    ]
    graph = build_graph(segments)
    for seg in segments:
        edge = graph.edges[seg.segment_id]
        assert graph.nodes.lookup(seg.start) == edge.start_node
        assert graph.nodes.lookup(seg.end) == edge.end_node
        assert graph.nodes.snap(seg.start) == edge.start_node
    assert graph.node_count == 3


def test_degenerate_edges_are_dropped() -> None:
    graph = build_graph(
        [
            _segment("single", (0.0, 0.0)),
            _segment("loop", (0.0, 0.0), (0.001, 0.001), (NUDGE, 0.0)),
            _segment("ok", (0.0, 0.0), (0.01, 0.0)),
        ]
    )
    assert set(graph.edges) == {"ok"}
    assert set(graph.dropped_edge_ids) == {"single", "loop"}


def test_split_replaces_parent_with_two_children() -> None:
    parent = _segment("P", (0.0, 0.0), (0.02, 0.0), (0.04, 0.0))
    split = SplitRecord(split_id="split-P", part_id="P", coordinate=(0.01, 0.0), fraction=0.25)
    graph = build_graph([parent], [split])

    assert "P" not in graph.edges
    assert graph.children_by_parent["P"] == ("P-1", "P-2")
    first = graph.edges["P-1"]
    second = graph.edges["P-2"]
    assert first.provenance == SplitHalf(parent_id="P", half_index=1)
    assert second.reported_id == "P-2"
    assert first.coordinates[-1] == second.coordinates[0] == (0.01, 0.0)
    assert first.end_node == second.start_node
    assert first.length_km + second.length_km == pytest.approx(_length_km(parent), rel=1e-9)


def _length_km(segment: RailwaySegment) -> float:
    return build_graph([segment]).edges[segment.segment_id].length_km


def test_degenerate_persisted_split_is_skipped() -> None:
    parent = _segment("P", (0.0, 0.0), (0.09, 0.0))
    split = SplitRecord(split_id="split-P", part_id="P", coordinate=(0.00009, 0.0), fraction=0.001)
    graph = build_graph([parent], [split])

    assert set(graph.edges) == {"P"}
    assert graph.edges["P"].provenance == Original("P")
    assert "P" not in graph.children_by_parent


def test_fork_isolates_mutation() -> None:
    graph = build_graph([_segment("A", (0.0, 0.0), (0.01, 0.0))])
    forked = graph.fork()
    forked.substitute(
        "A",
        (
            ("A~v1", Original("A"), ((0.0, 0.0), (0.005, 0.0))),
            ("A~v2", Original("A"), ((0.005, 0.0), (0.01, 0.0))),
        ),
    )
    assert set(forked.edges) == {"A~v1", "A~v2"}
    assert set(graph.edges) == {"A"}
    assert graph.node_count == 2
    assert forked.node_count == 3
    assert all(edge.key == "A" for node in (0, 1) for edge, _ in graph.neighbours(node))
