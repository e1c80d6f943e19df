from __future__ import annotations

import pytest

from railpath.graph_builder import build_graph
from railpath.pathfinding_errors import NoNearbySegmentError, SegmentNotFoundError
from railpath.segments import RailwaySegment, SplitRecord, VirtualHalf
from railpath.snapping import resolve_segment, snap_coordinate, snap_edge_endpoint

# Degrees of latitude per metre.
M = 1.0 / 111_195.0


def _segment(segment_id: str, *coords: tuple[float, float]) -> RailwaySegment:
    return RailwaySegment.from_coordinates(segment_id, coords)


def _network():
    return build_graph(
        [
            _segment("A", (0.0, 0.0), (0.01, 0.0), (0.02, 0.0)),
            _segment("B", (0.02, 0.0), (0.02, 0.02)),
        ]
    )


def test_snap_within_endpoint_tolerance_reuses_node() -> None:
    graph = _network()
    result = snap_coordinate(graph, (0.02 - 0.5 * M, 0.0))

    assert result.is_exact_endpoint
    assert result.node == graph.edges["A"].end_node
    assert result.coordinate == (0.02, 0.0)
    assert set(graph.edges) == {"A", "B"}


def test_snap_mid_edge_injects_virtual_split() -> None:
    graph = _network()
    result = snap_coordinate(graph, (0.005, 10 * M))

    assert not result.is_exact_endpoint
    assert result.edge_id == "A"
    assert result.distance_m == pytest.approx(10.0, rel=0.01)
    assert "A" not in graph.edges
    head = graph.edges["A~v1"]
    tail = graph.edges["A~v2"]
    assert head.provenance == VirtualHalf(base_id="A", half_index=1)
    assert head.reported_id == tail.reported_id == "A"
    assert head.end_node == tail.start_node == result.node
    assert result.coordinate[0] == pytest.approx(0.005)


def test_snap_twice_on_same_edge_splits_the_virtual_half() -> None:
    graph = _network()
    first = snap_coordinate(graph, (0.005, 0.0))
    second = snap_coordinate(graph, (0.015, 0.0))

    assert first.node != second.node
    assert {edge.reported_id for edge in graph.edges.values()} == {"A", "B"}
    assert len([key for key in graph.edges if key.startswith("A~")]) == 3


def test_snap_beyond_radius_reports_no_nearby_segment() -> None:
    graph = _network()
    with pytest.raises(NoNearbySegmentError) as exc:
        snap_coordinate(graph, (0.01, 200 * M), snap_radius_m=50.0)
    assert exc.value.reason_code == "no_nearby_segment"
    assert set(graph.edges) == {"A", "B"}


def test_snap_edge_endpoint_prefers_end_nearer_other_point() -> None:
    graph = _network()
    toward_north = snap_edge_endpoint(graph, "A", (0.03, 0.03))
    toward_west = snap_edge_endpoint(graph, "A", (-0.01, 0.0))

    assert toward_north.node == graph.edges["A"].end_node
    assert toward_west.node == graph.edges["A"].start_node
    assert toward_north.edge_id == "A"
    assert toward_north.is_exact_endpoint


def test_resolve_segment_spans_split_children() -> None:
    graph = build_graph(
        [_segment("P", (0.0, 0.0), (0.04, 0.0))],
        [SplitRecord(split_id="split-P", part_id="P", coordinate=(0.01, 0.0), fraction=0.25)],
    )
    block = resolve_segment(graph, "P")
    assert [edge.key for edge in block.edges] == ["P-1", "P-2"]
    assert block.first_node == graph.edges["P-1"].start_node
    assert block.last_node == graph.edges["P-2"].end_node
    assert resolve_segment(graph, "P-2").edges == (graph.edges["P-2"],)

    with pytest.raises(SegmentNotFoundError):
        resolve_segment(graph, "missing")
