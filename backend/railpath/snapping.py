from __future__ import annotations

from dataclasses import dataclass

from .geometry import Coordinate, bbox_intersects, buffered_bbox, closest_point_on_polyline, distance_m
from .graph_builder import GraphEdge, RailGraph
from .logging_utils import log_warning
from .pathfinding_errors import NoNearbySegmentError, SegmentNotFoundError
from .segments import VirtualHalf, split_polyline
from .settings import settings


@dataclass(frozen=True)
class SnapResult:
    node: int
    edge_id: str
    is_exact_endpoint: bool
    coordinate: Coordinate
    distance_m: float = 0.0


@dataclass(frozen=True)
class SegmentBlock:
    """A catalogued segment as it appears in the graph: one edge, or the halves of a split parent."""

    segment_id: str
    edges: tuple[GraphEdge, ...]
    first_node: int
    last_node: int


def nearest_edge(
    graph: RailGraph,
    point: Coordinate,
    *,
    snap_radius_m: float,
) -> tuple[GraphEdge, Coordinate, float] | None:
    window = buffered_bbox([point], snap_radius_m / 1000.0)
    best: tuple[GraphEdge, Coordinate, float] | None = None
    for edge in graph.edges.values():
        if not bbox_intersects(window, edge.bbox):
            continue
        projection = closest_point_on_polyline(edge.coordinates, point)
        if best is None or projection.distance_m < best[2]:
            best = (edge, projection.point, projection.distance_m)
    if best is None or best[2] > snap_radius_m:
        return None
    return best


def snap_coordinate(
    graph: RailGraph,
    point: Coordinate,
    *,
    snap_radius_m: float | None = None,
    endpoint_tolerance_m: float | None = None,
) -> SnapResult:
    """Resolve a free coordinate to a node of ``graph``.

    When the closest point on the nearest edge is not within endpoint
    tolerance of that edge's ends, the edge is replaced in ``graph`` by two
    virtual halves meeting at that point. Callers pass a forked graph.
    """
    radius = settings.snap_radius_m if snap_radius_m is None else float(snap_radius_m)
    tolerance = settings.endpoint_tolerance_m if endpoint_tolerance_m is None else float(endpoint_tolerance_m)

    found = nearest_edge(graph, point, snap_radius_m=radius)
    if found is None:
        log_warning("snap_no_nearby_segment", lon=point[0], lat=point[1], snap_radius_m=radius)
        raise NoNearbySegmentError(
            reason_code="no_nearby_segment",
            message="No railway segment near this point; pick a point on the network.",
            details={"coordinate": [point[0], point[1]], "snap_radius_m": radius},
        )
    edge, closest, offset_m = found

    start = edge.coordinates[0]
    end = edge.coordinates[-1]
    start_gap = distance_m(closest, start)
    end_gap = distance_m(closest, end)
    if min(start_gap, end_gap) <= tolerance:
        node, coord = (edge.start_node, start) if start_gap <= end_gap else (edge.end_node, end)
        return SnapResult(
            node=node,
            edge_id=edge.reported_id,
            is_exact_endpoint=True,
            coordinate=coord,
            distance_m=offset_m,
        )

    head, tail = split_polyline(edge.coordinates, closest)
    base_id = edge.reported_id
    kept = graph.substitute(
        edge.key,
        (
            (f"{edge.key}~v1", VirtualHalf(base_id=base_id, half_index=1), head),
            (f"{edge.key}~v2", VirtualHalf(base_id=base_id, half_index=2), tail),
        ),
    )
    return SnapResult(
        node=kept[0].end_node,
        edge_id=base_id,
        is_exact_endpoint=False,
        coordinate=head[-1],
        distance_m=offset_m,
    )


def resolve_segment(graph: RailGraph, segment_id: str) -> SegmentBlock:
    key = str(segment_id)
    edge = graph.edges.get(key)
    if edge is not None:
        return SegmentBlock(segment_id=key, edges=(edge,), first_node=edge.start_node, last_node=edge.end_node)
    child_keys = graph.children_by_parent.get(key, ())
    children = tuple(graph.edges[k] for k in child_keys if k in graph.edges)
    if len(children) == 2 and children[0].end_node == children[1].start_node:
        return SegmentBlock(
            segment_id=key,
            edges=children,
            first_node=children[0].start_node,
            last_node=children[1].end_node,
        )
    raise SegmentNotFoundError(
        reason_code="segment_not_found",
        message=f"Segment {key} is not part of the loaded network.",
        details={"segment_id": key},
    )


def snap_edge_endpoint(graph: RailGraph, segment_id: str, toward: Coordinate) -> SnapResult:
    """Snap to whichever end of ``segment_id`` lies nearer ``toward``."""
    block = resolve_segment(graph, segment_id)
    first = graph.nodes.coordinate(block.first_node)
    last = graph.nodes.coordinate(block.last_node)
    use_first = distance_m(first, toward) <= distance_m(last, toward)
    return SnapResult(
        node=block.first_node if use_first else block.last_node,
        edge_id=block.segment_id,
        is_exact_endpoint=True,
        coordinate=first if use_first else last,
    )
