from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .geometry import EARTH_RADIUS_M, BBox, Coordinate, bbox_of, distance_m, polyline_length_km
from .logging_utils import log_event, log_warning
from .pathfinding_errors import DegenerateSplitError
from .segments import (
    Original,
    Provenance,
    RailwaySegment,
    SplitHalf,
    SplitRecord,
    split_polyline,
    validate_split_fraction,
)
from .settings import settings

# Haversine metres per degree of arc; never overstates the distance between two points.
METERS_PER_ARC_DEGREE = EARTH_RADIUS_M * math.pi / 180.0
DEFAULT_MAX_ABS_LAT = 85.0
MAX_INDEX_LAT = 89.0


class NodeIndex:
    """Spatial hash of tolerance-sized cells; every coordinate maps to one node id.

    A coordinate joins the nearest existing node within ``tolerance_m``;
    otherwise it founds a new node. Lookups scan the 3x3 cell neighbourhood.
    The longitude axis uses one scale, ``cos(max_abs_lat)``, for the whole
    index rather than each point's own latitude, so within
    ``|lat| <= max_abs_lat`` two points closer than the tolerance never sit
    more than one cell apart on either axis.
    """

    def __init__(self, tolerance_m: float, *, max_abs_lat: float = DEFAULT_MAX_ABS_LAT) -> None:
        self.tolerance_m = max(1e-6, float(tolerance_m))
        self.max_abs_lat = min(MAX_INDEX_LAT, abs(float(max_abs_lat)))
        self._x_scale = METERS_PER_ARC_DEGREE * math.cos(math.radians(self.max_abs_lat))
        self._cells: dict[tuple[int, int], list[int]] = {}
        self._coordinates: list[Coordinate] = []

    def __len__(self) -> int:
        return len(self._coordinates)

    def _cell(self, coord: Coordinate) -> tuple[int, int]:
        lon, lat = coord
        x_m = lon * self._x_scale
        y_m = lat * METERS_PER_ARC_DEGREE
        return (int(math.floor(x_m / self.tolerance_m)), int(math.floor(y_m / self.tolerance_m)))

    def lookup(self, coord: Coordinate) -> int | None:
        cx, cy = self._cell(coord)
        best: int | None = None
        best_dist = math.inf
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for node in self._cells.get((cx + dx, cy + dy), ()):
                    dist = distance_m(coord, self._coordinates[node])
                    if dist <= self.tolerance_m and dist < best_dist:
                        best = node
                        best_dist = dist
        return best

    def snap(self, coord: Coordinate) -> int:
        existing = self.lookup(coord)
        if existing is not None:
            return existing
        node = len(self._coordinates)
        self._coordinates.append(coord)
        self._cells.setdefault(self._cell(coord), []).append(node)
        return node

    def coordinate(self, node: int) -> Coordinate:
        return self._coordinates[node]

    def copy(self) -> "NodeIndex":
        out = NodeIndex(self.tolerance_m, max_abs_lat=self.max_abs_lat)
        out._cells = {key: list(nodes) for key, nodes in self._cells.items()}
        out._coordinates = list(self._coordinates)
        return out


@dataclass(frozen=True)
class GraphEdge:
    key: str
    provenance: Provenance
    coordinates: tuple[Coordinate, ...]
    start_node: int
    end_node: int
    length_km: float
    bbox: BBox

    @property
    def reported_id(self) -> str:
        return self.provenance.reported_id

    def other_node(self, node: int) -> int:
        return self.end_node if node == self.start_node else self.start_node


@dataclass
class RailGraph:
    nodes: NodeIndex
    edges: dict[str, GraphEdge] = field(default_factory=dict)
    adjacency: dict[int, list[tuple[GraphEdge, int]]] = field(default_factory=dict)
    children_by_parent: dict[str, tuple[str, ...]] = field(default_factory=dict)
    dropped_edge_ids: tuple[str, ...] = ()

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def neighbours(self, node: int) -> list[tuple[GraphEdge, int]]:
        return self.adjacency.get(node, [])

    def add_edge(self, key: str, provenance: Provenance, coordinates: Sequence[Coordinate]) -> GraphEdge | None:
        coords = tuple(coordinates)
        if len(coords) < 2:
            log_warning("graph_edge_dropped", edge_key=key, reason="too_few_coordinates")
            return None
        if distance_m(coords[0], coords[-1]) <= self.nodes.tolerance_m:
            log_warning("graph_edge_dropped", edge_key=key, reason="identical_endpoints")
            return None
        start_node = self.nodes.snap(coords[0])
        end_node = self.nodes.snap(coords[-1])
        if start_node == end_node:
            log_warning("graph_edge_dropped", edge_key=key, reason="identical_endpoints")
            return None
        edge = GraphEdge(
            key=key,
            provenance=provenance,
            coordinates=coords,
            start_node=start_node,
            end_node=end_node,
            length_km=polyline_length_km(coords),
            bbox=bbox_of(coords),
        )
        self.edges[key] = edge
        self.adjacency.setdefault(start_node, []).append((edge, end_node))
        self.adjacency.setdefault(end_node, []).append((edge, start_node))
        return edge

    def remove_edge(self, key: str) -> GraphEdge | None:
        edge = self.edges.pop(key, None)
        if edge is None:
            return None
        for node in (edge.start_node, edge.end_node):
            entries = self.adjacency.get(node)
            if entries is None:
                continue
            entries[:] = [(e, other) for e, other in entries if e.key != key]
        return edge

    def substitute(
        self,
        key: str,
        children: Sequence[tuple[str, Provenance, Sequence[Coordinate]]],
    ) -> tuple[GraphEdge, ...]:
        """Replace edge ``key`` by child edges; returns the children that survived."""
        self.remove_edge(key)
        added: list[GraphEdge] = []
        for child_key, provenance, coords in children:
            edge = self.add_edge(child_key, provenance, coords)
            if edge is not None:
                added.append(edge)
        return tuple(added)

    def fork(self) -> "RailGraph":
        """Independent copy for one query; virtual splits never leak into the source graph."""
        return RailGraph(
            nodes=self.nodes.copy(),
            edges=dict(self.edges),
            adjacency={node: list(entries) for node, entries in self.adjacency.items()},
            children_by_parent=dict(self.children_by_parent),
            dropped_edge_ids=self.dropped_edge_ids,
        )


def _split_children(
    segment: RailwaySegment,
    split: SplitRecord,
) -> tuple[tuple[str, Provenance, tuple[Coordinate, ...]], ...]:
    validate_split_fraction(segment.segment_id, split.fraction)
    head, tail = split_polyline(segment.coordinates, split.coordinate)
    first = SplitHalf(parent_id=segment.segment_id, half_index=1)
    second = SplitHalf(parent_id=segment.segment_id, half_index=2)
    return (
        (first.reported_id, first, head),
        (second.reported_id, second, tail),
    )


def build_graph(
    edges: Iterable[RailwaySegment],
    splits: Iterable[SplitRecord] = (),
    *,
    tolerance_m: float | None = None,
) -> RailGraph:
    segments = list(edges)
    max_abs_lat = max((abs(lat) for segment in segments for _lon, lat in segment.coordinates), default=0.0)
    graph = RailGraph(
        nodes=NodeIndex(
            settings.node_tolerance_m if tolerance_m is None else tolerance_m,
            max_abs_lat=max_abs_lat,
        )
    )
    split_by_part: dict[str, SplitRecord] = {}
    for split in splits:
        # One active split per parent; the last record wins, as with an upsert.
        split_by_part[str(split.part_id)] = split

    seen = 0
    dropped: list[str] = []
    for segment in segments:
        seen += 1
        split = split_by_part.get(segment.segment_id)
        if split is not None and len(segment.coordinates) >= 2:
            try:
                children = _split_children(segment, split)
            except DegenerateSplitError as exc:
                log_warning(
                    "graph_split_skipped",
                    part_id=segment.segment_id,
                    split_id=split.split_id,
                    reason=exc.reason_code,
                    error_message=str(exc),
                )
            else:
                kept = graph.substitute(segment.segment_id, children)
                graph.children_by_parent[segment.segment_id] = tuple(edge.key for edge in kept)
                dropped.extend(key for key, _p, _c in children if key not in graph.edges)
                continue
        if graph.add_edge(segment.segment_id, Original(segment.segment_id), segment.coordinates) is None:
            dropped.append(segment.segment_id)

    graph.dropped_edge_ids = tuple(dropped)
    log_event(
        "graph_built",
        segments_seen=seen,
        edge_count=graph.edge_count,
        node_count=graph.node_count,
        split_parent_count=len(graph.children_by_parent),
        dropped_count=len(dropped),
        tolerance_m=graph.nodes.tolerance_m,
    )
    return graph
