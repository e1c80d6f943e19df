from __future__ import annotations

import time
from collections.abc import Sequence

from .bounded_bfs import EdgeRef, find_path_with_stats
from .catalog_client import HttpSegmentStore
from .chain_merge import has_backtracking, merge_chain, raw_concatenation
from .geometry import Coordinate, as_coordinate, buffered_bbox, distance_m
from .graph_builder import RailGraph, build_graph
from .graph_cache import GRAPH_CACHE, GraphCacheStore, graph_cache_key
from .logging_utils import log_event, log_warning
from .pathfinding_errors import ChainMergeAmbiguousError, NoNearbySegmentError, SegmentNotFoundError
from .results import ChainMergeAmbiguous, NoNearbySegment, NoPathFound, PathOutcome, PathResult, SegmentNotFound
from .segment_store import GeoJsonSegmentStore, InMemorySegmentStore, SegmentStore
from .settings import settings
from .snapping import SegmentBlock, resolve_segment, snap_coordinate, snap_edge_endpoint


def _block_refs(block: SegmentBlock, *, forward: bool) -> tuple[EdgeRef, ...]:
    refs = tuple(EdgeRef(edge=edge, reversed=False) for edge in block.edges)
    if forward:
        return refs
    return tuple(ref.flipped() for ref in reversed(refs))


def _collapse_ids(refs: Sequence[EdgeRef]) -> tuple[str, ...]:
    out: list[str] = []
    for ref in refs:
        if out and out[-1] == ref.edge_id:
            continue
        out.append(ref.edge_id)
    return tuple(out)


def _endpoint_pairs(graph: RailGraph, start: SegmentBlock, end: SegmentBlock) -> list[tuple[int, int]]:
    """(exit of start, entry of end) node pairs.

    The first pair is the legacy snap: the end of ``start`` nearer ``end``,
    then the end of ``end`` nearer that exit. The other pairs follow, nearest first.
    """
    end_first = graph.nodes.coordinate(end.first_node)
    end_last = graph.nodes.coordinate(end.last_node)
    end_mid = ((end_first[0] + end_last[0]) / 2.0, (end_first[1] + end_last[1]) / 2.0)
    exit_snap = snap_edge_endpoint(graph, start.segment_id, end_mid)
    entry_snap = snap_edge_endpoint(graph, end.segment_id, exit_snap.coordinate)
    preferred = (exit_snap.node, entry_snap.node)
    pairs = [(s, e) for s in (start.first_node, start.last_node) for e in (end.first_node, end.last_node)]
    rest = sorted(
        (pair for pair in dict.fromkeys(pairs) if pair != preferred),
        key=lambda pair: distance_m(graph.nodes.coordinate(pair[0]), graph.nodes.coordinate(pair[1])),
    )
    return [preferred, *rest]


class RailPathfinder:
    """Both path entry points over one segment store.

    Each call walks the ascending length ceilings; every attempt reloads the
    region around the endpoints buffered by that ceiling, builds (or reuses)
    a graph and runs one independent bounded search.
    """

    def __init__(
        self,
        store: SegmentStore,
        *,
        ceilings_km: Sequence[float] | None = None,
        cache: GraphCacheStore | None = None,
        store_key: str = "default",
    ) -> None:
        self.store = store
        self.ceilings_km = tuple(sorted(float(c) for c in (ceilings_km or settings.length_ceilings_km())))
        self.cache = cache
        self.store_key = store_key

    def _graph_for(self, anchors: Sequence[Coordinate], ceiling_km: float) -> RailGraph:
        bbox = buffered_bbox(anchors, ceiling_km * settings.region_buffer_factor)
        key = graph_cache_key(store_key=self.store_key, revision=self.store.revision, bbox=bbox)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        graph = build_graph(self.store.load_edges(bbox=bbox), self.store.load_splits())
        if self.cache is not None:
            self.cache.set(key, graph)
        return graph

    def _assemble(
        self,
        refs: Sequence[EdgeRef],
        true_start: Coordinate,
        true_end: Coordinate,
        ceiling_km: float,
    ) -> PathResult:
        issue: ChainMergeAmbiguous | None = None
        try:
            coordinates = merge_chain(refs, true_start, true_end)
        except ChainMergeAmbiguousError as exc:
            coordinates = raw_concatenation(refs)
            issue = ChainMergeAmbiguous(message=exc.message, details=dict(exc.details or {}))
            log_warning(
                "chain_merge_degraded",
                edge_ids=list(_collapse_ids(refs)),
                reason=exc.reason_code,
                error_message=exc.message,
                details=exc.details,
            )
        result = PathResult(
            edge_ids=_collapse_ids(refs),
            coordinates=coordinates,
            length_km=sum(ref.edge.length_km for ref in refs),
            ceiling_km=ceiling_km,
            has_backtracking=has_backtracking(refs),
            merge_issue=issue,
        )
        log_event(
            "path_found",
            edge_count=len(result.edge_ids),
            point_count=len(result.coordinates),
            length_km=round(result.length_km, 3),
            ceiling_km=ceiling_km,
            degraded=result.degraded,
            has_backtracking=result.has_backtracking,
        )
        return result

    def _not_found(self, mode: str, last_reason: str) -> NoPathFound:
        limit = self.ceilings_km[-1] if self.ceilings_km else 0.0
        log_event("path_not_found", mode=mode, ceilings_km=list(self.ceilings_km), no_path_reason=last_reason)
        return NoPathFound(
            message=f"No connection within {limit:g} km.",
            details={"ceilings_km": list(self.ceilings_km), "no_path_reason": last_reason},
        )

    def find_path_by_coordinates(self, point_start: Sequence[float], point_end: Sequence[float]) -> PathOutcome:
        start = as_coordinate(point_start)
        end = as_coordinate(point_end)
        last_reason = "no_path_found"
        for ceiling in self.ceilings_km:
            t0 = time.perf_counter()
            graph = self._graph_for((start, end), ceiling).fork()
            try:
                snapped_start = snap_coordinate(graph, start)
                snapped_end = snap_coordinate(graph, end)
            except NoNearbySegmentError as exc:
                return NoNearbySegment.from_error(exc)
            if snapped_start.node == snapped_end.node:
                log_event("path_not_found", mode="coordinates", no_path_reason="same_node")
                return NoPathFound(
                    message="Start and end resolve to the same point on the network.",
                    details={"no_path_reason": "same_node", "edge_id": snapped_start.edge_id},
                )
            refs, stats = find_path_with_stats(graph, snapped_start.node, snapped_end.node, ceiling)
            log_event(
                "path_attempt",
                mode="coordinates",
                ceiling_km=ceiling,
                edge_count=graph.edge_count,
                found=refs is not None,
                duration_ms=round((time.perf_counter() - t0) * 1000.0, 2),
                **stats,
            )
            if refs is None:
                last_reason = str(stats["no_path_reason"])
                continue
            return self._assemble(refs, start, end, ceiling)
        return self._not_found("coordinates", last_reason)

    def _anchors(self, segment_id: str) -> tuple[Coordinate, ...] | None:
        segment = self.store.get_segment(segment_id)
        if segment is None and "-" in segment_id:
            # Child ids of a persisted split are "<parent>-<n>".
            segment = self.store.get_segment(segment_id.rsplit("-", 1)[0])
        if segment is None or len(segment.coordinates) < 2:
            return None
        return (segment.start, segment.end)

    def find_path_by_endpoints(self, edge_id_start: str, edge_id_end: str) -> PathOutcome:
        start_id = str(edge_id_start)
        end_id = str(edge_id_end)
        start_anchor = self._anchors(start_id)
        end_anchor = self._anchors(end_id)
        if start_anchor is None or end_anchor is None:
            missing = start_id if start_anchor is None else end_id
            return SegmentNotFound(message=f"Segment {missing} does not exist.", details={"segment_id": missing})

        last_reason = "no_path_found"
        for ceiling in self.ceilings_km:
            t0 = time.perf_counter()
            graph = self._graph_for((*start_anchor, *end_anchor), ceiling)
            try:
                start_block = resolve_segment(graph, start_id)
                end_block = resolve_segment(graph, end_id)
            except SegmentNotFoundError as exc:
                return SegmentNotFound.from_error(exc)

            if start_block.segment_id == end_block.segment_id:
                refs = _block_refs(start_block, forward=True)
                return self._assemble(
                    refs,
                    refs[0].oriented_coordinates()[0],
                    refs[-1].oriented_coordinates()[-1],
                    ceiling,
                )

            named_edges = (*start_block.edges, *end_block.edges)
            # The named segments are always walked in full, so they count against the ceiling.
            middle_km = ceiling - sum(edge.length_km for edge in named_edges)
            if middle_km < 0.0:
                log_event(
                    "path_attempt",
                    mode="endpoints",
                    ceiling_km=ceiling,
                    found=False,
                    termination_reason="named_segments_exceed_ceiling",
                    no_path_reason="no_path_found",
                )
                last_reason = "no_path_found"
                continue
            banned = {edge.key for edge in named_edges}
            for exit_node, entry_node in _endpoint_pairs(graph, start_block, end_block):
                middle, stats = find_path_with_stats(graph, exit_node, entry_node, middle_km, banned_edges=banned)
                log_event(
                    "path_attempt",
                    mode="endpoints",
                    ceiling_km=ceiling,
                    edge_count=graph.edge_count,
                    found=middle is not None,
                    duration_ms=round((time.perf_counter() - t0) * 1000.0, 2),
                    **stats,
                )
                if middle is None:
                    last_reason = str(stats["no_path_reason"])
                    continue
                head = _block_refs(start_block, forward=exit_node == start_block.last_node)
                tail = _block_refs(end_block, forward=entry_node == end_block.first_node)
                refs = (*head, *middle, *tail)
                return self._assemble(
                    refs,
                    head[0].oriented_coordinates()[0],
                    tail[-1].oriented_coordinates()[-1],
                    ceiling,
                )
        return self._not_found("endpoints", last_reason)


def store_from_settings() -> SegmentStore:
    if settings.segment_catalog_url:
        return HttpSegmentStore(
            base_url=settings.segment_catalog_url,
            timeout_s=settings.segment_catalog_timeout_s,
            max_retries=settings.segment_catalog_max_retries,
        )
    if settings.segment_catalog_path:
        return GeoJsonSegmentStore(settings.segment_catalog_path, settings.split_store_path or None)
    return InMemorySegmentStore()


def pathfinder_from_settings(store: SegmentStore | None = None) -> RailPathfinder:
    return RailPathfinder(store or store_from_settings(), cache=GRAPH_CACHE)
