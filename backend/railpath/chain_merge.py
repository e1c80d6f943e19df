from __future__ import annotations

from collections.abc import Sequence

from .bounded_bfs import EdgeRef
from .geometry import Coordinate, bearing_deg, bearing_delta_deg, closest_point_on_polyline, distance_m
from .pathfinding_errors import ChainMergeAmbiguousError
from .settings import settings

# Requested endpoints closer than this to the chain end replace it rather than extend it.
EXACT_POINT_EPSILON_M = 0.01
BACKTRACK_THRESHOLD_DEG = 140.0


def _dedupe(coords: Sequence[Coordinate]) -> list[Coordinate]:
    out: list[Coordinate] = []
    for coord in coords:
        if out and out[-1] == coord:
            continue
        out.append(coord)
    return out


def _stitch(refs: Sequence[EdgeRef], seam_tolerance_m: float) -> tuple[list[Coordinate], int, int]:
    chain: list[Coordinate] = []
    first_span = 0
    last_span_from = 0
    for position, ref in enumerate(refs):
        oriented = ref.oriented_coordinates()
        if not chain:
            chain.extend(oriented)
            first_span = len(oriented)
            continue
        gap = distance_m(chain[-1], oriented[0])
        if gap > seam_tolerance_m:
            raise ChainMergeAmbiguousError(
                reason_code="chain_merge_ambiguous",
                message="Consecutive edges do not meet at a shared node.",
                details={"position": position, "edge_id": ref.edge_id, "gap_m": round(gap, 3)},
            )
        last_span_from = len(chain) - 1
        chain.extend(oriented[1:])
    return chain, first_span, last_span_from


def truncate_end(chain: list[Coordinate], true_end: Coordinate, span_from: int = 0) -> list[Coordinate]:
    window = chain[span_from:]
    if len(window) < 2:
        out = list(chain)
    else:
        projection = closest_point_on_polyline(window, true_end)
        cut = span_from + projection.segment_index
        out = chain[: cut + 1]
        if out[-1] != projection.point:
            out.append(projection.point)
    if distance_m(out[-1], true_end) <= EXACT_POINT_EPSILON_M:
        out[-1] = true_end
    else:
        out.append(true_end)
    return out


def truncate_start(chain: list[Coordinate], true_start: Coordinate, span: int | None = None) -> list[Coordinate]:
    window = chain[: len(chain) if span is None else min(span, len(chain))]
    if len(window) < 2:
        out = list(chain)
    else:
        projection = closest_point_on_polyline(window, true_start)
        out = chain[projection.segment_index + 1 :]
        if not out or out[0] != projection.point:
            out.insert(0, projection.point)
    if distance_m(out[0], true_start) <= EXACT_POINT_EPSILON_M:
        out[0] = true_start
    else:
        out.insert(0, true_start)
    return out


def merge_chain(
    refs: Sequence[EdgeRef],
    true_start: Coordinate,
    true_end: Coordinate,
    *,
    seam_tolerance_m: float | None = None,
) -> tuple[Coordinate, ...]:
    """Orient, stitch and truncate the traversed edges into one polyline.

    Seams must agree within twice the node tolerance; the duplicate seam
    vertex is dropped. The result begins at ``true_start`` and ends at
    ``true_end``.
    """
    if not refs:
        raise ChainMergeAmbiguousError(
            reason_code="chain_merge_ambiguous",
            message="No edges to merge.",
            details={"edge_count": 0},
        )
    tolerance = 2.0 * settings.node_tolerance_m if seam_tolerance_m is None else float(seam_tolerance_m)
    chain, first_span, last_span_from = _stitch(refs, tolerance)

    # The end is cut first so the start window keeps its original indices.
    chain = truncate_end(chain, true_end, last_span_from)
    chain = truncate_start(chain, true_start, first_span)
    merged = _dedupe(chain)
    if len(merged) < 2:
        raise ChainMergeAmbiguousError(
            reason_code="chain_merge_ambiguous",
            message="Merged chain has fewer than two points.",
            details={"edge_count": len(refs), "point_count": len(merged)},
        )
    return tuple(merged)


def raw_concatenation(refs: Sequence[EdgeRef]) -> tuple[Coordinate, ...]:
    """Stored coordinates of each edge in path order, without reorienting."""
    coords: list[Coordinate] = []
    for ref in refs:
        coords.extend(ref.edge.coordinates)
    return tuple(_dedupe(coords))


def has_backtracking(refs: Sequence[EdgeRef], *, threshold_deg: float = BACKTRACK_THRESHOLD_DEG) -> bool:
    for prev, nxt in zip(refs, refs[1:]):
        a = prev.oriented_coordinates()
        b = nxt.oriented_coordinates()
        incoming = bearing_deg(a[-2], a[-1])
        outgoing = bearing_deg(b[0], b[1])
        if bearing_delta_deg(incoming, outgoing) > threshold_deg:
            return True
    return False
