from __future__ import annotations

from collections import deque
from collections.abc import Collection
from dataclasses import dataclass

from .geometry import Coordinate
from .graph_builder import GraphEdge, RailGraph
from .settings import settings


@dataclass(frozen=True)
class EdgeRef:
    edge: GraphEdge
    reversed: bool

    @property
    def edge_id(self) -> str:
        return self.edge.reported_id

    def oriented_coordinates(self) -> tuple[Coordinate, ...]:
        coords = self.edge.coordinates
        return tuple(reversed(coords)) if self.reversed else coords

    def flipped(self) -> "EdgeRef":
        return EdgeRef(edge=self.edge, reversed=not self.reversed)


class PathNotFoundError(ValueError):
    pass


def _unwind(
    parents: dict[int, tuple[int, EdgeRef] | None],
    end_node: int,
) -> tuple[EdgeRef, ...]:
    refs: list[EdgeRef] = []
    node = end_node
    while True:
        link = parents[node]
        if link is None:
            break
        node, ref = link
        refs.append(ref)
    refs.reverse()
    return tuple(refs)


def _bounded_bfs(
    *,
    graph: RailGraph,
    start_node: int,
    end_node: int,
    max_length_km: float,
    banned_edges: Collection[str],
    max_expansions: int,
    counters: dict[str, int],
) -> tuple[EdgeRef, ...]:
    # parents doubles as the visited set: a node is claimed by its first arrival.
    parents: dict[int, tuple[int, EdgeRef] | None] = {start_node: None}
    queue: deque[tuple[int, float]] = deque([(start_node, 0.0)])
    while queue:
        if counters["explored_nodes"] >= max_expansions:
            raise PathNotFoundError("expansion budget exceeded")
        node, walked_km = queue.popleft()
        counters["explored_nodes"] += 1
        if node == end_node:
            return _unwind(parents, end_node)
        for edge, nxt in graph.neighbours(node):
            if edge.key in banned_edges or nxt in parents:
                continue
            reached_km = walked_km + edge.length_km
            if reached_km > max_length_km:
                counters["pruned_length"] += 1
                continue
            parents[nxt] = (node, EdgeRef(edge=edge, reversed=edge.start_node != node))
            counters["enqueued_nodes"] += 1
            queue.append((nxt, reached_km))
    raise PathNotFoundError("no path within length ceiling")


def find_path_with_stats(
    graph: RailGraph,
    start_node: int,
    end_node: int,
    max_length_km: float,
    *,
    banned_edges: Collection[str] | None = None,
    max_expansions: int | None = None,
) -> tuple[tuple[EdgeRef, ...] | None, dict[str, int | str]]:
    """Breadth-first search for any edge sequence from start to end under a length ceiling.

    Returns ``(refs, stats)``; ``refs`` is ``None`` when the bounded frontier
    is exhausted or the expansion budget runs out, and ``()`` when both
    nodes coincide.
    """
    counters = {"explored_nodes": 0, "enqueued_nodes": 0, "pruned_length": 0}
    budget = int(settings.bfs_max_expansions if max_expansions is None else max_expansions)
    if start_node == end_node:
        return (), {**counters, "termination_reason": "same_node", "no_path_reason": ""}
    try:
        refs = _bounded_bfs(
            graph=graph,
            start_node=start_node,
            end_node=end_node,
            max_length_km=float(max_length_km),
            banned_edges=banned_edges or frozenset(),
            max_expansions=max(1, budget),
            counters=counters,
        )
    except PathNotFoundError as exc:
        reason = normalize_no_path_reason(str(exc))
        return None, {**counters, "termination_reason": reason, "no_path_reason": reason}
    return refs, {**counters, "termination_reason": "goal_reached", "no_path_reason": ""}


def normalize_no_path_reason(message: str) -> str:
    lowered = str(message or "").strip().lower()
    if "expansion budget" in lowered:
        return "expansion_budget_exceeded"
    return "no_path_found"


def find_path(
    graph: RailGraph,
    start_node: int,
    end_node: int,
    max_length_km: float,
    *,
    banned_edges: Collection[str] | None = None,
    max_expansions: int | None = None,
) -> tuple[EdgeRef, ...] | None:
    refs, _stats = find_path_with_stats(
        graph,
        start_node,
        end_node,
        max_length_km,
        banned_edges=banned_edges,
        max_expansions=max_expansions,
    )
    return refs
