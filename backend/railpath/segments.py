from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .geometry import Coordinate, as_coordinate, closest_point_on_polyline, locate_on_line
from .pathfinding_errors import DegenerateSplitError
from .settings import settings


@dataclass(frozen=True)
class RailwaySegment:
    segment_id: str
    coordinates: tuple[Coordinate, ...]

    @property
    def start(self) -> Coordinate:
        return self.coordinates[0]

    @property
    def end(self) -> Coordinate:
        return self.coordinates[-1]

    @classmethod
    def from_coordinates(cls, segment_id: object, coordinates: Sequence[Sequence[float]]) -> "RailwaySegment":
        return cls(
            segment_id=str(segment_id),
            coordinates=tuple(as_coordinate(c) for c in coordinates),
        )


@dataclass(frozen=True)
class SplitRecord:
    split_id: str
    part_id: str
    coordinate: Coordinate
    fraction: float

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.split_id,
            "part_id": self.part_id,
            "split_coordinate": [self.coordinate[0], self.coordinate[1]],
            "split_fraction": self.fraction,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> "SplitRecord":
        coord = raw.get("split_coordinate") or raw.get("coordinate")
        if not isinstance(coord, (list, tuple)) or len(coord) < 2:
            raise ValueError("split record is missing its coordinate")
        part_id = str(raw.get("part_id", "")).strip()
        if not part_id:
            raise ValueError("split record is missing part_id")
        return cls(
            split_id=str(raw.get("id") or f"split-{part_id}"),
            part_id=part_id,
            coordinate=as_coordinate(coord),  # type: ignore[arg-type]
            fraction=float(raw.get("split_fraction", raw.get("fraction", 0.0))),  # type: ignore[arg-type]
        )


# Provenance of a graph edge. Reported ids are what callers persist as
# starting/ending segment references.


@dataclass(frozen=True)
class Original:
    segment_id: str

    @property
    def reported_id(self) -> str:
        return self.segment_id


@dataclass(frozen=True)
class SplitHalf:
    parent_id: str
    half_index: int

    @property
    def reported_id(self) -> str:
        return child_segment_id(self.parent_id, self.half_index)


@dataclass(frozen=True)
class VirtualHalf:
    """Half of a query-only split; never persisted, reported as its base segment."""

    base_id: str
    half_index: int

    @property
    def reported_id(self) -> str:
        return self.base_id


Provenance = Original | SplitHalf | VirtualHalf


def child_segment_id(parent_id: str, half_index: int) -> str:
    return f"{parent_id}-{int(half_index)}"


def is_degenerate_fraction(fraction: float, *, epsilon: float | None = None) -> bool:
    eps = settings.split_endpoint_epsilon if epsilon is None else float(epsilon)
    return not (eps < float(fraction) < 1.0 - eps)


def validate_split_fraction(part_id: str, fraction: float, *, epsilon: float | None = None) -> None:
    eps = settings.split_endpoint_epsilon if epsilon is None else float(epsilon)
    if is_degenerate_fraction(fraction, epsilon=eps):
        raise DegenerateSplitError(
            reason_code="degenerate_split",
            message="Split point is too close to an endpoint.",
            details={"part_id": str(part_id), "fraction": float(fraction), "epsilon": eps},
        )


def split_polyline(
    coordinates: Sequence[Coordinate],
    split_coordinate: Coordinate,
) -> tuple[tuple[Coordinate, ...], tuple[Coordinate, ...]]:
    """Cut a polyline at ``split_coordinate``; both halves share that exact vertex."""
    projection = closest_point_on_polyline(coordinates, split_coordinate)
    idx = projection.segment_index
    split_at = (float(split_coordinate[0]), float(split_coordinate[1]))

    head = list(coordinates[: idx + 1])
    if head[-1] != split_at:
        head.append(split_at)
    tail = [split_at, *coordinates[idx + 1 :]]
    if len(tail) > 1 and tail[1] == split_at:
        tail.pop(1)
    if len(head) < 2 or len(tail) < 2:
        raise DegenerateSplitError(
            reason_code="degenerate_split",
            message="Split produces a zero-length half.",
            details={"segment_index": idx, "split_coordinate": list(split_at)},
        )
    return tuple(head), tuple(tail)


def locate_split(segment: RailwaySegment, click: Coordinate) -> tuple[Coordinate, float]:
    """Closest point on ``segment`` to ``click`` and the fraction along it."""
    return locate_on_line(segment.coordinates, click)
