from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from .geometry import Coordinate
from .pathfinding_errors import PathfindingError


@dataclass(frozen=True)
class ChainMergeAmbiguous:
    """Seams could not be reconciled; coordinates are the raw edge concatenation."""

    reason_code: ClassVar[str] = "chain_merge_ambiguous"
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PathResult:
    edge_ids: tuple[str, ...]
    coordinates: tuple[Coordinate, ...]
    length_km: float = 0.0
    ceiling_km: float | None = None
    has_backtracking: bool = False
    merge_issue: ChainMergeAmbiguous | None = None

    @property
    def degraded(self) -> bool:
        return self.merge_issue is not None

    @property
    def starting_segment_id(self) -> str:
        return self.edge_ids[0]

    @property
    def ending_segment_id(self) -> str:
        return self.edge_ids[-1]

    def to_payload(self) -> dict[str, Any]:
        return {
            "edgeIds": list(self.edge_ids),
            "coordinates": [[lon, lat] for lon, lat in self.coordinates],
        }

    def diagnostics(self) -> dict[str, Any]:
        return {
            "length_km": round(self.length_km, 6),
            "ceiling_km": self.ceiling_km,
            "has_backtracking": self.has_backtracking,
            "degraded": self.degraded,
            "merge_issue": None if self.merge_issue is None else self.merge_issue.message,
        }


@dataclass(frozen=True)
class _Failure:
    reason_code: ClassVar[str] = "no_path_found"
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"reason_code": self.reason_code, "message": self.message, "details": dict(self.details)}

    @classmethod
    def from_error(cls, exc: PathfindingError) -> "_Failure":
        return cls(message=exc.message, details=dict(exc.details or {}))


@dataclass(frozen=True)
class NoNearbySegment(_Failure):
    reason_code: ClassVar[str] = "no_nearby_segment"


@dataclass(frozen=True)
class NoPathFound(_Failure):
    reason_code: ClassVar[str] = "no_path_found"


@dataclass(frozen=True)
class SegmentNotFound(_Failure):
    reason_code: ClassVar[str] = "segment_not_found"


@dataclass(frozen=True)
class DegenerateSplit(_Failure):
    reason_code: ClassVar[str] = "degenerate_split"


PathOutcome = PathResult | NoNearbySegment | NoPathFound | SegmentNotFound
