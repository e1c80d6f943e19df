from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class PathfindingError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class NoNearbySegmentError(PathfindingError):
    pass


class SegmentNotFoundError(PathfindingError):
    pass


class DegenerateSplitError(PathfindingError):
    pass


class ChainMergeAmbiguousError(PathfindingError):
    pass

