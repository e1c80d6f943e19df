from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from shapely.geometry import LineString, mapping

from .geometry import Coordinate, as_coordinate, closest_point_on_polyline
from .logging_utils import log_event, log_warning
from .pathfinding_errors import DegenerateSplitError
from .results import DegenerateSplit, SegmentNotFound
from .segment_store import SegmentStore
from .segments import SplitRecord, child_segment_id, locate_split, split_polyline, validate_split_fraction
from .settings import settings

SplitOutcome = SplitRecord | DegenerateSplit | SegmentNotFound


def _segment_not_found(part_id: str) -> SegmentNotFound:
    return SegmentNotFound(
        message=f"Segment {part_id} does not exist.",
        details={"part_id": part_id},
    )


def split_segment(store: SegmentStore, part_id: str, click: Coordinate) -> SplitOutcome:
    """Split ``part_id`` at the point of it closest to ``click``, replacing any earlier split."""
    part_id = str(part_id)
    segment = store.get_segment(part_id)
    if segment is None:
        return _segment_not_found(part_id)

    coordinate, fraction = locate_split(segment, as_coordinate(click))
    try:
        validate_split_fraction(part_id, fraction)
        split_polyline(segment.coordinates, coordinate)
    except DegenerateSplitError as exc:
        log_warning("split_rejected", part_id=part_id, fraction=round(fraction, 6), reason=exc.reason_code)
        return DegenerateSplit.from_error(exc)

    record = store.upsert_split(
        SplitRecord(
            split_id=f"split-{part_id}",
            part_id=part_id,
            coordinate=coordinate,
            fraction=fraction,
        )
    )
    log_event(
        "split_upserted",
        part_id=part_id,
        fraction=round(fraction, 6),
        lon=coordinate[0],
        lat=coordinate[1],
        store_revision=store.revision,
    )
    return record


def remove_split(store: SegmentStore, part_id: str) -> bool:
    removed = store.delete_split(str(part_id))
    log_event("split_removed", part_id=str(part_id), removed=removed, store_revision=store.revision)
    return removed


def split_segments_geojson(store: SegmentStore) -> dict[str, Any]:
    features: list[dict[str, Any]] = []
    for split in sorted(store.load_splits(), key=lambda s: s.part_id):
        segment = store.get_segment(split.part_id)
        if segment is None:
            continue
        try:
            halves = split_polyline(segment.coordinates, split.coordinate)
        except DegenerateSplitError:
            continue
        for half_index, coords in enumerate(halves, start=1):
            features.append(
                {
                    "type": "Feature",
                    "geometry": mapping(LineString(coords)),
                    "properties": {
                        "segment_id": child_segment_id(split.part_id, half_index),
                        "part_id": split.part_id,
                        "segment_index": half_index,
                        "split_id": split.split_id,
                    },
                }
            )
    return {"type": "FeatureCollection", "features": features}


@dataclass(frozen=True)
class SplitIssue:
    part_id: str
    split_id: str
    issue: str
    offset_m: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "part_id": self.part_id,
            "split_id": self.split_id,
            "issue": self.issue,
            "offset_m": None if self.offset_m is None else round(self.offset_m, 3),
        }


def validate_splits(store: SegmentStore, *, max_offset_m: float | None = None) -> list[SplitIssue]:
    """Re-check stored splits against the current catalog (after a data import).

    Issues: ``orphaned`` (parent gone), ``moved`` (split point no longer on
    the parent), ``degenerate`` (fraction now within epsilon of an end).
    """
    tolerance = settings.endpoint_tolerance_m if max_offset_m is None else float(max_offset_m)
    issues: list[SplitIssue] = []
    for split in store.load_splits():
        segment = store.get_segment(split.part_id)
        if segment is None or len(segment.coordinates) < 2:
            issues.append(SplitIssue(part_id=split.part_id, split_id=split.split_id, issue="orphaned"))
            continue
        offset = closest_point_on_polyline(segment.coordinates, split.coordinate).distance_m
        if offset > tolerance:
            issues.append(
                SplitIssue(part_id=split.part_id, split_id=split.split_id, issue="moved", offset_m=offset)
            )
            continue
        _closest, fraction = locate_split(segment, split.coordinate)
        try:
            validate_split_fraction(split.part_id, fraction)
        except DegenerateSplitError:
            issues.append(
                SplitIssue(part_id=split.part_id, split_id=split.split_id, issue="degenerate", offset_m=offset)
            )
    return issues
