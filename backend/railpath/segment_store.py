from __future__ import annotations

import json
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

import ijson

from .geometry import BBox, bbox_intersects, bbox_of
from .logging_utils import log_event, log_warning
from .segments import RailwaySegment, SplitRecord


class SegmentStore(Protocol):
    """Region/bulk edge fetch plus split lookup.

    ``revision`` changes whenever the split table changes; graph caches key on it.
    """

    @property
    def revision(self) -> int: ...

    def load_edges(
        self,
        *,
        ids: Iterable[str] | None = None,
        bbox: BBox | None = None,
    ) -> list[RailwaySegment]: ...

    def load_splits(self) -> list[SplitRecord]: ...

    def get_segment(self, segment_id: str) -> RailwaySegment | None: ...

    def upsert_split(self, split: SplitRecord) -> SplitRecord: ...

    def delete_split(self, part_id: str) -> bool: ...


class InMemorySegmentStore:
    def __init__(
        self,
        segments: Iterable[RailwaySegment] = (),
        splits: Iterable[SplitRecord] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._segments: dict[str, RailwaySegment] = {}
        self._bboxes: dict[str, BBox] = {}
        self._splits: dict[str, SplitRecord] = {}
        self._revision = 0
        for segment in segments:
            self.add_segment(segment)
        for split in splits:
            self._splits[split.part_id] = split

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def __len__(self) -> int:
        with self._lock:
            return len(self._segments)

    def add_segment(self, segment: RailwaySegment) -> None:
        with self._lock:
            self._segments[segment.segment_id] = segment
            if segment.coordinates:
                self._bboxes[segment.segment_id] = bbox_of(segment.coordinates)
            self._revision += 1

    def load_edges(
        self,
        *,
        ids: Iterable[str] | None = None,
        bbox: BBox | None = None,
    ) -> list[RailwaySegment]:
        with self._lock:
            if ids is not None:
                return [self._segments[i] for i in dict.fromkeys(str(i) for i in ids) if i in self._segments]
            if bbox is None:
                return list(self._segments.values())
            return [
                segment
                for segment_id, segment in self._segments.items()
                if segment_id in self._bboxes and bbox_intersects(bbox, self._bboxes[segment_id])
            ]

    def load_splits(self) -> list[SplitRecord]:
        with self._lock:
            return list(self._splits.values())

    def get_segment(self, segment_id: str) -> RailwaySegment | None:
        with self._lock:
            return self._segments.get(str(segment_id))

    def upsert_split(self, split: SplitRecord) -> SplitRecord:
        with self._lock:
            self._splits[split.part_id] = split
            self._revision += 1
        return split

    def delete_split(self, part_id: str) -> bool:
        with self._lock:
            removed = self._splits.pop(str(part_id), None) is not None
            if removed:
                self._revision += 1
        return removed


def _segment_from_feature(raw: Any) -> RailwaySegment | None:
    if not isinstance(raw, dict):
        return None
    geometry = raw.get("geometry")
    if not isinstance(geometry, dict) or geometry.get("type") != "LineString":
        return None
    coords = geometry.get("coordinates")
    if not isinstance(coords, list) or len(coords) < 2:
        return None
    props = raw.get("properties") if isinstance(raw.get("properties"), dict) else {}
    segment_id = raw.get("id", props.get("id", props.get("segment_id")))
    if segment_id is None or str(segment_id).strip() == "":
        return None
    try:
        return RailwaySegment.from_coordinates(segment_id, coords)
    except (TypeError, ValueError, IndexError):
        return None


def stream_catalog(path: Path) -> Iterable[RailwaySegment]:
    """Yield LineString features of a GeoJSON FeatureCollection without loading it whole."""
    with path.open("rb") as fh:
        for raw in ijson.items(fh, "features.item", use_float=True):
            segment = _segment_from_feature(raw)
            if segment is not None:
                yield segment


class GeoJsonSegmentStore(InMemorySegmentStore):
    """Catalog streamed from a GeoJSON file; splits kept in a JSON side file."""

    def __init__(self, catalog_path: str | Path, split_path: str | Path | None = None) -> None:
        self.catalog_path = Path(catalog_path)
        self.split_path = Path(split_path) if split_path else None
        super().__init__(segments=stream_catalog(self.catalog_path), splits=self._read_splits())
        log_event(
            "segment_catalog_loaded",
            catalog_path=str(self.catalog_path),
            segment_count=len(self),
            split_count=len(self.load_splits()),
        )

    def _read_splits(self) -> list[SplitRecord]:
        if self.split_path is None or not self.split_path.exists():
            return []
        payload = json.loads(self.split_path.read_text(encoding="utf-8"))
        rows = payload.get("splits", []) if isinstance(payload, dict) else payload
        out: list[SplitRecord] = []
        for row in rows if isinstance(rows, list) else []:
            try:
                out.append(SplitRecord.from_dict(row))
            except (TypeError, ValueError) as exc:
                log_warning("split_record_invalid", split_path=str(self.split_path), error_message=str(exc))
        return out

    def _write_splits(self) -> None:
        if self.split_path is None:
            return
        self.split_path.parent.mkdir(parents=True, exist_ok=True)
        rows = [split.to_dict() for split in self.load_splits()]
        tmp = self.split_path.with_suffix(self.split_path.suffix + ".tmp")
        tmp.write_text(json.dumps({"splits": rows}, indent=2), encoding="utf-8")
        tmp.replace(self.split_path)

    def upsert_split(self, split: SplitRecord) -> SplitRecord:
        out = super().upsert_split(split)
        self._write_splits()
        return out

    def delete_split(self, part_id: str) -> bool:
        removed = super().delete_split(part_id)
        if removed:
            self._write_splits()
        return removed
