from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any

import osmium

RAILWAY_KINDS: frozenset[str] = frozenset({"rail", "narrow_gauge"})
CATALOG_PROGRESS_EVERY = max(
    1,
    int(os.environ.get("CATALOG_PROGRESS_EVERY", "250000")),
)


def _log(message: str) -> None:
    print(f"[segment_catalog] {message}", flush=True)


def _write_geojson(*, features: list[dict[str, Any]], output_geojson: Path) -> None:
    output_geojson.parent.mkdir(parents=True, exist_ok=True)
    output_geojson.write_text(
        json.dumps({"type": "FeatureCollection", "features": features}),
        encoding="utf-8",
    )


def _segment_props(segment_id: str, tags: dict[str, str]) -> dict[str, Any]:
    return {
        "id": segment_id,
        "railway": tags.get("railway", ""),
        "name": tags.get("name", ""),
        "usage": tags.get("usage", ""),
        "service": tags.get("service", ""),
        "track_ref": tags.get("railway:track_ref", ""),
    }


def _feature(segment_id: str, tags: dict[str, str], coords: list[list[float]]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "id": segment_id,
        "properties": _segment_props(segment_id, tags),
        "geometry": {"type": "LineString", "coordinates": coords},
    }


def _extract_from_geojson(*, source_geojson: Path) -> list[dict[str, Any]]:
    payload = json.loads(source_geojson.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("invalid source geojson payload")
    features = payload.get("features", [])
    out: list[dict[str, Any]] = []
    for feature in features if isinstance(features, list) else []:
        if not isinstance(feature, dict):
            continue
        props = feature.get("properties", {})
        if not isinstance(props, dict) or str(props.get("railway", "")) not in RAILWAY_KINDS:
            continue
        geometry = feature.get("geometry", {})
        if not isinstance(geometry, dict) or geometry.get("type") != "LineString":
            continue
        coords = geometry.get("coordinates", [])
        segment_id = feature.get("id", props.get("id", props.get("@id")))
        if segment_id is None or not isinstance(coords, list) or len(coords) < 2:
            continue
        tags = {str(k): str(v) for k, v in props.items()}
        out.append(_feature(str(segment_id), tags, [[float(c[0]), float(c[1])] for c in coords]))
    return out


class _RailwayHandler(osmium.SimpleHandler):
    def __init__(self) -> None:
        super().__init__()
        self.features: list[dict[str, Any]] = []
        self.ways_seen = 0
        self.skipped_locations = 0

    def way(self, w: Any) -> None:
        self.ways_seen += 1
        if self.ways_seen % CATALOG_PROGRESS_EVERY == 0:
            _log(f"ways progress seen={self.ways_seen} features={len(self.features)}")
        tags = {str(k): str(v) for k, v in w.tags}
        if tags.get("railway", "") not in RAILWAY_KINDS:
            return
        coords: list[list[float]] = []
        for node in w.nodes:
            try:
                coords.append([float(node.lon), float(node.lat)])
            except osmium.InvalidLocationError:
                self.skipped_locations += 1
        if len(coords) < 2:
            return
        self.features.append(_feature(str(w.id), tags, coords))


def _extract_from_osm_pbf(*, source_pbf: Path) -> list[dict[str, Any]]:
    _log(f"start source={source_pbf} progress_every={CATALOG_PROGRESS_EVERY}")
    handler = _RailwayHandler()
    handler.apply_file(str(source_pbf), locations=True)
    _log(
        "scan complete "
        f"ways_seen={handler.ways_seen} features={len(handler.features)} "
        f"skipped_locations={handler.skipped_locations}"
    )
    return handler.features


def build(*, source: Path, output_geojson: Path) -> dict[str, Any]:
    if not source.exists():
        raise FileNotFoundError(f"Source not found: {source}")
    if source.suffix.lower() in {".geojson", ".json"}:
        features = _extract_from_geojson(source_geojson=source)
    else:
        features = _extract_from_osm_pbf(source_pbf=source)
    if not features:
        raise RuntimeError(f"No railway ways found in {source}")
    _write_geojson(features=features, output_geojson=output_geojson)
    by_kind: dict[str, int] = {}
    for feature in features:
        kind = str(feature["properties"].get("railway", ""))
        by_kind[kind] = by_kind.get(kind, 0) + 1
    return {
        "source": str(source),
        "output": str(output_geojson),
        "segments": len(features),
        "by_railway": by_kind,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract rail and narrow-gauge ways into a GeoJSON segment catalog.")
    parser.add_argument("--source", type=Path, required=True, help="OSM PBF extract (or pre-converted GeoJSON).")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("backend/out/segment_catalog.geojson"),
        help="Output GeoJSON FeatureCollection.",
    )
    args = parser.parse_args()
    report = build(source=args.source, output_geojson=args.output)
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
