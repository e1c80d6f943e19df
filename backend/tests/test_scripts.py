from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from scripts.build_segment_catalog import build as build_catalog
from scripts.find_path import run as run_find_path
from scripts.validate_splits import validate as validate_split_table


def _line(feature_id: Any, railway: str, coords: list[list[float]]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "id": feature_id,
        "properties": {"railway": railway, "name": f"line {feature_id}"},
        "geometry": {"type": "LineString", "coordinates": coords},
    }


def _write_source(path: Path) -> None:
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    _line(1, "rail", [[0.0, 0.0], [0.01, 0.0], [0.02, 0.0]]),
                    _line(2, "narrow_gauge", [[0.02, 0.0], [0.02, 0.02]]),
                    _line(3, "tram", [[0.02, 0.02], [0.03, 0.02]]),
                    _line(4, "abandoned", [[0.0, 0.0], [0.0, 0.01]]),
                ],
            }
        ),
        encoding="utf-8",
    )


def test_build_segment_catalog_keeps_rail_and_narrow_gauge(tmp_path: Path) -> None:
    source = tmp_path / "source.geojson"
    output = tmp_path / "out" / "catalog.geojson"
    _write_source(source)

    report = build_catalog(source=source, output_geojson=output)

    assert report["segments"] == 2
    assert report["by_railway"] == {"rail": 1, "narrow_gauge": 1}
    written = json.loads(output.read_text(encoding="utf-8"))
    assert [f["id"] for f in written["features"]] == ["1", "2"]
    assert written["features"][0]["properties"]["name"] == "line 1"


def test_build_segment_catalog_rejects_missing_or_empty_source(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        build_catalog(source=tmp_path / "missing.geojson", output_geojson=tmp_path / "x.geojson")

    empty = tmp_path / "empty.geojson"
    empty.write_text(json.dumps({"type": "FeatureCollection", "features": []}), encoding="utf-8")
    with pytest.raises(RuntimeError, match="No railway ways"):
        build_catalog(source=empty, output_geojson=tmp_path / "x.geojson")


def test_find_path_script_both_modes(tmp_path: Path) -> None:
    source = tmp_path / "source.geojson"
    catalog = tmp_path / "catalog.geojson"
    _write_source(source)
    build_catalog(source=source, output_geojson=catalog)

    code, payload = run_find_path(catalog=catalog, splits=None, start=(0.005, 0.0), end=(0.02, 0.01))
    assert code == 0
    assert payload["edgeIds"] == ["1", "2"]
    assert payload["coordinates"][-1] == [0.02, 0.01]

    code, payload = run_find_path(catalog=catalog, splits=None, start="1", end="2")
    assert code == 0
    assert payload["coordinates"][0] == [0.0, 0.0]
    assert payload["coordinates"][-1] == [0.02, 0.02]

    code, payload = run_find_path(catalog=catalog, splits=None, start=(1.0, 1.0), end=(0.02, 0.01))
    assert code == 1
    assert payload["reason_code"] == "no_nearby_segment"


def test_validate_splits_flags_orphaned_and_moved(tmp_path: Path) -> None:
    source = tmp_path / "source.geojson"
    catalog = tmp_path / "catalog.geojson"
    _write_source(source)
    build_catalog(source=source, output_geojson=catalog)
    splits = tmp_path / "splits.json"
    splits.write_text(
        json.dumps(
            {
                "splits": [
                    {"id": "split-1", "part_id": "1", "split_coordinate": [0.01, 0.0], "split_fraction": 0.5},
                    {"id": "split-2", "part_id": "2", "split_coordinate": [0.021, 0.01], "split_fraction": 0.5},
                    {"id": "split-9", "part_id": "9", "split_coordinate": [0.5, 0.5], "split_fraction": 0.5},
                ]
            }
        ),
        encoding="utf-8",
    )

    report = validate_split_table(catalog=catalog, splits=splits)

    assert report["passed"] is False
    assert report["segments"] == 2
    assert report["issue_counts"] == {"moved": 1, "orphaned": 1}
    assert {i["part_id"]: i["issue"] for i in report["issues"]} == {"2": "moved", "9": "orphaned"}

    with pytest.raises(RuntimeError):
        validate_split_table(catalog=catalog, splits=tmp_path / "missing.json")
