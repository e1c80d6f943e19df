from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from railpath.pathfinder import RailPathfinder
from railpath.results import PathResult
from railpath.segment_store import GeoJsonSegmentStore


def _parse_point(raw: str) -> tuple[float, float]:
    parts = [p.strip() for p in str(raw).split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected lon,lat but got {raw!r}")
    try:
        return (float(parts[0]), float(parts[1]))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected lon,lat but got {raw!r}") from e


def run(
    *,
    catalog: Path,
    splits: Path | None,
    start: str | tuple[float, float],
    end: str | tuple[float, float],
    ceilings_km: list[float] | None = None,
) -> tuple[int, dict[str, Any]]:
    finder = RailPathfinder(GeoJsonSegmentStore(catalog, splits), ceilings_km=ceilings_km)
    if isinstance(start, tuple) and isinstance(end, tuple):
        outcome = finder.find_path_by_coordinates(start, end)
    else:
        outcome = finder.find_path_by_endpoints(str(start), str(end))
    if isinstance(outcome, PathResult):
        return 0, {**outcome.to_payload(), "diagnostics": outcome.diagnostics()}
    return 1, outcome.to_payload()


def main() -> None:
    parser = argparse.ArgumentParser(description="Find a rail path between two points or two segments.")
    parser.add_argument("--catalog", type=Path, required=True, help="GeoJSON segment catalog.")
    parser.add_argument("--splits", type=Path, default=None, help="JSON split table.")
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--points", nargs=2, type=_parse_point, metavar="LON,LAT", help="Free start/end coordinates.")
    mode.add_argument("--segments", nargs=2, metavar="SEGMENT_ID", help="Start/end segment ids (legacy mode).")
    parser.add_argument(
        "--ceilings-km",
        type=float,
        nargs="+",
        default=None,
        help="Ascending path length ceilings; defaults to PATH_LENGTH_CEILINGS_KM.",
    )
    args = parser.parse_args()
    start, end = args.points if args.points else args.segments
    code, payload = run(
        catalog=args.catalog,
        splits=args.splits,
        start=start,
        end=end,
        ceilings_km=args.ceilings_km,
    )
    print(json.dumps(payload, indent=2))
    raise SystemExit(code)


if __name__ == "__main__":
    main()
