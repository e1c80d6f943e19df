from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from railpath.segment_store import GeoJsonSegmentStore
from railpath.split_actions import validate_splits


def validate(*, catalog: Path, splits: Path, max_offset_m: float | None = None) -> dict[str, Any]:
    if not splits.exists():
        raise RuntimeError(f"Split table not found: {splits}")
    store = GeoJsonSegmentStore(catalog, splits)
    issues = validate_splits(store, max_offset_m=max_offset_m)
    by_issue: dict[str, int] = {}
    for issue in issues:
        by_issue[issue.issue] = by_issue.get(issue.issue, 0) + 1
    return {
        "catalog_path": str(catalog),
        "split_path": str(splits),
        "segments": len(store),
        "splits": len(store.load_splits()),
        "issue_counts": by_issue,
        "issues": [issue.to_dict() for issue in issues],
        "passed": not issues,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-check stored splits against a freshly imported segment catalog.")
    parser.add_argument("--catalog", type=Path, required=True, help="GeoJSON segment catalog.")
    parser.add_argument("--splits", type=Path, required=True, help="JSON split table.")
    parser.add_argument(
        "--max-offset-m",
        type=float,
        default=None,
        help="Maximum distance from a stored split point to its parent; defaults to ENDPOINT_TOLERANCE_M.",
    )
    args = parser.parse_args()
    report = validate(catalog=args.catalog, splits=args.splits, max_offset_m=args.max_offset_m)
    print(json.dumps(report, indent=2))
    if not report["passed"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
