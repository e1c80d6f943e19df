from __future__ import annotations

import railpath
from railpath.pathfinding_errors import DegenerateSplitError, PathfindingError
from railpath.results import DegenerateSplit, NoNearbySegment, NoPathFound, SegmentNotFound
from railpath.settings import Settings


def test_package_imports() -> None:
    assert railpath.__name__ == "railpath"


def test_pathfinding_error_string_and_details() -> None:
    err = DegenerateSplitError(
        reason_code="degenerate_split",
        message="Split point is too close to an endpoint.",
        details={"part_id": "A", "fraction": 0.001},
    )
    assert isinstance(err, PathfindingError)
    assert isinstance(err, ValueError)
    assert str(err) == "Split point is too close to an endpoint."
    assert err.details is not None
    assert err.details["part_id"] == "A"

    failure = DegenerateSplit.from_error(err)
    assert failure.to_payload() == {
        "reason_code": "degenerate_split",
        "message": "Split point is too close to an endpoint.",
        "details": {"part_id": "A", "fraction": 0.001},
    }


def test_failure_variants_have_distinct_reason_codes() -> None:
    codes = [failure.reason_code for failure in (NoNearbySegment, NoPathFound, SegmentNotFound, DegenerateSplit)]
    assert codes == ["no_nearby_segment", "no_path_found", "segment_not_found", "degenerate_split"]


def test_settings_parse_and_order_ceilings() -> None:
    cfg = Settings(PATH_LENGTH_CEILINGS_KM="222, 50,bogus,150,-3,50")
    assert cfg.length_ceilings_km() == (50.0, 150.0, 222.0)
    assert cfg.path_length_ceilings_km == "50,150,222"

    fallback = Settings(PATH_LENGTH_CEILINGS_KM="nonsense")
    assert fallback.length_ceilings_km() == (50.0, 150.0, 222.0)
