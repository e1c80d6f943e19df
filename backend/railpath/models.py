from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _check_lon_lat(value: tuple[float, float]) -> tuple[float, float]:
    lon, lat = value
    if not -180.0 <= lon <= 180.0:
        raise ValueError("longitude must be within [-180, 180]")
    if not -90.0 <= lat <= 90.0:
        raise ValueError("latitude must be within [-90, 90]")
    return (float(lon), float(lat))


class EndpointPathRequest(BaseModel):
    start_segment_id: str = Field(..., min_length=1)
    end_segment_id: str = Field(..., min_length=1)


class CoordinatePathRequest(BaseModel):
    start: tuple[float, float]  # [lon, lat]
    end: tuple[float, float]  # [lon, lat]

    @field_validator("start", "end")
    @classmethod
    def _lon_lat_in_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _check_lon_lat(value)


class PathDiagnostics(BaseModel):
    length_km: float
    ceiling_km: float | None = None
    has_backtracking: bool = False
    degraded: bool = False
    merge_issue: str | None = None


class PathResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    edge_ids: list[str] = Field(..., alias="edgeIds", min_length=1)
    coordinates: list[tuple[float, float]]  # [lon, lat]
    diagnostics: PathDiagnostics


class SplitRequest(BaseModel):
    part_id: str = Field(..., min_length=1)
    coordinate: tuple[float, float]  # [lon, lat] of the click; snapped onto the segment

    @field_validator("coordinate")
    @classmethod
    def _lon_lat_in_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _check_lon_lat(value)


class SplitResponse(BaseModel):
    id: str
    part_id: str
    split_coordinate: tuple[float, float]
    split_fraction: float = Field(..., gt=0.0, lt=1.0)


class SplitRemovedResponse(BaseModel):
    part_id: str
    removed: bool
