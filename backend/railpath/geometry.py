from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np
from pyproj import Geod
from shapely.geometry import LineString, Point

EARTH_RADIUS_M = 6_371_000.0
# Equatorial degree length; used only for cell sizing and bbox padding.
METERS_PER_DEGREE = 111_320.0

Coordinate = tuple[float, float]  # (lon, lat)
BBox = tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)

_GEOD = Geod(ellps="WGS84")


def _haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def _haversine_m_many(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    phi1 = math.radians(lat)
    phi2 = np.radians(lats)
    dphi = phi2 - phi1
    dlambda = np.radians(lons - lon)
    a = np.sin(dphi / 2.0) ** 2 + math.cos(phi1) * np.cos(phi2) * np.sin(dlambda / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_M * np.arcsin(np.minimum(1.0, np.sqrt(np.maximum(0.0, a))))


def as_coordinate(raw: Sequence[float]) -> Coordinate:
    return (float(raw[0]), float(raw[1]))


def distance_m(a: Coordinate, b: Coordinate) -> float:
    return _haversine_m(a[1], a[0], b[1], b[0])


def polyline_length_km(coordinates: Sequence[Coordinate]) -> float:
    if len(coordinates) < 2:
        return 0.0
    lons = [c[0] for c in coordinates]
    lats = [c[1] for c in coordinates]
    return float(_GEOD.line_length(lons, lats)) / 1000.0


@dataclass(frozen=True)
class PolylineProjection:
    segment_index: int
    point: Coordinate
    distance_m: float


def closest_point_on_polyline(
    coordinates: Sequence[Coordinate],
    point: Coordinate,
) -> PolylineProjection:
    """Project ``point`` onto the nearest vertex pair of ``coordinates``.

    The projection parameter is computed in planar lon/lat space (the same
    convention PostGIS uses for geometry columns); the reported distance is
    the great-circle distance to the projected point.
    """
    if len(coordinates) < 2:
        raise ValueError("polyline needs at least two coordinates")
    arr = np.asarray(coordinates, dtype=np.float64)
    p = np.asarray(point, dtype=np.float64)
    a = arr[:-1]
    d = arr[1:] - a
    len_sq = np.einsum("ij,ij->i", d, d)
    safe_len_sq = np.where(len_sq > 0.0, len_sq, 1.0)
    t = np.where(len_sq > 0.0, np.einsum("ij,ij->i", p - a, d) / safe_len_sq, 0.0)
    t = np.clip(t, 0.0, 1.0)
    projected = a + d * t[:, None]
    dists = _haversine_m_many(float(p[1]), float(p[0]), projected[:, 1], projected[:, 0])
    idx = int(np.argmin(dists))
    return PolylineProjection(
        segment_index=idx,
        point=(float(projected[idx, 0]), float(projected[idx, 1])),
        distance_m=float(dists[idx]),
    )


def locate_on_line(coordinates: Sequence[Coordinate], point: Coordinate) -> tuple[Coordinate, float]:
    """Closest point on the line and its normalized position along it (0..1)."""
    line = LineString(coordinates)
    fraction = float(line.project(Point(point), normalized=True))
    closest = line.interpolate(fraction, normalized=True)
    return (float(closest.x), float(closest.y)), fraction


def bearing_deg(a: Coordinate, b: Coordinate) -> float:
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    y = math.sin(lon2 - lon1) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(lon2 - lon1)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def bearing_delta_deg(a: float, b: float) -> float:
    diff = abs(float(a) - float(b)) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def buffered_bbox(points: Iterable[Coordinate], buffer_km: float) -> BBox:
    pts = list(points)
    if not pts:
        raise ValueError("bbox needs at least one point")
    min_lon = min(p[0] for p in pts)
    max_lon = max(p[0] for p in pts)
    min_lat = min(p[1] for p in pts)
    max_lat = max(p[1] for p in pts)
    buffer_m = max(0.0, float(buffer_km)) * 1000.0
    dlat = buffer_m / METERS_PER_DEGREE
    widest_lat = min(89.0, max(abs(min_lat), abs(max_lat)) + dlat)
    dlon = buffer_m / (METERS_PER_DEGREE * max(0.01, math.cos(math.radians(widest_lat))))
    return (
        max(-180.0, min_lon - dlon),
        max(-90.0, min_lat - dlat),
        min(180.0, max_lon + dlon),
        min(90.0, max_lat + dlat),
    )


def bbox_of(coordinates: Iterable[Coordinate]) -> BBox:
    return buffered_bbox(coordinates, 0.0)


def bbox_intersects(a: BBox, b: BBox) -> bool:
    return not (a[2] < b[0] or b[2] < a[0] or a[3] < b[1] or b[3] < a[1])
