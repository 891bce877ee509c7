"""
Track Geometry
Distances, coordinate validation and polyline simplification for GPS trails
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from .models import BoundingBox, TrailStatistics

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0
EARTH_RADIUS_KM = 6371.0

# Douglas-Peucker tolerance factor (degrees) scaled by ln(len/max_points)
SIMPLIFY_TOLERANCE_FACTOR = 0.0001

C = TypeVar("C")

# === Data Models ===

@dataclass(frozen=True)
class Coordinate:
    """2D point with latitude/longitude in decimal degrees"""
    lat: float
    lng: float


def _lat_lng(coord: Any) -> Optional[Tuple[float, float]]:
    """Read (lat, lng) from a Coordinate-like object or mapping; None if absent."""
    if coord is None:
        return None
    if isinstance(coord, dict):
        lat, lng = coord.get("lat"), coord.get("lng")
    else:
        lat, lng = getattr(coord, "lat", None), getattr(coord, "lng", None)
    if isinstance(lat, bool) or isinstance(lng, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    return float(lat), float(lng)

# === Core Geometry Functions ===

def _haversine(lat1: float, lng1: float, lat2: float, lng2: float, radius: float) -> float:
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radius * c


def haversine_distance(point1: Coordinate, point2: Coordinate) -> float:
    """Great-circle distance between two GPS points in meters"""
    return _haversine(point1.lat, point1.lng, point2.lat, point2.lng, EARTH_RADIUS_M)


def haversine_distance_km(point1: Coordinate, point2: Coordinate) -> float:
    """Great-circle distance in kilometers, used for display statistics only"""
    return _haversine(point1.lat, point1.lng, point2.lat, point2.lng, EARTH_RADIUS_KM)


def trail_length(points: Sequence[Coordinate]) -> float:
    """Sum of consecutive haversine distances in meters; 0 for fewer than 2 points"""
    total = 0.0
    for i in range(1, len(points)):
        total += haversine_distance(points[i - 1], points[i])
    return total


def trail_length_km(points: Sequence[Coordinate]) -> float:
    total = 0.0
    for i in range(1, len(points)):
        total += haversine_distance_km(points[i - 1], points[i])
    return total


def is_valid_coordinate(coord: Any) -> bool:
    """Finite lat in [-90, 90] and finite lng in [-180, 180]"""
    pair = _lat_lng(coord)
    if pair is None:
        return False
    lat, lng = pair
    return (
        math.isfinite(lat) and math.isfinite(lng)
        and -90 <= lat <= 90
        and -180 <= lng <= 180
    )


def filter_valid_coordinates(coords: Sequence[C]) -> List[C]:
    """Drop invalid entries, keeping the order of the survivors"""
    return [c for c in coords if is_valid_coordinate(c)]


def to_coordinates(coords: Sequence[Any]) -> List[Coordinate]:
    """Valid entries of any Coordinate-like sequence as Coordinate objects"""
    return [Coordinate(*_lat_lng(c)) for c in coords if is_valid_coordinate(c)]

# === Simplification ===

def uniform_sample(points: Sequence[C], max_points: int) -> List[C]:
    """
    Stride sampling: keep the first point, every `step`-th point in between
    and the last point, with step = ceil(len / max_points).
    """
    n = len(points)
    if n <= max_points:
        return list(points)
    step = math.ceil(n / max(max_points, 1))
    sampled = [points[0]]
    sampled.extend(points[i] for i in range(step, n - 1, step))
    sampled.append(points[-1])
    return sampled


def douglas_peucker(points: Sequence[C], tolerance: float) -> List[C]:
    """
    Douglas-Peucker line simplification on planar (lng, lat) degrees.

    Iterative so long trails cannot exhaust the recursion limit. Raises
    ValueError for non-finite or missing coordinates.
    """
    n = len(points)
    if n <= 2 or tolerance <= 0:
        return list(points)

    pairs = [_lat_lng(p) for p in points]
    if any(pair is None for pair in pairs):
        raise ValueError("Douglas-Peucker input contains points without lat/lng")
    xy = np.array([(lng, lat) for lat, lng in pairs], dtype=float)
    if not np.all(np.isfinite(xy)):
        raise ValueError("Douglas-Peucker input contains non-finite coordinates")

    keep = np.zeros(n, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, n - 1)]

    with np.errstate(invalid="raise", divide="raise", over="raise"):
        while stack:
            start, end = stack.pop()
            if end - start < 2:
                continue
            a = xy[start]
            b = xy[end]
            inner = xy[start + 1:end]
            dx, dy = b - a
            norm = math.hypot(dx, dy)
            if norm == 0:
                dists = np.hypot(inner[:, 0] - a[0], inner[:, 1] - a[1])
            else:
                dists = np.abs(dx * (a[1] - inner[:, 1]) - dy * (a[0] - inner[:, 0])) / norm
            idx = int(np.argmax(dists))
            if dists[idx] > tolerance:
                split = start + 1 + idx
                keep[split] = True
                stack.append((start, split))
                stack.append((split, end))

    return [points[i] for i in np.flatnonzero(keep)]


def simplify(points: Sequence[C], max_points: int) -> List[C]:
    """
    Reduce a trail to roughly `max_points` points while keeping its shape.

    Douglas-Peucker with tolerance 0.0001 * ln(len / max_points); if that still
    leaves too many points they are stride-thinned. On numeric failure the
    whole input is stride-sampled instead. Endpoints are always kept and the
    result never exceeds max_points + 2.
    """
    max_points = max(int(max_points), 2)
    if len(points) <= max_points:
        return list(points)

    tolerance = SIMPLIFY_TOLERANCE_FACTOR * math.log(len(points) / max_points)
    try:
        simplified = douglas_peucker(points, tolerance)
    except (ValueError, FloatingPointError) as e:
        logger.error(f"Error simplifying {len(points)} coordinates, falling back to sampling: {e}")
        return uniform_sample(points, max_points)

    if len(simplified) > max_points:
        simplified = uniform_sample(simplified, max_points)
    return simplified

# === Helper Functions ===

def bounding_box(points: Sequence[Coordinate]) -> Optional[BoundingBox]:
    if not points:
        return None
    lats = [p.lat for p in points]
    lngs = [p.lng for p in points]
    return BoundingBox(min_lat=min(lats), max_lat=max(lats), min_lng=min(lngs), max_lng=max(lngs))


def trail_statistics(points: Sequence[Coordinate]) -> TrailStatistics:
    """Kilometer length, point count and bounding box of a trail"""
    valid = filter_valid_coordinates(points)
    return TrailStatistics(
        total_distance_km=trail_length_km(valid),
        point_count=len(valid),
        bounding_box=bounding_box(valid),
    )


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{int(math.floor(meters + 0.5))} m"
    return f"{meters / 1000:.2f} km"


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes} min"
