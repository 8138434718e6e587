"""Geographic utility functions."""

import math
from dataclasses import is_dataclass, replace
from typing import Sequence, TypeVar

P = TypeVar("P")


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula"""
    R = 6371000  # Earth's radius in meters

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def _coords(point) -> tuple[float, float]:
    if isinstance(point, tuple):
        return point[0], point[1]
    return point.lat, point.lon


def distance_meters(a, b) -> float:
    """Great-circle distance between two points.

    Points are anything with ``lat``/``lon`` attributes, or ``(lat, lon)`` tuples.
    Symmetric and exactly zero for identical coordinates.
    """
    lat1, lon1 = _coords(a)
    lat2, lon2 = _coords(b)
    if lat1 == lat2 and lon1 == lon2:
        return 0.0
    # Order the arguments so that distance(a, b) and distance(b, a) run the same arithmetic
    if (lat1, lon1) > (lat2, lon2):
        lat1, lon1, lat2, lon2 = lat2, lon2, lat1, lon1
    return haversine_distance(lat1, lon1, lat2, lon2)


def total_path_length(points: Sequence) -> float:
    """Sum of distances between consecutive points (0 for fewer than two points)"""
    total = 0.0
    for i in range(len(points) - 1):
        total += distance_meters(points[i], points[i + 1])
    return total


def _with_coords(point: P, lat: float, lon: float) -> P:
    if isinstance(point, tuple):
        return (lat, lon) + tuple(point[2:])
    if is_dataclass(point):
        return replace(point, lat=lat, lon=lon)
    raise TypeError(f"Cannot smooth point of type {type(point).__name__}")


def median_smooth(points: Sequence[P], window_size: int) -> list[P]:
    """Smooth a track with a sliding-window median.

    Latitude and longitude are filtered independently: each point takes the
    median latitude and the median longitude of the window centred on it
    (clipped at the ends of the track). For even-sized windows the element at
    index ``len(window) // 2`` of the sorted window is used.

    A window size of 0 or fewer than two points returns the input unchanged.
    """
    if window_size <= 0 or len(points) < 2:
        return list(points)

    half = window_size // 2
    n = len(points)
    lats = [_coords(p)[0] for p in points]
    lons = [_coords(p)[1] for p in points]

    result = []
    for i, point in enumerate(points):
        start = max(0, i - half)
        end = min(n - 1, i + half)
        window_lats = sorted(lats[start:end + 1])
        window_lons = sorted(lons[start:end + 1])
        mid = len(window_lats) // 2
        result.append(_with_coords(point, window_lats[mid], window_lons[mid]))
    return result
