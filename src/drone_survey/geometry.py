from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

EARTH_RADIUS_M = 6_371_000.0

LngLat = tuple[float, float]


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


def bounding_box(coords: Sequence[LngLat]) -> BoundingBox:
    """Axis-aligned box over (lng, lat) pairs."""
    if not coords:
        raise ValueError("bounding_box needs at least one coordinate")
    pts = np.asarray(coords, dtype=float)
    lng_min, lat_min = pts.min(axis=0)
    lng_max, lat_max = pts.max(axis=0)
    return BoundingBox(
        min_lat=float(lat_min),
        max_lat=float(lat_max),
        min_lng=float(lng_min),
        max_lng=float(lng_max),
    )


def distinct_vertices(coords: Sequence[LngLat]) -> int:
    return len({(float(lng), float(lat)) for lng, lat in coords})


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great circle distance in metres."""
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dlat = p2 - p1
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compass bearing from point 1 towards point 2, in [0, 360)."""
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dlon = math.radians(lon2 - lon1)
    x = math.sin(dlon) * math.cos(p2)
    y = math.cos(p1) * math.sin(p2) - math.sin(p1) * math.cos(p2) * math.cos(dlon)
    return (math.degrees(math.atan2(x, y)) + 360.0) % 360.0


def leg_lengths_m(lats: Sequence[float], lngs: Sequence[float]) -> np.ndarray:
    """Vectorised haversine over consecutive points; len(result) == len(points) - 1."""
    lat = np.radians(np.asarray(lats, dtype=float))
    lng = np.radians(np.asarray(lngs, dtype=float))
    if lat.size < 2:
        return np.zeros(0)
    dlat = np.diff(lat)
    dlng = np.diff(lng)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat[:-1]) * np.cos(lat[1:]) * np.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def path_length_m(lats: Sequence[float], lngs: Sequence[float]) -> float:
    return float(leg_lengths_m(lats, lngs).sum())
