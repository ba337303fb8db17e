from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from itertools import chain
from operator import attrgetter

from drone_survey.errors import InvalidBoundary, InvalidParameters
from drone_survey.geometry import BoundingBox, bounding_box, distinct_vertices, path_length_m
from drone_survey.models import Boundary, FlightParameters, PatternType, Waypoint, WaypointAction

# ~10 m of ground spacing at the equator. Deliberately not corrected for
# latitude or camera footprint: generated paths must stay byte-for-byte stable.
BASE_STEP_DEG = 0.0001


@dataclass(frozen=True)
class FlightEstimate:
    distance_m: float
    duration_s: float


class _Sequencer:
    """Hands out dense, zero-based orders and enforces an optional size cap."""

    def __init__(self, altitude: float, limit: int | None) -> None:
        self.altitude = altitude
        self.limit = limit
        self.next = 0

    def emit(self, lat: float, lng: float, action: WaypointAction, altitude: float | None = None) -> Waypoint:
        if self.limit is not None and self.next >= self.limit:
            raise InvalidParameters(
                f"flight path exceeds {self.limit} waypoints; enlarge overlap spacing or split the area",
                operation="generate",
            )
        wp = Waypoint(
            order=self.next,
            latitude=lat,
            longitude=lng,
            altitude=self.altitude if altitude is None else altitude,
            action=action,
        )
        self.next += 1
        return wp


def _frange_up(start: float, stop: float, step: float) -> Iterator[float]:
    # inclusive, accumulating: the accumulated float error is part of the output
    value = start
    while value <= stop:
        yield value
        value += step


def _frange_down(start: float, stop: float, step: float) -> Iterator[float]:
    value = start
    while value >= stop:
        yield value
        value -= step


def _coerce_pattern(pattern_type: PatternType | str) -> PatternType:
    try:
        return PatternType(pattern_type)
    except ValueError as e:
        raise InvalidParameters(f"unknown pattern type {pattern_type!r}", operation="generate") from e


def validate_boundary(boundary: Boundary) -> None:
    coords = boundary.coordinates
    if len(coords) < 4:
        raise InvalidBoundary(
            f"boundary needs at least 4 points (3 vertices + closing point), got {len(coords)}",
            operation="generate",
        )
    for lng, lat in coords:
        if not (math.isfinite(lng) and math.isfinite(lat)):
            raise InvalidBoundary("boundary contains non-finite coordinates", operation="generate")
        if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
            raise InvalidBoundary(f"coordinate ({lng}, {lat}) is out of range", operation="generate")
    if tuple(coords[0]) != tuple(coords[-1]):
        raise InvalidBoundary("boundary ring is not closed (first point != last point)", operation="generate")
    if distinct_vertices(coords) < 3:
        raise InvalidBoundary("boundary has fewer than 3 distinct vertices", operation="generate")


def validate_parameters(parameters: FlightParameters) -> None:
    if not parameters.altitude > 0:
        raise InvalidParameters(f"altitude must be > 0, got {parameters.altitude}", operation="generate")
    if not parameters.speed > 0:
        raise InvalidParameters(f"speed must be > 0, got {parameters.speed}", operation="generate")
    if not 0 <= parameters.overlap < 100:
        raise InvalidParameters(f"overlap must be in [0, 100), got {parameters.overlap}", operation="generate")


def validate_custom_waypoints(waypoints: Sequence[Waypoint]) -> None:
    """User-drawn paths: non-empty, orders unique and strictly increasing."""
    if not waypoints:
        raise InvalidParameters("custom flight path has no waypoints", operation="generate")
    for prev, cur in zip(waypoints, waypoints[1:]):
        if cur.order <= prev.order:
            raise InvalidParameters(
                f"waypoint order must strictly increase ({prev.order} then {cur.order})",
                operation="generate",
            )


def step_sizes(overlap: float) -> tuple[float, float]:
    factor = (100 - overlap) / 100
    return BASE_STEP_DEG * factor, BASE_STEP_DEG * factor


def _east_west_sweep(
    seq: _Sequencer, bbox: BoundingBox, row_step: float, col_step: float
) -> list[Waypoint]:
    out: list[Waypoint] = []
    eastbound = True
    for lat in _frange_up(bbox.min_lat, bbox.max_lat, row_step):
        if eastbound:
            lngs = _frange_up(bbox.min_lng, bbox.max_lng, col_step)
        else:
            lngs = _frange_down(bbox.max_lng, bbox.min_lng, col_step)
        out.extend(seq.emit(lat, lng, WaypointAction.CAPTURE) for lng in lngs)
        eastbound = not eastbound
    return out


def _north_south_sweep(
    seq: _Sequencer, bbox: BoundingBox, col_step: float, row_step: float
) -> list[Waypoint]:
    out: list[Waypoint] = []
    northbound = True
    for lng in _frange_up(bbox.min_lng, bbox.max_lng, col_step):
        if northbound:
            lats = _frange_up(bbox.min_lat, bbox.max_lat, row_step)
        else:
            lats = _frange_down(bbox.max_lat, bbox.min_lat, row_step)
        out.extend(seq.emit(lat, lng, WaypointAction.CAPTURE) for lat in lats)
        northbound = not northbound
    return out


def _grid(seq: _Sequencer, bbox: BoundingBox, lat_step: float, lng_step: float, _coords) -> list[Waypoint]:
    return _east_west_sweep(seq, bbox, lat_step, lng_step)


def _crosshatch(seq: _Sequencer, bbox: BoundingBox, lat_step: float, lng_step: float, _coords) -> list[Waypoint]:
    horizontal = _east_west_sweep(seq, bbox, lat_step * 2, lng_step)
    vertical = _north_south_sweep(seq, bbox, lng_step * 2, lat_step)
    return sorted(chain(horizontal, vertical), key=attrgetter("order"))


def _perimeter(seq: _Sequencer, _bbox: BoundingBox, _lat_step: float, _lng_step: float, coords) -> list[Waypoint]:
    out = [seq.emit(lat, lng, WaypointAction.CAPTURE) for lng, lat in coords]
    first_lng, first_lat = coords[0]
    out.append(seq.emit(first_lat, first_lng, WaypointAction.CAPTURE))
    return out


def _bbox_corners(seq: _Sequencer, bbox: BoundingBox, _lat_step: float, _lng_step: float, _coords) -> list[Waypoint]:
    # takeoff sits on (min_lat, min_lng); visit the remaining three corners
    return [
        seq.emit(bbox.min_lat, bbox.max_lng, WaypointAction.CAPTURE),
        seq.emit(bbox.max_lat, bbox.max_lng, WaypointAction.CAPTURE),
        seq.emit(bbox.max_lat, bbox.min_lng, WaypointAction.CAPTURE),
    ]


_PATTERNS = {
    PatternType.GRID: _grid,
    PatternType.CROSSHATCH: _crosshatch,
    PatternType.PERIMETER: _perimeter,
    PatternType.CUSTOM: _bbox_corners,
}


def generate(
    boundary: Boundary,
    pattern_type: PatternType | str,
    parameters: FlightParameters,
    *,
    max_waypoints: int | None = None,
) -> list[Waypoint]:
    """
    Turn a survey polygon into an ordered flight path.

    Every path starts with a takeoff on the bounding box's minimum corner and
    ends with a land (altitude 0) at the same spot. Deterministic: identical
    inputs always produce identical waypoints.
    """
    pattern = _coerce_pattern(pattern_type)
    validate_boundary(boundary)
    validate_parameters(parameters)

    coords = list(boundary.coordinates)
    bbox = bounding_box(coords)
    lat_step, lng_step = step_sizes(parameters.overlap)

    seq = _Sequencer(parameters.altitude, max_waypoints)
    takeoff = seq.emit(bbox.min_lat, bbox.min_lng, WaypointAction.TAKEOFF)
    body = _PATTERNS[pattern](seq, bbox, lat_step, lng_step, coords)
    land = seq.emit(bbox.min_lat, bbox.min_lng, WaypointAction.LAND, altitude=0.0)
    return [takeoff, *body, land]


def estimate_flight(waypoints: Sequence[Waypoint], speed: float) -> FlightEstimate:
    """Great-circle path length and time at constant cruise speed (climb/descent ignored)."""
    distance = path_length_m([w.latitude for w in waypoints], [w.longitude for w in waypoints])
    duration = distance / speed if speed > 0 else 0.0
    return FlightEstimate(distance_m=distance, duration_s=duration)


def plan_flight_path(
    boundary: Boundary,
    pattern_type: PatternType | str,
    parameters: FlightParameters,
    *,
    waypoints: Sequence[Waypoint] | None = None,
    max_waypoints: int | None = None,
) -> tuple[list[Waypoint], FlightEstimate]:
    """Generated path, or the caller's own path for the custom pattern, plus its estimate."""
    if waypoints is None:
        path = generate(boundary, pattern_type, parameters, max_waypoints=max_waypoints)
    else:
        if _coerce_pattern(pattern_type) is not PatternType.CUSTOM:
            raise InvalidParameters(
                "explicit waypoints are only accepted for the custom pattern", operation="generate"
            )
        validate_boundary(boundary)
        validate_parameters(parameters)
        validate_custom_waypoints(waypoints)
        path = list(waypoints)
    return path, estimate_flight(path, parameters.speed)
