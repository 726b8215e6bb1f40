"""Great-circle measurements on lat/lng coordinates."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from ..config import EARTH_RADIUS_M
from ..models import Coordinate

RadianArray = NDArray[np.float64]


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """Return the great-circle distance between two coordinates in metres."""

    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)
    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def path_length(path: Sequence[Coordinate]) -> float:
    """Sum of consecutive haversine distances along ``path``."""

    if len(path) < 2:
        return 0.0
    lats, lngs = _as_radians(path)
    return float(np.sum(_haversine_vector(lats[:-1], lngs[:-1], lats[1:], lngs[1:])))


def perimeter(polygon: Sequence[Coordinate]) -> float:
    """Perimeter in metres, wrapping from the last vertex back to the first."""

    if len(polygon) < 2:
        return 0.0
    lats, lngs = _as_radians(polygon)
    next_lats = np.roll(lats, -1)
    next_lngs = np.roll(lngs, -1)
    return float(np.sum(_haversine_vector(lats, lngs, next_lats, next_lngs)))


def spherical_polygon_area(polygon: Sequence[Coordinate]) -> float:
    """Approximate polygon area in square metres.

    Uses the small-polygon spherical excess approximation, accurate for
    city-scale shapes. A repeated closing vertex contributes nothing.
    """

    if len(polygon) < 3:
        return 0.0
    lats, lngs = _as_radians(polygon)
    next_lats = np.roll(lats, -1)
    next_lngs = np.roll(lngs, -1)
    total = np.sum((next_lngs - lngs) * (2 + np.sin(lats) + np.sin(next_lats)))
    return float(abs(total * EARTH_RADIUS_M * EARTH_RADIUS_M / 2))


def average_pace(distance_m: float, duration_s: float) -> float:
    """Return the pace in min/km, or 0 when no distance was covered."""

    if distance_m <= 0:
        return 0.0
    return (duration_s / 60.0) / (distance_m / 1000.0)


def pairwise_distances(path: Sequence[Coordinate], index: int) -> RadianArray:
    """Distances (metres) from ``path[index]`` to every point in ``path``."""

    lats, lngs = _as_radians(path)
    return _haversine_vector(
        np.full_like(lats, lats[index]), np.full_like(lngs, lngs[index]), lats, lngs
    )


def _haversine_vector(
    lat1: RadianArray, lng1: RadianArray, lat2: RadianArray, lng2: RadianArray
) -> RadianArray:
    h = (
        np.sin((lat2 - lat1) / 2) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lng2 - lng1) / 2) ** 2
    )
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))


def _as_radians(points: Sequence[Coordinate]) -> tuple[RadianArray, RadianArray]:
    lats = np.radians(np.asarray([pt.lat for pt in points], dtype=float))
    lngs = np.radians(np.asarray([pt.lng for pt in points], dtype=float))
    return lats, lngs
