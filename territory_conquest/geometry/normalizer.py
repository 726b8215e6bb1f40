"""Turn raw GPS paths into closed claim polygons."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Sequence

import numpy as np
from shapely.errors import GEOSException
from shapely.geometry import Polygon as ShapelyPolygon

from ..config import (
    MIN_PATH_POINTS,
    POLYGON_CLOSURE_THRESHOLD_M,
    SELF_LOOP_MIN_GAP,
    SELF_LOOP_THRESHOLD_M,
)
from ..errors import InvalidPath
from ..models import Coordinate, Polygon
from .clipping import Region, ensure_closed, largest, to_regions, to_shape
from .measures import haversine_distance, pairwise_distances

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class NormalizedPath:
    """Closed claim polygon plus the untouched raw path.

    Distance and pace are always measured on ``raw_path``; the polygon may
    include folded-in loops.
    """

    region: Region
    raw_path: List[Coordinate]
    loops_merged: int = 0


def close_polygon(
    path: Sequence[Coordinate], closure_threshold_m: float = POLYGON_CLOSURE_THRESHOLD_M
) -> bool:
    """Return True when the path ends close enough to where it started."""

    if len(path) < 3:
        return False
    return haversine_distance(path[0], path[-1]) <= closure_threshold_m


def detect_self_loops(
    path: Sequence[Coordinate], loop_threshold_m: float = SELF_LOOP_THRESHOLD_M
) -> List[Polygon]:
    """Find closed sub-loops where the path revisits an earlier point.

    For every start index the first revisit at least ``SELF_LOOP_MIN_GAP``
    points later closes a loop. Quadratic in the path length.
    """

    loops: List[Polygon] = []
    count = len(path)
    if count < MIN_PATH_POINTS:
        return loops
    for i in range(count - SELF_LOOP_MIN_GAP):
        distances = pairwise_distances(path, i)[i + SELF_LOOP_MIN_GAP :]
        hits = np.nonzero(distances <= loop_threshold_m)[0]
        if hits.size == 0:
            continue
        j = i + SELF_LOOP_MIN_GAP + int(hits[0])
        loop = list(path[i : j + 1])
        loop.append(Coordinate(path[i].lat, path[i].lng))
        loops.append(loop)
    return loops


def merge_loops(main_path: Sequence[Coordinate], loops: Sequence[Polygon]) -> Polygon:
    """Union each loop into the main polygon, skipping loops that fail."""

    if not loops:
        return list(main_path)
    try:
        merged = to_shape(main_path)
    except (GEOSException, ValueError):
        LOGGER.warning("Unable to build main polygon for loop merge", exc_info=True)
        return list(main_path)

    merged_count = 0
    for loop in loops:
        try:
            loop_shape = to_shape(loop)
            if loop_shape.is_empty:
                continue
            unified = merged.union(loop_shape)
        except (GEOSException, ValueError):
            LOGGER.warning("Error merging loop of %d points", len(loop), exc_info=True)
            continue
        if isinstance(unified, ShapelyPolygon) and not unified.is_empty:
            merged = unified
            merged_count += 1

    regions = to_regions(merged)
    if not regions:
        return list(main_path)
    LOGGER.debug("Merged %d of %d loops into claim polygon", merged_count, len(loops))
    return regions[0].exterior


def normalize_path(path: Sequence[Coordinate]) -> NormalizedPath:
    """Fold loops into the path and require the result to be a closed polygon."""

    raw_path = list(path)
    if len(raw_path) < MIN_PATH_POINTS:
        raise InvalidPath("The path needs at least 4 points")
    if len({(pt.lat, pt.lng) for pt in raw_path}) < 3:
        raise InvalidPath("The path needs at least 3 distinct points")

    loops = detect_self_loops(raw_path)
    ring = merge_loops(raw_path, loops)
    if not close_polygon(ring):
        raise InvalidPath("You must close the polygon to claim a territory")

    try:
        region = largest(to_regions(to_shape(ensure_closed(ring))))
    except (GEOSException, ValueError) as exc:
        raise InvalidPath("The path does not form a valid polygon") from exc
    if region is None:
        raise InvalidPath("The path does not form a valid polygon")
    return NormalizedPath(region=region, raw_path=raw_path, loops_merged=len(loops))
