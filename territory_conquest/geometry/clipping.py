"""Polygon clipping primitives backed by shapely.

Clipping runs in the lng/lat plane; areas of the results are measured with
the spherical approximation from :mod:`.measures` so they compare directly
with stored territory areas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, List, Sequence

from shapely.errors import GEOSException
from shapely.geometry import GeometryCollection, MultiPolygon
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from ..models import Coordinate, Polygon
from .measures import perimeter, spherical_polygon_area

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Region:
    """A closed exterior ring with optional holes."""

    exterior: Polygon
    holes: List[Polygon] = field(default_factory=list)

    @property
    def area(self) -> float:
        holes_area = sum(spherical_polygon_area(hole) for hole in self.holes)
        return max(spherical_polygon_area(self.exterior) - holes_area, 0.0)

    @property
    def perimeter(self) -> float:
        return perimeter(self.exterior) + sum(perimeter(hole) for hole in self.holes)

    @property
    def vertex_count(self) -> int:
        return len(self.exterior)


def ensure_closed(coords: Sequence[Coordinate]) -> Polygon:
    """Return ``coords`` with the first vertex repeated at the end if needed."""

    ring = list(coords)
    if not ring:
        return ring
    first, last = ring[0], ring[-1]
    if first.lat != last.lat or first.lng != last.lng:
        ring.append(Coordinate(first.lat, first.lng))
    return ring


def to_shape(exterior: Sequence[Coordinate], holes: Iterable[Sequence[Coordinate]] = ()) -> BaseGeometry:
    """Build a valid shapely geometry from lat/lng rings."""

    shell = [(pt.lng, pt.lat) for pt in ensure_closed(exterior)]
    interiors = [[(pt.lng, pt.lat) for pt in ensure_closed(hole)] for hole in holes]
    shape = ShapelyPolygon(shell, interiors)
    if not shape.is_valid:
        # Self-crossing GPS traces come out as bow-ties; a zero buffer
        # rebuilds them as their covered area.
        shape = shape.buffer(0)
    return shape


def region_shape(region: Region) -> BaseGeometry:
    return to_shape(region.exterior, region.holes)


def to_regions(geometry: BaseGeometry | None) -> List[Region]:
    """Split a clipping result into regions, largest area first."""

    if geometry is None or geometry.is_empty:
        return []
    polygons: List[ShapelyPolygon] = []
    if isinstance(geometry, ShapelyPolygon):
        polygons.append(geometry)
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        for part in geometry.geoms:
            if isinstance(part, ShapelyPolygon) and not part.is_empty:
                polygons.append(part)
            elif isinstance(part, MultiPolygon):
                polygons.extend(p for p in part.geoms if not p.is_empty)
    regions = [
        Region(
            exterior=_ring_to_coords(poly.exterior.coords),
            holes=[_ring_to_coords(ring.coords) for ring in poly.interiors],
        )
        for poly in polygons
    ]
    regions = [region for region in regions if len(region.exterior) >= 4]
    regions.sort(key=lambda region: region.area, reverse=True)
    return regions


def intersect(a: BaseGeometry, b: BaseGeometry) -> List[Region]:
    return to_regions(_safe_op("intersection", a, b))


def difference(a: BaseGeometry, b: BaseGeometry) -> List[Region]:
    """Return ``a - b`` as zero or more disjoint regions, largest first."""

    return to_regions(_safe_op("difference", a, b))


def union(a: BaseGeometry, b: BaseGeometry) -> List[Region]:
    return to_regions(_safe_op("union", a, b))


def union_all(shapes: Sequence[BaseGeometry]) -> BaseGeometry:
    if not shapes:
        return GeometryCollection()
    return unary_union(list(shapes))


def contains(outer: BaseGeometry, inner: BaseGeometry) -> bool:
    """True when ``inner`` lies entirely inside ``outer``."""

    try:
        return bool(outer.contains(inner))
    except GEOSException:
        LOGGER.warning("Containment test failed; treating as not contained", exc_info=True)
        return False


def contains_point(shape: BaseGeometry, lat: float, lng: float) -> bool:
    return bool(shape.covers(ShapelyPoint(lng, lat)))


def intersection_area(a: BaseGeometry, b: BaseGeometry) -> float:
    return sum(region.area for region in intersect(a, b))


def largest(regions: Sequence[Region]) -> Region | None:
    """Pick the largest region; multi-piece results keep only their biggest part."""

    if not regions:
        return None
    return max(regions, key=lambda region: region.area)


def _safe_op(name: str, a: BaseGeometry, b: BaseGeometry) -> BaseGeometry | None:
    try:
        return getattr(a, name)(b)
    except GEOSException:
        LOGGER.debug("Clipping %s failed, retrying on buffered inputs", name)
    try:
        return getattr(a.buffer(0), name)(b.buffer(0))
    except GEOSException:
        LOGGER.warning("Clipping %s failed on buffered inputs", name, exc_info=True)
        return None


def _ring_to_coords(ring: Iterable[Sequence[float]]) -> Polygon:
    return [Coordinate(lat=float(lat), lng=float(lng)) for lng, lat in ring]
