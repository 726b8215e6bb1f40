"""Geometry kernel: great-circle measures, clipping and path normalisation."""

from .clipping import (
    Region,
    contains,
    contains_point,
    difference,
    ensure_closed,
    intersect,
    intersection_area,
    largest,
    region_shape,
    to_regions,
    to_shape,
    union,
    union_all,
)
from .measures import (
    average_pace,
    haversine_distance,
    path_length,
    perimeter,
    spherical_polygon_area,
)
from .normalizer import (
    NormalizedPath,
    close_polygon,
    detect_self_loops,
    merge_loops,
    normalize_path,
)

__all__ = [
    "Region",
    "contains",
    "contains_point",
    "difference",
    "ensure_closed",
    "intersect",
    "intersection_area",
    "largest",
    "region_shape",
    "to_regions",
    "to_shape",
    "union",
    "union_all",
    "average_pace",
    "haversine_distance",
    "path_length",
    "perimeter",
    "spherical_polygon_area",
    "NormalizedPath",
    "close_polygon",
    "detect_self_loops",
    "merge_loops",
    "normalize_path",
]
