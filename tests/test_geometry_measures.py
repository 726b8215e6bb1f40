import random

import pytest

from territory_conquest.geometry import (
    average_pace,
    haversine_distance,
    path_length,
    perimeter,
    spherical_polygon_area,
)
from territory_conquest.models import Coordinate

from conftest import offset


def test_haversine_one_degree_of_latitude():
    a = Coordinate(lat=0.0, lng=0.0)
    b = Coordinate(lat=1.0, lng=0.0)
    assert haversine_distance(a, b) == pytest.approx(111_194.93, rel=1e-6)
    assert haversine_distance(a, a) == 0.0


def test_path_length_and_perimeter_of_square(square):
    path = square(100.0)
    assert path_length(path) == pytest.approx(400.0, rel=1e-4)
    # The closing vertex is repeated; the wrap-around segment has zero length.
    assert perimeter(path) == pytest.approx(400.0, rel=1e-4)
    assert perimeter(path[:-1]) == pytest.approx(400.0, rel=1e-4)


def test_spherical_area_of_square(square):
    assert spherical_polygon_area(square(100.0)) == pytest.approx(10_000.0, rel=1e-3)
    assert spherical_polygon_area(square(1000.0)) == pytest.approx(1_000_000.0, rel=1e-3)


def test_area_ignores_winding_direction(square):
    path = square(150.0)
    assert spherical_polygon_area(list(reversed(path))) == pytest.approx(
        spherical_polygon_area(path)
    )


def test_degenerate_inputs_measure_zero():
    point = Coordinate(lat=10.0, lng=10.0)
    assert path_length([point]) == 0.0
    assert perimeter([]) == 0.0
    assert spherical_polygon_area([point, point]) == 0.0


def test_average_pace_minutes_per_km():
    assert average_pace(1000.0, 300.0) == pytest.approx(5.0)
    assert average_pace(2500.0, 900.0) == pytest.approx(6.0)
    assert average_pace(0.0, 600.0) == 0.0


def test_coordinate_rejects_out_of_range_values():
    with pytest.raises(ValueError):
        Coordinate(lat=91.0, lng=0.0)
    with pytest.raises(ValueError):
        Coordinate(lat=0.0, lng=-181.0)


def test_measures_are_deterministic_for_random_polygons():
    rng = random.Random(7)
    for _ in range(25):
        polygon = [offset(rng.uniform(-500, 500), rng.uniform(-500, 500)) for _ in range(rng.randint(3, 12))]
        polygon.append(polygon[0])
        assert spherical_polygon_area(polygon) == spherical_polygon_area(list(polygon))
        assert perimeter(polygon) == perimeter(list(polygon))
        assert spherical_polygon_area(polygon) >= 0.0
