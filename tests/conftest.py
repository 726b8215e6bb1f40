"""Global pytest fixtures & helpers.

Adds project root to path and provides square-path and territory factories
around a fixed origin so claim scenarios read in metres, not degrees.
"""
from __future__ import annotations

import math
import os
import sys
from datetime import datetime, timezone
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from territory_conquest.geometry import path_length, perimeter, spherical_polygon_area
from territory_conquest.models import ClaimRequest, Coordinate, Profile, Territory
from territory_conquest.services import ClaimService, ClaimServiceConfig
from territory_conquest.storage import InMemoryStore

ORIGIN_LAT = 40.4168
ORIGIN_LNG = -3.7038
METRES_PER_DEG = 6_371_000.0 * math.pi / 180.0
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


# --- Factory helpers -------------------------------------------------
def offset(north_m: float, east_m: float) -> Coordinate:
    lat = ORIGIN_LAT + north_m / METRES_PER_DEG
    lng = ORIGIN_LNG + east_m / (METRES_PER_DEG * math.cos(math.radians(ORIGIN_LAT)))
    return Coordinate(lat=lat, lng=lng)


def make_square(side_m: float, north_m: float = 0.0, east_m: float = 0.0):
    """Closed square path whose south-west corner sits at the given offset."""
    return [
        offset(north_m, east_m),
        offset(north_m, east_m + side_m),
        offset(north_m + side_m, east_m + side_m),
        offset(north_m + side_m, east_m),
        offset(north_m, east_m),
    ]


def duration_for_pace(path, pace_min_per_km: float) -> float:
    return pace_min_per_km * 60.0 * path_length(path) / 1000.0


def make_territory(
    territory_id: str,
    owner_id: str,
    side_m: float,
    north_m: float = 0.0,
    east_m: float = 0.0,
    **overrides,
) -> Territory:
    coords = make_square(side_m, north_m, east_m)
    fields = dict(
        id=territory_id,
        owner_id=owner_id,
        coordinates=coords,
        area=spherical_polygon_area(coords),
        perimeter=perimeter(coords),
        avg_pace=6.0,
        required_pace=5.5,
        conquest_points=40,
        points=40,
    )
    fields.update(overrides)
    return Territory(**fields)


def make_claim(side_m: float, pace: float = 5.0, north_m: float = 0.0, east_m: float = 0.0):
    path = make_square(side_m, north_m, east_m)
    return ClaimRequest(path=path, duration_seconds=duration_for_pace(path, pace))


GPX_START = 1_717_236_000  # 2024-06-01T10:00:00Z


def iso(offset_s: int) -> str:
    return datetime.fromtimestamp(GPX_START + offset_s, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def gpx_document(points, with_time: bool = True) -> str:
    """GPX 1.1 track with one point every 30 seconds."""
    rows = []
    for idx, point in enumerate(points):
        time = f"<time>{iso(idx * 30)}</time>" if with_time else ""
        rows.append(f'<trkpt lat="{point.lat}" lon="{point.lng}"><ele>650</ele>{time}</trkpt>')
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">'
        "<trk><trkseg>" + "".join(rows) + "</trkseg></trk></gpx>"
    )


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    store = InMemoryStore()
    store.add_profile(Profile(id="alice", username="Alice"))
    store.add_profile(Profile(id="bob", username="Bob", total_points=40, season_points=40, historical_points=40, total_territories=1))
    return store


@pytest.fixture
def service(store):
    config = ClaimServiceConfig(store=store, catalog=store, notifier=store, clock=lambda: NOW)
    return ClaimService(config)


@pytest.fixture
def square():
    return make_square


@pytest.fixture
def territory_factory():
    return make_territory


@pytest.fixture
def claim_factory():
    return make_claim
