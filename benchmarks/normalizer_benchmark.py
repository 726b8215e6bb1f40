"""Benchmark path normalisation and claim resolution on long imported paths."""

from __future__ import annotations

import argparse
import math
import statistics
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Late imports rely on the adjusted sys.path above.
from territory_conquest.geometry import (  # noqa: E402
    detect_self_loops,
    merge_loops,
    normalize_path,
)
from territory_conquest.models import Coordinate, Territory  # noqa: E402
from territory_conquest.resolver import resolve_claim  # noqa: E402

BASE_LAT = 40.4168
BASE_LNG = -3.7038
METRES_PER_DEG_LAT = 111_320.0


@dataclass(slots=True)
class StageDurations:
    """Timing measurements (in seconds) for one normalisation pass."""

    detect: float
    merge: float
    resolve: float

    @property
    def total(self) -> float:
        return self.detect + self.merge + self.resolve


def _circle(point_count: int, radius_m: float, lat: float = BASE_LAT, lng: float = BASE_LNG) -> List[Coordinate]:
    """Closed circular path with evenly spaced points."""

    lng_scale = METRES_PER_DEG_LAT * math.cos(math.radians(lat))
    points = []
    for idx in range(point_count):
        angle = 2 * math.pi * idx / point_count
        points.append(
            Coordinate(
                lat=lat + radius_m * math.sin(angle) / METRES_PER_DEG_LAT,
                lng=lng + radius_m * math.cos(angle) / lng_scale,
            )
        )
    points.append(points[0])
    return points


def _territories(count: int) -> List[Territory]:
    """Small square territories scattered along the benchmark circle."""

    territories = []
    for idx in range(count):
        angle = 2 * math.pi * idx / max(count, 1)
        ring = _circle(4, 40.0, BASE_LAT + 0.004 * math.sin(angle), BASE_LNG + 0.004 * math.cos(angle))
        territories.append(
            Territory(
                id=f"t{idx}",
                owner_id=f"owner{idx % 7}",
                coordinates=ring,
                area=3200.0,
                perimeter=226.0,
                avg_pace=5.5,
                required_pace=5.0,
            )
        )
    return territories


def _run_iteration(path: List[Coordinate], territories: List[Territory]) -> StageDurations:
    start = time.perf_counter()
    loops = detect_self_loops(path)
    detect = time.perf_counter() - start

    start = time.perf_counter()
    merge_loops(path, loops)
    merge = time.perf_counter() - start

    normalized = normalize_path(path)
    start = time.perf_counter()
    resolve_claim(normalized.region, territories, "bench")
    resolve = time.perf_counter() - start
    return StageDurations(detect=detect, merge=merge, resolve=resolve)


def run_benchmark(point_count: int, territory_count: int, iterations: int) -> Dict[str, float]:
    if point_count < 10:
        raise ValueError("point_count must be at least 10")
    if iterations <= 0:
        raise ValueError("iterations must be positive")
    path = _circle(point_count, 500.0)
    territories = _territories(territory_count)
    durations = [_run_iteration(path, territories) for _ in range(iterations)]
    return {
        "point_count": point_count,
        "territory_count": territory_count,
        "iterations": iterations,
        "mean_detect_ms": statistics.fmean(d.detect for d in durations) * 1000.0,
        "mean_merge_ms": statistics.fmean(d.merge for d in durations) * 1000.0,
        "mean_resolve_ms": statistics.fmean(d.resolve for d in durations) * 1000.0,
        "worst_total_ms": max(d.total for d in durations) * 1000.0,
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Benchmark self-loop detection and claim resolution",
    )
    parser.add_argument("--points", type=int, default=2000)
    parser.add_argument("--territories", type=int, default=200)
    parser.add_argument("--iterations", type=int, default=3)
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    summary = run_benchmark(args.points, args.territories, args.iterations)
    for key, value in summary.items():
        if key in {"point_count", "territory_count", "iterations"}:
            print(f"{key}: {value}")
        else:
            print(f"{key}: {value:.3f}")


if __name__ == "__main__":
    main()
