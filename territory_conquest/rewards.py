"""Pure scoring helpers: reward points, levels and pace requirements."""

from __future__ import annotations

import math

from .config import (
    AREA_POINTS_DIVISOR_M2,
    DEFENSE_BONUS_BY_LEVEL,
    DISTANCE_POINTS_PER_KM,
    LEVEL_POINTS_PER_EXTRA_LEVEL,
    LEVEL_THRESHOLDS,
    MAX_CLAIM_AREA_M2,
    MIN_REQUIRED_PACE,
    NEW_TERRITORY_BASE_REWARD,
    STEAL_BASE_REWARD,
)
from .models import ClaimAction

ACTION_BONUS = {
    "new": NEW_TERRITORY_BASE_REWARD,
    "stolen": STEAL_BASE_REWARD,
    "inner_conquest": STEAL_BASE_REWARD,
    "reinforced": 0,
}


def reward_points(distance_m: float, area_m2: float, action: ClaimAction) -> int:
    """Points for a claim: distance, area and a per-action bonus.

    Reinforcing your own territory is worth nothing.
    """

    if action == "reinforced":
        return 0
    distance_points = math.floor(distance_m / 1000.0 * DISTANCE_POINTS_PER_KM)
    area_points = math.floor(area_m2 / AREA_POINTS_DIVISOR_M2)
    return int(distance_points + area_points + ACTION_BONUS[action])


def calculate_level(total_points: int) -> int:
    level = 1
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if total_points >= threshold:
            level = index + 1
        else:
            break
    if level >= len(LEVEL_THRESHOLDS):
        extra = (total_points - LEVEL_THRESHOLDS[-1]) // LEVEL_POINTS_PER_EXTRA_LEVEL
        level = len(LEVEL_THRESHOLDS) + int(extra)
    return level


def max_area_for_level(_level: int) -> float:
    # Flat cap; no per-level scaling has been agreed.
    return MAX_CLAIM_AREA_M2


def level_bonus(level: int) -> float:
    """Minutes per km a defender of ``level`` gets subtracted from their pace."""

    for min_level, bonus in DEFENSE_BONUS_BY_LEVEL:
        if level >= min_level:
            return bonus
    return DEFENSE_BONUS_BY_LEVEL[-1][1]


def required_pace(owner_pace: float, owner_level: int) -> float:
    """Slowest pace (min/km) an attacker may run and still steal."""

    return max(owner_pace - level_bonus(owner_level), MIN_REQUIRED_PACE)


def proportional_points(old_points: int, old_area: float, new_area: float) -> int:
    """Scale points to a shrunken area, rounding down."""

    if old_area <= 0:
        return 0
    return int(math.floor(old_points * new_area / old_area))
