"""Conquest rules: steal gates, protection windows and territory mutations.

Everything here is pure. The claim service gathers the target's owner
profile, shield and last attempt before asking for a decision, and turns a
raised :class:`~territory_conquest.errors.ClaimError` into a failed-attempt
event.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
import logging
from typing import ClassVar, List, Optional
import uuid

from shapely.errors import GEOSException

from .config import PROTECTION_DURATION_MS, STEAL_COOLDOWN_MS
from .errors import CooldownActive, PaceInsufficient, ShieldActive, TerritoryProtected
from .geometry import Region, difference, largest, region_shape
from .models import (
    ClaimAction,
    EventKind,
    EventResult,
    Profile,
    Territory,
    TerritoryShield,
)
from .ports import TerritoryWrite
from .resolver import Resolution, territory_shape
from .rewards import calculate_level, proportional_points, required_pace, reward_points

LOGGER = logging.getLogger(__name__)

PROTECTION = timedelta(milliseconds=PROTECTION_DURATION_MS)
STEAL_COOLDOWN = timedelta(milliseconds=STEAL_COOLDOWN_MS)


@dataclass(slots=True)
class Attacker:
    user_id: str
    level: int
    pace: float
    distance: float


@dataclass(slots=True)
class TargetState:
    """Reads about the targeted territory taken alongside the snapshot."""

    territory: Territory
    owner: Optional[Profile] = None
    shield: Optional[TerritoryShield] = None
    last_attempt_at: Optional[datetime] = None

    @property
    def owner_level(self) -> int:
        return calculate_level(self.owner.total_points if self.owner else 0)


@dataclass(slots=True)
class Outcome:
    """Accepted claim: the attacker's resulting territory and the rows to write."""

    territory: Territory
    writes: List[TerritoryWrite]
    points: int
    overlap_ratio: float

    action: ClassVar[ClaimAction]
    event_kind: ClassVar[EventKind]
    event_result: ClassVar[EventResult] = "success"

    @property
    def defender_id(self) -> Optional[str]:
        return None

    @property
    def territories_conquered(self) -> int:
        return 0

    @property
    def territories_stolen(self) -> int:
        return 0

    @property
    def territories_gained(self) -> int:
        return self.territories_conquered + self.territories_stolen


@dataclass(slots=True)
class NewTerritory(Outcome):
    carved_from: List[str] = field(default_factory=list)

    action: ClassVar[ClaimAction] = "new"
    event_kind: ClassVar[EventKind] = "conquest"

    @property
    def territories_conquered(self) -> int:
        return 1


@dataclass(slots=True)
class Reinforced(Outcome):
    action: ClassVar[ClaimAction] = "reinforced"
    event_kind: ClassVar[EventKind] = "reinforce"
    event_result: ClassVar[EventResult] = "neutral"


@dataclass(slots=True)
class Stolen(Outcome):
    former_owner_id: str = ""
    defender_points_lost: int = 0
    removed_shield: bool = False

    action: ClassVar[ClaimAction] = "stolen"
    event_kind: ClassVar[EventKind] = "steal"

    @property
    def defender_id(self) -> Optional[str]:
        return self.former_owner_id

    @property
    def territories_stolen(self) -> int:
        return 1


@dataclass(slots=True)
class InteriorConquest(Outcome):
    former_owner_id: str = ""
    target: Optional[Territory] = None
    shrunk: Optional[Territory] = None
    defender_points_lost: int = 0

    action: ClassVar[ClaimAction] = "inner_conquest"
    event_kind: ClassVar[EventKind] = "conquest"

    @property
    def defender_id(self) -> Optional[str]:
        return self.former_owner_id

    @property
    def territories_conquered(self) -> int:
        return 1


def new_territory_id() -> str:
    return uuid.uuid4().hex


def cooldown_remaining_ms(
    territory: Territory, last_attempt_at: Optional[datetime], now: datetime
) -> int:
    """Milliseconds until both the territory and attacker cooldowns have passed."""

    remaining = timedelta(0)
    if territory.cooldown_until is not None:
        remaining = max(remaining, territory.cooldown_until - now)
    if last_attempt_at is not None:
        remaining = max(remaining, STEAL_COOLDOWN - (now - last_attempt_at))
    return max(int(remaining.total_seconds() * 1000), 0)


def check_protection(state: TargetState, now: datetime) -> None:
    if state.territory.is_protected(now):
        raise TerritoryProtected()


def check_shield(state: TargetState, attacker_id: str, now: datetime) -> None:
    shield = state.shield
    if shield is None or shield.expires_at <= now:
        return
    if attacker_id != state.territory.owner_id:
        raise ShieldActive()


def check_steal(state: TargetState, attacker: Attacker, now: datetime) -> None:
    """Run the steal gates in order; the first failing gate raises."""

    territory = state.territory
    needed = required_pace(territory.avg_pace, state.owner_level)
    if attacker.pace > needed:
        raise PaceInsufficient(needed)

    check_protection(state, now)

    blocked_by_territory = (
        territory.cooldown_until is not None and now < territory.cooldown_until
    )
    blocked_by_attempt = (
        state.last_attempt_at is not None
        and now - state.last_attempt_at < STEAL_COOLDOWN
    )
    if blocked_by_territory or blocked_by_attempt:
        raise CooldownActive(cooldown_remaining_ms(territory, state.last_attempt_at, now))

    check_shield(state, attacker.user_id, now)


def check_interior(state: TargetState, attacker: Attacker, now: datetime) -> None:
    check_protection(state, now)
    check_shield(state, attacker.user_id, now)


def create_territory(
    region: Region, attacker: Attacker, points: int, now: datetime
) -> Territory:
    return Territory(
        id=new_territory_id(),
        owner_id=attacker.user_id,
        coordinates=list(region.exterior),
        holes=[list(hole) for hole in region.holes],
        area=region.area,
        perimeter=region.perimeter,
        avg_pace=attacker.pace,
        required_pace=required_pace(attacker.pace, attacker.level),
        protected_until=now + PROTECTION,
        cooldown_until=now + STEAL_COOLDOWN,
        status="protected",
        conquest_points=points,
        points=points,
    )


def decide_new(resolution: Resolution, attacker: Attacker, now: datetime) -> NewTerritory:
    claimed = resolution.claimed
    points = reward_points(attacker.distance, claimed.area, "new")
    territory = create_territory(claimed, attacker, points, now)
    return NewTerritory(
        territory=territory,
        writes=[TerritoryWrite(territory)],
        points=points,
        overlap_ratio=1.0,
        carved_from=list(resolution.carved_from),
    )


def decide_reinforce(resolution: Resolution, attacker: Attacker, now: datetime) -> Reinforced:
    target = resolution.primary.territory
    region = resolution.claimed
    updated = replace(
        target,
        coordinates=list(region.exterior),
        holes=[list(hole) for hole in region.holes],
        area=region.area,
        perimeter=region.perimeter,
        avg_pace=attacker.pace,
        required_pace=required_pace(attacker.pace, attacker.level),
        protected_until=now + PROTECTION,
        status="protected",
    )
    return Reinforced(
        territory=updated,
        writes=[TerritoryWrite(updated, expected_version=target.version)],
        points=0,
        overlap_ratio=resolution.overlap_ratio,
    )


def decide_steal(
    resolution: Resolution, state: TargetState, attacker: Attacker, now: datetime
) -> Stolen:
    check_steal(state, attacker, now)
    target = state.territory
    region = resolution.claimed
    points = reward_points(attacker.distance, region.area, "stolen")
    updated = replace(
        target,
        owner_id=attacker.user_id,
        coordinates=list(region.exterior),
        holes=[list(hole) for hole in region.holes],
        area=region.area,
        perimeter=region.perimeter,
        avg_pace=attacker.pace,
        required_pace=required_pace(attacker.pace, attacker.level),
        protected_until=now + PROTECTION,
        cooldown_until=now + STEAL_COOLDOWN,
        status="protected",
        last_attacker_id=attacker.user_id,
        last_defender_id=target.owner_id,
        last_attack_at=now,
        conquest_points=points,
        points=points,
    )
    return Stolen(
        territory=updated,
        writes=[TerritoryWrite(updated, expected_version=target.version)],
        points=points,
        overlap_ratio=resolution.overlap_ratio,
        former_owner_id=target.owner_id,
        defender_points_lost=target.conquest_points,
        removed_shield=state.shield is not None,
    )


def shrink_territory(target: Territory, candidate: Region) -> Optional[Territory]:
    """Cut ``candidate`` out of ``target``; None when nothing valid remains."""

    try:
        remaining = largest(difference(territory_shape(target), region_shape(candidate)))
    except (GEOSException, ValueError):
        LOGGER.warning("Interior split of %s failed", target.id, exc_info=True)
        return None
    if remaining is None or remaining.vertex_count < 4:
        return None
    new_area = remaining.area
    return replace(
        target,
        coordinates=list(remaining.exterior),
        holes=[list(hole) for hole in remaining.holes],
        area=new_area,
        perimeter=remaining.perimeter,
        points=proportional_points(target.points, target.area, new_area),
        conquest_points=proportional_points(target.conquest_points, target.area, new_area),
    )


def decide_interior(
    resolution: Resolution, state: TargetState, attacker: Attacker, now: datetime
) -> InteriorConquest:
    check_interior(state, attacker, now)
    target = state.territory
    candidate = resolution.claimed
    points = reward_points(attacker.distance, candidate.area, "inner_conquest")
    created = create_territory(candidate, attacker, points, now)
    writes = [TerritoryWrite(created)]

    shrunk = shrink_territory(target, candidate)
    points_lost = 0
    if shrunk is not None:
        writes.insert(0, TerritoryWrite(shrunk, expected_version=target.version))
        points_lost = max(target.conquest_points - shrunk.conquest_points, 0)
    else:
        LOGGER.warning(
            "No valid remainder when splitting territory %s; leaving it unchanged", target.id
        )
    return InteriorConquest(
        territory=created,
        writes=writes,
        points=points,
        overlap_ratio=resolution.overlap_ratio,
        former_owner_id=target.owner_id,
        target=target,
        shrunk=shrunk,
        defender_points_lost=points_lost,
    )
