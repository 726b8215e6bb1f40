"""Side effects layered on an accepted claim.

POI tagging, map challenges, rotating missions and clan aggregates all add
points on top of the base reward. None of them may fail a claim: lookup
errors are logged and the stage is skipped. Every write is returned to the
caller so it lands in the same commit as the territory mutation.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
import logging
import threading
from typing import Dict, List

from cachetools import TTLCache
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry

from .config import CLAN_MISSION_TYPES, POI_CACHE_TTL_SECONDS, RUN_METRIC_MISSION_TYPES
from .geometry import contains_point, to_shape
from .models import (
    ClanFeedEntry,
    ClanMission,
    MissionProgress,
    NotificationIntent,
    Poi,
    PoiTag,
)
from .ports import CatalogPort, ClanDelta
from .rules import Outcome


@dataclass(slots=True)
class SideEffects:
    """Additive results of the side-effect stages for one claim."""

    poi_tags: List[PoiTag] = field(default_factory=list)
    poi_summary: str | None = None
    challenge_claims: List[str] = field(default_factory=list)
    challenge_rewards: List[str] = field(default_factory=list)
    challenge_points: int = 0
    mission_progress: List[MissionProgress] = field(default_factory=list)
    missions_completed: List[str] = field(default_factory=list)
    mission_points: int = 0
    mission_shields: int = 0
    clan_deltas: List[ClanDelta] = field(default_factory=list)
    clan_missions: List[ClanMission] = field(default_factory=list)
    clan_missions_completed: List[str] = field(default_factory=list)
    clan_feed: List[ClanFeedEntry] = field(default_factory=list)
    notifications: List[NotificationIntent] = field(default_factory=list)

    @property
    def bonus_points(self) -> int:
        return self.challenge_points + self.mission_points


class SideEffectCoordinator:
    def __init__(
        self,
        catalog: CatalogPort,
        *,
        poi_cache_ttl: int = POI_CACHE_TTL_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._catalog = catalog
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._poi_cache: TTLCache | None = (
            TTLCache(maxsize=1, ttl=poi_cache_ttl) if poi_cache_ttl > 0 else None
        )
        self._poi_lock = threading.Lock()

    def collect(
        self, user_id: str, outcome: Outcome, distance: float, now: datetime
    ) -> SideEffects:
        effects = SideEffects()
        try:
            shape = to_shape(outcome.territory.coordinates, outcome.territory.holes)
        except (GEOSException, ValueError):
            self._log.warning("Claim polygon unusable for side effects", exc_info=True)
            return effects

        self._stage("poi tagging", self._tag_pois, effects, shape)
        self._stage("map challenges", self._claim_challenges, effects, user_id, shape, now)
        self._stage(
            "missions", self._advance_missions, effects, user_id, outcome, distance, now
        )
        self._stage("clans", self._update_clans, effects, user_id, outcome)
        return effects

    def _stage(self, name: str, func, effects: SideEffects, *args) -> None:
        try:
            func(effects, *args)
        except Exception as exc:
            self._log.warning("Skipping %s side effect: %s", name, exc, exc_info=True)

    def load_pois(self) -> List[Poi]:
        if self._poi_cache is None:
            return self._catalog.load_pois()
        with self._poi_lock:
            cached = self._poi_cache.get("pois")
            if cached is None:
                cached = self._catalog.load_pois()
                self._poi_cache["pois"] = cached
            return cached

    def _tag_pois(self, effects: SideEffects, shape: BaseGeometry) -> None:
        seen: set[PoiTag] = set()
        for poi in self.load_pois():
            if len(poi.coordinates) < 3:
                continue
            try:
                poi_shape = to_shape(poi.coordinates)
                hit = shape.intersects(poi_shape)
            except (GEOSException, ValueError):
                self._log.debug("Ignoring POI %s with invalid geometry", poi.id)
                continue
            tag = PoiTag(category=poi.category, name=poi.name)
            if hit and tag not in seen:
                seen.add(tag)
                effects.poi_tags.append(tag)
        if effects.poi_tags:
            effects.poi_summary = ", ".join(tag.name for tag in effects.poi_tags)

    def _claim_challenges(
        self, effects: SideEffects, user_id: str, shape: BaseGeometry, now: datetime
    ) -> None:
        for challenge in self._catalog.load_active_map_challenges(now):
            if not contains_point(shape, challenge.latitude, challenge.longitude):
                continue
            if self._catalog.has_challenge_claim(challenge.id, user_id):
                continue
            effects.challenge_claims.append(challenge.id)
            effects.challenge_rewards.append(challenge.name)
            effects.challenge_points += challenge.reward_points
            effects.notifications.append(
                NotificationIntent(
                    title="Map challenge",
                    body=f"You completed {challenge.name}. +{challenge.reward_points} points",
                    tag="map-challenge",
                    url="/challenges",
                )
            )

    def _mission_increments(self, effects: SideEffects, outcome: Outcome, distance: float) -> Counter:
        increments: Counter = Counter(tag.category for tag in effects.poi_tags)
        increments["runs"] += 1
        increments["territories"] += outcome.territories_gained
        increments["stolen"] += outcome.territories_stolen
        increments["distance"] += int(distance)
        return increments

    def _advance_missions(
        self,
        effects: SideEffects,
        user_id: str,
        outcome: Outcome,
        distance: float,
        now: datetime,
    ) -> None:
        increments = self._mission_increments(effects, outcome, distance)
        types = sorted({tag.category for tag in effects.poi_tags} | set(RUN_METRIC_MISSION_TYPES))
        missions = self._catalog.load_missions(types, now)
        if not missions:
            return
        progress = self._catalog.load_mission_progress(user_id, [m.id for m in missions])
        for mission in missions:
            step = increments.get(mission.mission_type, 0)
            if step <= 0:
                continue
            current = progress.get(mission.id) or MissionProgress(mission.id, user_id)
            if current.completed:
                continue
            updated = replace(current, progress=current.progress + step)
            if updated.progress >= mission.target_count:
                updated.completed = True
                updated.completed_at = now
                effects.missions_completed.append(mission.title)
                effects.mission_points += mission.reward_points
                effects.mission_shields += mission.reward_shields
                effects.notifications.append(
                    NotificationIntent(
                        title="Mission completed",
                        body=f"{mission.title}: +{mission.reward_points} points",
                        tag="mission",
                        url="/challenges",
                    )
                )
            effects.mission_progress.append(updated)

    def _update_clans(self, effects: SideEffects, user_id: str, outcome: Outcome) -> None:
        memberships = self._catalog.load_clan_memberships(user_id)
        if not memberships:
            return
        total_points = outcome.points + effects.bonus_points
        clan_ids = [m.clan_id for m in memberships]
        missions_by_clan: Dict[str, List[ClanMission]] = {}
        for mission in self._catalog.load_clan_missions(clan_ids):
            if mission.active and mission.mission_type in CLAN_MISSION_TYPES:
                missions_by_clan.setdefault(mission.clan_id, []).append(mission)

        categories = Counter(tag.category for tag in effects.poi_tags)
        increments = {
            "park": categories.get("park", 0),
            "fountain": categories.get("fountain", 0),
            "district": categories.get("district", 0),
            "territories": outcome.territories_gained,
            "points": total_points,
        }
        for membership in memberships:
            clan_bonus = 0
            for mission in missions_by_clan.get(membership.clan_id, []):
                step = increments.get(mission.mission_type, 0)
                if step <= 0 or mission.current_progress >= mission.target_count:
                    continue
                updated = replace(mission, current_progress=mission.current_progress + step)
                if updated.current_progress >= updated.target_count:
                    updated.active = False
                    clan_bonus += updated.reward_points
                    effects.clan_missions_completed.append(updated.mission_type)
                effects.clan_missions.append(updated)
            effects.clan_deltas.append(
                ClanDelta(
                    clan_id=membership.clan_id,
                    user_id=user_id,
                    points=total_points,
                    territories=outcome.territories_gained,
                    mission_bonus=clan_bonus,
                )
            )
            effects.clan_feed.append(
                ClanFeedEntry(
                    clan_id=membership.clan_id,
                    user_id=user_id,
                    event_type=f"territory_{outcome.action}",
                    payload={
                        "territory_id": outcome.territory.id,
                        "points": total_points,
                        "area": round(outcome.territory.area, 2),
                    },
                )
            )

