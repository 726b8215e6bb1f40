"""In-memory implementation of the persistence, catalog and notification ports.

Used by the tests and the development server. Every read returns copies so a
claim works on a stable snapshot; ``apply_claim`` checks territory versions
under one lock and applies the whole plan or nothing.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime
import logging
import threading
import uuid
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import ConcurrentModification, PersistenceFailure
from ..models import (
    ClanFeedEntry,
    ClanMembership,
    ClanMission,
    MapChallenge,
    Mission,
    MissionProgress,
    NotificationIntent,
    Poi,
    Profile,
    Run,
    Territory,
    TerritoryEvent,
    TerritoryShield,
)
from ..ports import ClaimPlan, CommitResult, ProfileDelta

LOGGER = logging.getLogger(__name__)


class InMemoryStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.territories: Dict[str, Territory] = {}
        self.profiles: Dict[str, Profile] = {}
        self.shields: Dict[str, TerritoryShield] = {}
        self.events: List[TerritoryEvent] = []
        self.runs: Dict[str, Run] = {}
        self.pois: List[Poi] = []
        self.challenges: List[MapChallenge] = []
        self.challenge_claims: set[Tuple[str, str]] = set()
        self.missions: List[Mission] = []
        self.mission_progress: Dict[Tuple[str, str], MissionProgress] = {}
        self.clan_memberships: List[ClanMembership] = []
        self.clan_missions: Dict[str, ClanMission] = {}
        self.clan_points: Dict[str, int] = {}
        self.clan_territories: Dict[str, int] = {}
        self.clan_feed: List[ClanFeedEntry] = []
        self.notifications: List[Tuple[str, NotificationIntent]] = []

    # -- seeding -----------------------------------------------------------
    def add_profile(self, profile: Profile) -> Profile:
        with self._lock:
            self.profiles[profile.id] = copy.deepcopy(profile)
        return profile

    def add_territory(self, territory: Territory) -> Territory:
        with self._lock:
            self.territories[territory.id] = copy.deepcopy(territory)
        return territory

    def add_shield(self, shield: TerritoryShield) -> TerritoryShield:
        with self._lock:
            self.shields[shield.id] = copy.deepcopy(shield)
        return shield

    def add_clan_mission(self, mission: ClanMission) -> ClanMission:
        with self._lock:
            self.clan_missions[mission.id] = copy.deepcopy(mission)
        return mission

    # -- PersistencePort ---------------------------------------------------
    def load_territories_snapshot(self) -> List[Territory]:
        with self._lock:
            return [copy.deepcopy(t) for t in self.territories.values()]

    def load_territory(self, territory_id: str) -> Optional[Territory]:
        with self._lock:
            territory = self.territories.get(territory_id)
            return copy.deepcopy(territory) if territory else None

    def load_profile(self, user_id: str) -> Optional[Profile]:
        with self._lock:
            profile = self.profiles.get(user_id)
            return copy.deepcopy(profile) if profile else None

    def load_territory_shield(
        self, territory_id: str, now: datetime
    ) -> Optional[TerritoryShield]:
        with self._lock:
            for shield in self.shields.values():
                if shield.territory_id == territory_id and shield.expires_at > now:
                    return copy.deepcopy(shield)
        return None

    def last_attempt_at(self, territory_id: str, attacker_id: str) -> Optional[datetime]:
        with self._lock:
            times = [
                event.created_at
                for event in self.events
                if event.territory_id == territory_id
                and event.attacker_id == attacker_id
                and event.created_at is not None
            ]
        return max(times) if times else None

    def record_event(self, event: TerritoryEvent) -> None:
        with self._lock:
            self.events.append(event)

    def apply_claim(self, plan: ClaimPlan) -> CommitResult:
        with self._lock:
            for write in plan.territory_writes:
                territory = write.territory
                current = self.territories.get(territory.id)
                if write.is_insert:
                    if current is not None:
                        raise PersistenceFailure(f"Territory {territory.id} already exists")
                    continue
                if current is None or current.version != write.expected_version:
                    raise ConcurrentModification(
                        f"Territory {territory.id} changed since the snapshot was read"
                    )
            for delta in plan.profile_deltas:
                if delta.user_id not in self.profiles and delta.points >= 0:
                    raise PersistenceFailure(f"Profile {delta.user_id} not found")

            for write in plan.territory_writes:
                stored = copy.deepcopy(write.territory)
                stored.version = 0 if write.is_insert else (write.expected_version or 0) + 1
                self.territories[stored.id] = stored
            for territory_id in plan.shield_deletions:
                self.shields = {
                    key: shield
                    for key, shield in self.shields.items()
                    if shield.territory_id != territory_id
                }
            for delta in plan.profile_deltas:
                self._apply_profile_delta(delta)
            for challenge_id in plan.challenge_claims:
                self.challenge_claims.add((challenge_id, plan.user_id))
            for progress in plan.mission_progress:
                self.mission_progress[(progress.mission_id, progress.user_id)] = copy.deepcopy(progress)
            for delta in plan.clan_deltas:
                self.clan_points[delta.clan_id] = (
                    self.clan_points.get(delta.clan_id, 0) + delta.points + delta.mission_bonus
                )
                self.clan_territories[delta.clan_id] = (
                    self.clan_territories.get(delta.clan_id, 0) + delta.territories
                )
                for index, membership in enumerate(self.clan_memberships):
                    if membership.clan_id == delta.clan_id and membership.user_id == delta.user_id:
                        self.clan_memberships[index] = replace(
                            membership,
                            contribution_points=membership.contribution_points + delta.points,
                        )
            for mission in plan.clan_missions:
                self.clan_missions[mission.id] = copy.deepcopy(mission)
            self.clan_feed.extend(copy.deepcopy(plan.clan_feed))
            self.events.extend(plan.events)

            run_id = uuid.uuid4().hex
            self.runs[run_id] = plan.run
        LOGGER.debug("Applied claim plan territory=%s run=%s", plan.territory_id, run_id)
        return CommitResult(territory_id=plan.territory_id, run_id=run_id)

    def _apply_profile_delta(self, delta: ProfileDelta) -> None:
        profile = self.profiles.get(delta.user_id)
        if profile is None:
            LOGGER.warning("Skipping delta for unknown profile %s", delta.user_id)
            return
        if delta.points >= 0:
            profile.total_points += delta.points
            profile.season_points += delta.points
            profile.historical_points += delta.points
        else:
            profile.total_points = max(profile.total_points + delta.points, 0)
        profile.total_territories = max(profile.total_territories + delta.territories, 0)
        profile.total_distance += delta.distance
        profile.shield_charges = max(profile.shield_charges + delta.shield_charges, 0)

    # -- CatalogPort -------------------------------------------------------
    def load_pois(self) -> List[Poi]:
        with self._lock:
            return copy.deepcopy(self.pois)

    def load_active_map_challenges(self, now: datetime) -> List[MapChallenge]:
        with self._lock:
            return [
                copy.deepcopy(challenge)
                for challenge in self.challenges
                if challenge.active
                and (challenge.start_date is None or challenge.start_date <= now)
                and (challenge.end_date is None or challenge.end_date >= now)
            ]

    def has_challenge_claim(self, challenge_id: str, user_id: str) -> bool:
        with self._lock:
            return (challenge_id, user_id) in self.challenge_claims

    def load_missions(self, types: Sequence[str], now: datetime) -> List[Mission]:
        wanted = set(types)
        with self._lock:
            return [copy.deepcopy(m) for m in self.missions if m.mission_type in wanted]

    def load_mission_progress(
        self, user_id: str, mission_ids: Sequence[str]
    ) -> Dict[str, MissionProgress]:
        with self._lock:
            return {
                mission_id: copy.deepcopy(self.mission_progress[(mission_id, user_id)])
                for mission_id in mission_ids
                if (mission_id, user_id) in self.mission_progress
            }

    def load_clan_memberships(self, user_id: str) -> List[ClanMembership]:
        with self._lock:
            return [copy.deepcopy(m) for m in self.clan_memberships if m.user_id == user_id]

    def load_clan_missions(self, clan_ids: Sequence[str]) -> List[ClanMission]:
        wanted = set(clan_ids)
        with self._lock:
            return [copy.deepcopy(m) for m in self.clan_missions.values() if m.clan_id in wanted]

    # -- NotificationPort --------------------------------------------------
    def notify(self, user_id: str, intent: NotificationIntent) -> None:
        with self._lock:
            self.notifications.append((user_id, intent))
