"""Territory claim service.

Runs one claim end to end: normalise the path, classify it against a
territory snapshot, apply the conquest rules, compute rewards and side
effects, then hand a single plan to the persistence port. Notification
intents go out only after the commit succeeded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import math
import secrets
from typing import Any, Callable, Dict, List, Optional

from ..config import CLAIM_MAX_RETRIES, MIN_PATH_POINTS, MINIMUM_AREA_M2, STEAL_COOLDOWN_MS
from ..errors import (
    AreaTooLarge,
    ClaimError,
    ConcurrentModification,
    InvalidDuration,
    InvalidPath,
    PersistenceFailure,
    TerritoryTooSmall,
)
from ..geometry import NormalizedPath, average_pace, normalize_path, path_length
from ..models import (
    ClaimAction,
    ClaimRequest,
    PoiTag,
    Profile,
    Run,
    TerritoryEvent,
)
from ..notifications import (
    Delivery,
    denial_intent,
    dispatch_notifications,
    territory_lost_intent,
    territory_split_intent,
)
from ..ports import (
    CatalogPort,
    ClaimPlan,
    NotificationPort,
    PersistencePort,
    ProfileDelta,
)
from ..resolver import Resolution, resolve_claim
from ..rewards import calculate_level, max_area_for_level
from ..rules import (
    Attacker,
    InteriorConquest,
    Outcome,
    PROTECTION,
    Stolen,
    TargetState,
    decide_interior,
    decide_new,
    decide_reinforce,
    decide_steal,
)
from ..side_effects import SideEffectCoordinator, SideEffects


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ClaimServiceConfig:
    store: PersistencePort
    catalog: CatalogPort | None = None
    notifier: NotificationPort | None = None
    clock: Callable[[], datetime] = _utc_now
    max_retries: int = CLAIM_MAX_RETRIES
    logger: logging.Logger | None = None


@dataclass(slots=True)
class ClaimResult:
    """Successful claim as reported to the caller."""

    action: ClaimAction
    territory_id: str
    run_id: str
    points_gained: int
    territories_conquered: int
    territories_stolen: int
    territories_lost: int
    protected_until: datetime
    cooldown_duration_ms: int = STEAL_COOLDOWN_MS
    poi_tags: List[PoiTag] = field(default_factory=list)
    challenge_rewards: List[str] = field(default_factory=list)
    missions_completed: List[str] = field(default_factory=list)
    mission_reward_points: int = 0
    mission_reward_shields: int = 0
    clan_missions_completed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "territory_id": self.territory_id,
            "run_id": self.run_id,
            "points_gained": self.points_gained,
            "territories_conquered": self.territories_conquered,
            "territories_stolen": self.territories_stolen,
            "territories_lost": self.territories_lost,
            "protected_until": self.protected_until.isoformat(),
            "cooldown_duration_ms": self.cooldown_duration_ms,
            "poi_tags": [tag.to_dict() for tag in self.poi_tags],
            "challenge_rewards": list(self.challenge_rewards),
            "missions_completed": list(self.missions_completed),
            "mission_rewards": {
                "points": self.mission_reward_points,
                "shields": self.mission_reward_shields,
            },
            "clan_missions_completed": list(self.clan_missions_completed),
        }


@dataclass(slots=True)
class _Claim:
    """Per-request values shared by the evaluation steps."""

    trace_id: str
    user_id: str
    request: ClaimRequest
    normalized: NormalizedPath
    profile: Profile
    attacker: Attacker
    now: datetime

    @property
    def attacker_name(self) -> str:
        return self.profile.username or "A runner"


class ClaimService:
    def __init__(self, config: ClaimServiceConfig) -> None:
        self.config = config
        self._log = config.logger or logging.getLogger(self.__class__.__name__)
        self._side_effects = (
            SideEffectCoordinator(config.catalog, logger=self._log)
            if config.catalog is not None
            else None
        )

    def process(self, user_id: str, request: ClaimRequest) -> ClaimResult:
        """Evaluate and commit one claim, raising :class:`ClaimError` on rejection."""

        trace_id = secrets.token_hex(4)
        claim = self._prepare(trace_id, user_id, request)
        attempts = max(1, self.config.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return self._evaluate(claim)
            except ConcurrentModification as exc:
                self._log.warning(
                    "claim=%s concurrent modification (attempt %d/%d): %s",
                    trace_id,
                    attempt,
                    attempts,
                    exc,
                )
        raise PersistenceFailure("The territory changed while the claim was processed")

    def _prepare(self, trace_id: str, user_id: str, request: ClaimRequest) -> _Claim:
        if len(request.path) < MIN_PATH_POINTS:
            raise InvalidPath("Invalid path")
        duration = request.duration_seconds
        if duration is None or not math.isfinite(duration) or duration <= 0:
            raise InvalidDuration()

        normalized = normalize_path(request.path)
        distance = path_length(normalized.raw_path)
        pace = average_pace(distance, request.duration_seconds)
        area = normalized.region.area
        if area < MINIMUM_AREA_M2:
            raise TerritoryTooSmall()

        profile = self.config.store.load_profile(user_id)
        if profile is None:
            raise PersistenceFailure("User profile not found")
        level = calculate_level(profile.total_points)
        if area > max_area_for_level(level):
            raise AreaTooLarge(f"The area ({round(area)} m2) exceeds your current limit")

        self._log.info(
            "claim=%s user=%s source=%s points=%d distance=%.1fm area=%.1fm2 pace=%.2f loops=%d",
            trace_id,
            user_id,
            request.source,
            len(request.path),
            distance,
            area,
            pace,
            normalized.loops_merged,
        )
        return _Claim(
            trace_id=trace_id,
            user_id=user_id,
            request=request,
            normalized=normalized,
            profile=profile,
            attacker=Attacker(user_id=user_id, level=level, pace=pace, distance=distance),
            now=self.config.clock(),
        )

    def _evaluate(self, claim: _Claim) -> ClaimResult:
        store = self.config.store
        snapshot = store.load_territories_snapshot()
        resolution = resolve_claim(claim.normalized.region, snapshot, claim.user_id)
        self._log.info(
            "claim=%s classified as %s (overlap=%.3f, carved=%d)",
            claim.trace_id,
            resolution.classification,
            resolution.overlap_ratio,
            len(resolution.carved_from),
        )
        outcome = self._decide(claim, resolution)

        effects = SideEffects()
        if self._side_effects is not None:
            effects = self._side_effects.collect(
                claim.user_id, outcome, claim.attacker.distance, claim.now
            )
        outcome.territory.tags = list(effects.poi_tags)
        outcome.territory.poi_summary = effects.poi_summary

        points_gained = outcome.points + effects.bonus_points
        plan = self._build_plan(claim, resolution, outcome, effects, points_gained)
        try:
            commit = store.apply_claim(plan)
        except ClaimError:
            raise
        except Exception as exc:
            self._log.error(
                "claim=%s commit failed: %s", claim.trace_id, exc, exc_info=True
            )
            raise PersistenceFailure() from exc

        self._log.info(
            "claim=%s committed %s territory=%s run=%s points=%d",
            claim.trace_id,
            outcome.action,
            commit.territory_id,
            commit.run_id,
            points_gained,
        )
        dispatch_notifications(
            self.config.notifier, self._deliveries(claim, outcome, effects), self._log
        )
        return ClaimResult(
            action=outcome.action,
            territory_id=commit.territory_id,
            run_id=commit.run_id,
            points_gained=points_gained,
            territories_conquered=outcome.territories_conquered,
            territories_stolen=outcome.territories_stolen,
            territories_lost=0,
            protected_until=claim.now + PROTECTION,
            poi_tags=list(effects.poi_tags),
            challenge_rewards=list(effects.challenge_rewards),
            missions_completed=list(effects.missions_completed),
            mission_reward_points=effects.mission_points,
            mission_reward_shields=effects.mission_shields,
            clan_missions_completed=list(effects.clan_missions_completed),
        )

    def _decide(self, claim: _Claim, resolution: Resolution) -> Outcome:
        kind = resolution.classification
        if kind == "new":
            return decide_new(resolution, claim.attacker, claim.now)
        if kind == "reinforce":
            return decide_reinforce(resolution, claim.attacker, claim.now)

        state = self._target_state(claim, resolution)
        try:
            if kind == "steal":
                return decide_steal(resolution, state, claim.attacker, claim.now)
            return decide_interior(resolution, state, claim.attacker, claim.now)
        except ClaimError as exc:
            self._reject_attack(claim, resolution, state, exc)
            raise

    def _target_state(self, claim: _Claim, resolution: Resolution) -> TargetState:
        store = self.config.store
        territory = resolution.target.territory
        return TargetState(
            territory=territory,
            owner=store.load_profile(territory.owner_id),
            shield=store.load_territory_shield(territory.id, claim.now),
            last_attempt_at=store.last_attempt_at(territory.id, claim.user_id),
        )

    def _reject_attack(
        self,
        claim: _Claim,
        resolution: Resolution,
        state: TargetState,
        error: ClaimError,
    ) -> None:
        territory = state.territory
        self._log.info(
            "claim=%s %s on territory=%s rejected: %s",
            claim.trace_id,
            resolution.classification,
            territory.id,
            error.code,
        )
        event = TerritoryEvent(
            territory_id=territory.id,
            attacker_id=claim.user_id,
            defender_id=territory.owner_id,
            kind="steal" if resolution.classification == "steal" else "conquest",
            result="failed",
            overlap_ratio=resolution.overlap_ratio,
            pace=claim.attacker.pace,
            area=resolution.claimed.area,
            points_awarded=0,
            created_at=claim.now,
        )
        try:
            self.config.store.record_event(event)
        except Exception as exc:
            self._log.error(
                "claim=%s failed to record rejected attempt: %s",
                claim.trace_id,
                exc,
                exc_info=True,
            )
        intent = denial_intent(territory, error, claim.attacker_name)
        if intent is not None:
            dispatch_notifications(
                self.config.notifier, [(territory.owner_id, intent)], self._log
            )

    def _build_plan(
        self,
        claim: _Claim,
        resolution: Resolution,
        outcome: Outcome,
        effects: SideEffects,
        points_gained: int,
    ) -> ClaimPlan:
        attacker = claim.attacker
        run = Run(
            user_id=claim.user_id,
            path=tuple(claim.normalized.raw_path),
            distance=attacker.distance,
            duration=claim.request.duration_seconds,
            avg_pace=attacker.pace,
            territories_conquered=outcome.territories_conquered,
            territories_stolen=outcome.territories_stolen,
            territories_lost=0,
            points_gained=points_gained,
            source=claim.request.source,
            created_at=claim.now,
        )
        primary = resolution.primary
        defender_id: Optional[str] = outcome.defender_id or (
            primary.territory.owner_id if primary is not None else None
        )
        event = TerritoryEvent(
            territory_id=outcome.territory.id,
            attacker_id=claim.user_id,
            defender_id=defender_id,
            kind=outcome.event_kind,
            result=outcome.event_result,
            overlap_ratio=resolution.overlap_ratio or 1.0,
            pace=attacker.pace,
            area=outcome.territory.area,
            points_awarded=points_gained,
            created_at=claim.now,
        )
        plan = ClaimPlan(
            user_id=claim.user_id,
            territory_id=outcome.territory.id,
            run=run,
            territory_writes=list(outcome.writes),
            events=[event],
            challenge_claims=list(effects.challenge_claims),
            mission_progress=list(effects.mission_progress),
            clan_deltas=list(effects.clan_deltas),
            clan_missions=list(effects.clan_missions),
            clan_feed=list(effects.clan_feed),
        )
        plan.profile_deltas.append(
            ProfileDelta(
                user_id=claim.user_id,
                points=points_gained,
                territories=outcome.territories_gained,
                distance=attacker.distance,
                shield_charges=effects.mission_shields,
            )
        )
        if isinstance(outcome, Stolen):
            plan.shield_deletions.append(outcome.territory.id)
            plan.profile_deltas.append(
                ProfileDelta(
                    user_id=outcome.former_owner_id,
                    points=-outcome.defender_points_lost,
                    territories=-1,
                )
            )
        elif isinstance(outcome, InteriorConquest) and outcome.defender_points_lost:
            plan.profile_deltas.append(
                ProfileDelta(
                    user_id=outcome.former_owner_id,
                    points=-outcome.defender_points_lost,
                )
            )
        return plan

    def _deliveries(
        self, claim: _Claim, outcome: Outcome, effects: SideEffects
    ) -> List[Delivery]:
        deliveries: List[Delivery] = []
        if isinstance(outcome, Stolen):
            deliveries.append(
                (outcome.former_owner_id, territory_lost_intent(outcome.territory, claim.attacker_name))
            )
        elif isinstance(outcome, InteriorConquest):
            original = outcome.shrunk or outcome.target or outcome.territory
            deliveries.append(
                (outcome.former_owner_id, territory_split_intent(original, claim.attacker_name))
            )
        deliveries.extend((claim.user_id, intent) for intent in effects.notifications)
        return deliveries
