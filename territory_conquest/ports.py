"""Interfaces of the external collaborators the engine reads from and writes to.

The engine never owns persisted rows. It reads a snapshot, decides, and hands
a :class:`ClaimPlan` to :meth:`PersistencePort.apply_claim`, which must apply
the whole plan atomically or raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence

from .models import (
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


@dataclass(slots=True)
class TerritoryWrite:
    """Insert (``expected_version is None``) or versioned update of a territory."""

    territory: Territory
    expected_version: Optional[int] = None

    @property
    def is_insert(self) -> bool:
        return self.expected_version is None


@dataclass(slots=True)
class ProfileDelta:
    """Additive change to a profile; the store floors each total at zero."""

    user_id: str
    points: int = 0
    territories: int = 0
    distance: float = 0.0
    shield_charges: int = 0


@dataclass(slots=True)
class ClanDelta:
    clan_id: str
    user_id: str
    points: int = 0
    territories: int = 0
    mission_bonus: int = 0


@dataclass(slots=True)
class ClaimPlan:
    """Every write produced by one accepted claim."""

    user_id: str
    territory_id: str
    run: Run
    territory_writes: List[TerritoryWrite] = field(default_factory=list)
    profile_deltas: List[ProfileDelta] = field(default_factory=list)
    shield_deletions: List[str] = field(default_factory=list)
    events: List[TerritoryEvent] = field(default_factory=list)
    challenge_claims: List[str] = field(default_factory=list)
    mission_progress: List[MissionProgress] = field(default_factory=list)
    clan_deltas: List[ClanDelta] = field(default_factory=list)
    clan_missions: List[ClanMission] = field(default_factory=list)
    clan_feed: List[ClanFeedEntry] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class CommitResult:
    territory_id: str
    run_id: str


class PersistencePort(Protocol):
    def load_territories_snapshot(self) -> List[Territory]: ...

    def load_profile(self, user_id: str) -> Optional[Profile]: ...

    def load_territory_shield(
        self, territory_id: str, now: datetime
    ) -> Optional[TerritoryShield]: ...

    def last_attempt_at(self, territory_id: str, attacker_id: str) -> Optional[datetime]: ...

    def record_event(self, event: TerritoryEvent) -> None: ...

    def apply_claim(self, plan: ClaimPlan) -> CommitResult: ...


class CatalogPort(Protocol):
    """Read-mostly catalogs consumed by the side-effect coordinator.

    Implementations raise :class:`~territory_conquest.errors.CatalogLookupFailure`
    on lookup errors.
    """

    def load_pois(self) -> List[Poi]: ...

    def load_active_map_challenges(self, now: datetime) -> List[MapChallenge]: ...

    def has_challenge_claim(self, challenge_id: str, user_id: str) -> bool: ...

    def load_missions(self, types: Sequence[str], now: datetime) -> List[Mission]: ...

    def load_mission_progress(
        self, user_id: str, mission_ids: Sequence[str]
    ) -> Dict[str, MissionProgress]: ...

    def load_clan_memberships(self, user_id: str) -> List[ClanMembership]: ...

    def load_clan_missions(self, clan_ids: Sequence[str]) -> List[ClanMission]: ...


class NotificationPort(Protocol):
    def notify(self, user_id: str, intent: NotificationIntent) -> None: ...
