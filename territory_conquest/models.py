"""Dataclasses describing territories, claims and their side records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import math
from typing import Any, Dict, List, Literal, Optional, Tuple

from .errors import InvalidDuration

TerritoryStatus = Literal["idle", "protected", "contested"]
EventKind = Literal["conquest", "steal", "reinforce", "defense"]
EventResult = Literal["success", "failed", "neutral"]
ClaimSource = Literal["live", "import"]
ClaimAction = Literal["new", "reinforced", "stolen", "inner_conquest"]


@dataclass(slots=True, frozen=True)
class Coordinate:
    lat: float
    lng: float
    accuracy: float | None = None
    timestamp: int | None = None

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0 or not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Coordinate out of range: lat={self.lat} lng={self.lng}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coordinate":
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            accuracy=float(data["accuracy"]) if data.get("accuracy") is not None else None,
            timestamp=int(data["timestamp"]) if data.get("timestamp") is not None else None,
        )

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


Polygon = List[Coordinate]


@dataclass(slots=True, frozen=True)
class PoiTag:
    category: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.category, "name": self.name}


@dataclass(slots=True)
class Territory:
    """A polygon on the shared map owned by one player."""

    id: str
    owner_id: str
    coordinates: Polygon
    area: float
    perimeter: float
    avg_pace: float
    required_pace: float
    protected_until: datetime | None = None
    cooldown_until: datetime | None = None
    status: TerritoryStatus = "idle"
    conquest_points: int = 0
    points: int = 0
    last_attacker_id: str | None = None
    last_defender_id: str | None = None
    last_attack_at: datetime | None = None
    holes: List[Polygon] = field(default_factory=list)
    tags: List[PoiTag] = field(default_factory=list)
    poi_summary: str | None = None
    version: int = 0

    def is_protected(self, now: datetime) -> bool:
        return self.protected_until is not None and now < self.protected_until

    def effective_status(self, now: datetime) -> TerritoryStatus:
        """Return the status as seen at ``now``; protection lapses on its own."""

        if self.is_protected(now):
            return "protected"
        if self.status == "protected":
            return "idle"
        return self.status


@dataclass(slots=True)
class Profile:
    id: str
    username: str = ""
    total_points: int = 0
    season_points: int = 0
    historical_points: int = 0
    total_territories: int = 0
    total_distance: float = 0.0
    shield_charges: int = 0


@dataclass(slots=True)
class ClaimRequest:
    path: List[Coordinate]
    duration_seconds: float
    source: ClaimSource = "live"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ClaimRequest":
        """Build a request from the JSON document sent by clients."""

        raw_path = payload.get("path") or []
        duration = payload.get("duration_seconds", payload.get("duration"))
        source = payload.get("source") or "live"
        if source not in ("live", "import"):
            raise ValueError(f"Unknown claim source: {source}")
        try:
            duration_seconds = float(duration) if duration is not None else 0.0
        except (TypeError, ValueError) as exc:
            raise InvalidDuration(f"Invalid duration: {duration!r}") from exc
        if not math.isfinite(duration_seconds):
            raise InvalidDuration(f"Invalid duration: {duration!r}")
        return cls(
            path=[Coordinate.from_dict(point) for point in raw_path],
            duration_seconds=duration_seconds,
            source=source,
        )


@dataclass(slots=True, frozen=True)
class TerritoryEvent:
    """Append-only audit record written once per claim attempt."""

    territory_id: str
    attacker_id: str
    defender_id: str | None
    kind: EventKind
    result: EventResult
    overlap_ratio: float
    pace: float
    area: float
    points_awarded: int = 0
    created_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class Run:
    user_id: str
    path: Tuple[Coordinate, ...]
    distance: float
    duration: float
    avg_pace: float
    territories_conquered: int
    territories_stolen: int
    territories_lost: int
    points_gained: int
    source: ClaimSource = "live"
    created_at: datetime | None = None


@dataclass(slots=True)
class TerritoryShield:
    id: str
    territory_id: str
    user_id: str
    expires_at: datetime
    shield_type: str = "consumable"


@dataclass(slots=True)
class Poi:
    id: str
    name: str
    category: str
    coordinates: Polygon


@dataclass(slots=True)
class MapChallenge:
    id: str
    name: str
    latitude: float
    longitude: float
    reward_points: int
    start_date: datetime | None = None
    end_date: datetime | None = None
    active: bool = True


@dataclass(slots=True)
class Mission:
    id: str
    title: str
    mission_type: str
    target_count: int
    reward_points: int = 0
    reward_shields: int = 0


@dataclass(slots=True)
class MissionProgress:
    mission_id: str
    user_id: str
    progress: int = 0
    completed: bool = False
    completed_at: datetime | None = None


@dataclass(slots=True)
class ClanMembership:
    clan_id: str
    user_id: str
    role: str = "member"
    contribution_points: int = 0


@dataclass(slots=True)
class ClanMission:
    id: str
    clan_id: str
    mission_type: str
    target_count: int
    current_progress: int = 0
    reward_points: int = 0
    reward_shields: int = 0
    active: bool = True


@dataclass(slots=True)
class ClanFeedEntry:
    clan_id: str
    user_id: str
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class NotificationIntent:
    title: str
    body: str
    tag: str | None = None
    url: str | None = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"title": self.title, "body": self.body, "tag": self.tag, "url": self.url}
