"""Seed an :class:`InMemoryStore` from a JSON document."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from ..geometry import perimeter, spherical_polygon_area
from ..models import (
    ClanMembership,
    ClanMission,
    Coordinate,
    MapChallenge,
    Mission,
    Poi,
    Profile,
    Territory,
    TerritoryShield,
)
from ..rewards import calculate_level, required_pace
from ..utils import parse_iso8601
from .memory import InMemoryStore

LOGGER = logging.getLogger(__name__)


def _coords(raw: List[Dict[str, Any]]) -> List[Coordinate]:
    return [Coordinate.from_dict(point) for point in raw or []]


def _territory(raw: Dict[str, Any], profiles: Dict[str, Profile]) -> Territory:
    coordinates = _coords(raw["coordinates"])
    avg_pace = float(raw.get("avg_pace", 0.0))
    owner = profiles.get(raw["owner_id"])
    level = calculate_level(owner.total_points if owner else 0)
    return Territory(
        id=str(raw["id"]),
        owner_id=str(raw["owner_id"]),
        coordinates=coordinates,
        holes=[_coords(hole) for hole in raw.get("holes", [])],
        area=float(raw.get("area") or spherical_polygon_area(coordinates)),
        perimeter=float(raw.get("perimeter") or perimeter(coordinates)),
        avg_pace=avg_pace,
        required_pace=float(raw.get("required_pace") or required_pace(avg_pace, level)),
        protected_until=parse_iso8601(raw.get("protected_until")),
        cooldown_until=parse_iso8601(raw.get("cooldown_until")),
        status=raw.get("status", "idle"),
        conquest_points=int(raw.get("conquest_points", 0)),
        points=int(raw.get("points", raw.get("conquest_points", 0))),
        version=int(raw.get("version", 0)),
    )


def load_store(path: str | Path) -> InMemoryStore:
    """Build a store from ``path``; missing sections are left empty."""

    with open(path, "r", encoding="utf-8") as handle:
        document = json.load(handle)
    store = InMemoryStore()
    for raw in document.get("profiles", []):
        store.add_profile(
            Profile(
                id=str(raw["id"]),
                username=raw.get("username", ""),
                total_points=int(raw.get("total_points", 0)),
                season_points=int(raw.get("season_points", 0)),
                historical_points=int(raw.get("historical_points", 0)),
                total_territories=int(raw.get("total_territories", 0)),
                total_distance=float(raw.get("total_distance", 0.0)),
                shield_charges=int(raw.get("shield_charges", 0)),
            )
        )
    for raw in document.get("territories", []):
        store.add_territory(_territory(raw, store.profiles))
    for raw in document.get("shields", []):
        expires = parse_iso8601(raw.get("expires_at"))
        if expires is None:
            LOGGER.warning("Ignoring shield %s without expiry", raw.get("id"))
            continue
        store.add_shield(
            TerritoryShield(
                id=str(raw["id"]),
                territory_id=str(raw["territory_id"]),
                user_id=str(raw["user_id"]),
                expires_at=expires,
                shield_type=raw.get("shield_type", "consumable"),
            )
        )
    store.pois = [
        Poi(
            id=str(raw["id"]),
            name=raw["name"],
            category=raw["category"],
            coordinates=_coords(raw["coordinates"]),
        )
        for raw in document.get("pois", [])
    ]
    store.challenges = [
        MapChallenge(
            id=str(raw["id"]),
            name=raw["name"],
            latitude=float(raw["latitude"]),
            longitude=float(raw["longitude"]),
            reward_points=int(raw.get("reward_points", 0)),
            start_date=parse_iso8601(raw.get("start_date")),
            end_date=parse_iso8601(raw.get("end_date")),
            active=bool(raw.get("active", True)),
        )
        for raw in document.get("challenges", [])
    ]
    store.missions = [
        Mission(
            id=str(raw["id"]),
            title=raw["title"],
            mission_type=raw["mission_type"],
            target_count=int(raw.get("target_count", 1)),
            reward_points=int(raw.get("reward_points", 0)),
            reward_shields=int(raw.get("reward_shields", 0)),
        )
        for raw in document.get("missions", [])
    ]
    store.clan_memberships = [
        ClanMembership(
            clan_id=str(raw["clan_id"]),
            user_id=str(raw["user_id"]),
            role=raw.get("role", "member"),
            contribution_points=int(raw.get("contribution_points", 0)),
        )
        for raw in document.get("clan_memberships", [])
    ]
    for raw in document.get("clan_missions", []):
        store.add_clan_mission(
            ClanMission(
                id=str(raw["id"]),
                clan_id=str(raw["clan_id"]),
                mission_type=raw["mission_type"],
                target_count=int(raw.get("target_count", 1)),
                current_progress=int(raw.get("current_progress", 0)),
                reward_points=int(raw.get("reward_points", 0)),
                reward_shields=int(raw.get("reward_shields", 0)),
                active=bool(raw.get("active", True)),
            )
        )
    LOGGER.info(
        "Loaded %d profiles and %d territories from %s",
        len(store.profiles),
        len(store.territories),
        path,
    )
    return store
