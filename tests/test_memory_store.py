import json
from dataclasses import replace
from datetime import timedelta

import pytest

from territory_conquest.errors import ConcurrentModification, PersistenceFailure
from territory_conquest.models import Run, TerritoryEvent, TerritoryShield
from territory_conquest.ports import ClaimPlan, ProfileDelta, TerritoryWrite
from territory_conquest.storage import load_store

from conftest import NOW, make_territory


def empty_run(user_id="alice"):
    return Run(
        user_id=user_id,
        path=(),
        distance=0.0,
        duration=60.0,
        avg_pace=5.0,
        territories_conquered=0,
        territories_stolen=0,
        territories_lost=0,
        points_gained=0,
    )


def event(territory_id, attacker_id, created_at):
    return TerritoryEvent(
        territory_id=territory_id,
        attacker_id=attacker_id,
        defender_id="bob",
        kind="steal",
        result="failed",
        overlap_ratio=0.9,
        pace=6.0,
        area=100.0,
        created_at=created_at,
    )


def test_stale_version_rejects_whole_plan(store):
    store.add_territory(make_territory("t1", "bob", 100.0, version=2))
    changed = replace(store.load_territory("t1"), owner_id="alice")
    plan = ClaimPlan(
        user_id="alice",
        territory_id="t1",
        run=empty_run(),
        territory_writes=[TerritoryWrite(changed, expected_version=1)],
        profile_deltas=[ProfileDelta(user_id="alice", points=50, territories=1)],
    )
    with pytest.raises(ConcurrentModification):
        store.apply_claim(plan)
    assert store.territories["t1"].owner_id == "bob"
    assert store.profiles["alice"].total_points == 0
    assert store.runs == {}


def test_matching_version_is_bumped(store):
    store.add_territory(make_territory("t1", "bob", 100.0, version=2))
    changed = replace(store.load_territory("t1"), owner_id="alice")
    plan = ClaimPlan(
        user_id="alice",
        territory_id="t1",
        run=empty_run(),
        territory_writes=[TerritoryWrite(changed, expected_version=2)],
    )
    commit = store.apply_claim(plan)
    assert commit.territory_id == "t1"
    assert commit.run_id in store.runs
    assert store.territories["t1"].version == 3
    assert store.territories["t1"].owner_id == "alice"


def test_duplicate_insert_fails(store):
    territory = store.add_territory(make_territory("t1", "bob", 100.0))
    plan = ClaimPlan(
        user_id="alice", territory_id="t1", run=empty_run(), territory_writes=[TerritoryWrite(territory)]
    )
    with pytest.raises(PersistenceFailure):
        store.apply_claim(plan)


def test_negative_points_floor_at_zero_and_keep_season_totals(store):
    plan = ClaimPlan(
        user_id="alice",
        territory_id="t1",
        run=empty_run(),
        profile_deltas=[ProfileDelta(user_id="bob", points=-100, territories=-3)],
    )
    store.apply_claim(plan)
    bob = store.profiles["bob"]
    assert bob.total_points == 0
    assert bob.season_points == 40
    assert bob.historical_points == 40
    assert bob.total_territories == 0


def test_reads_return_copies(store):
    store.add_territory(make_territory("t1", "bob", 100.0))
    snapshot = store.load_territories_snapshot()
    snapshot[0].owner_id = "mallory"
    profile = store.load_profile("bob")
    profile.total_points = 9999
    assert store.territories["t1"].owner_id == "bob"
    assert store.profiles["bob"].total_points == 40


def test_last_attempt_and_active_shield_lookups(store):
    store.record_event(event("t1", "alice", NOW - timedelta(hours=3)))
    store.record_event(event("t1", "alice", NOW - timedelta(hours=1)))
    store.record_event(event("t1", "carol", NOW))
    store.record_event(event("t2", "alice", NOW))
    assert store.last_attempt_at("t1", "alice") == NOW - timedelta(hours=1)
    assert store.last_attempt_at("t3", "alice") is None

    store.add_shield(TerritoryShield(id="old", territory_id="t1", user_id="bob", expires_at=NOW - timedelta(minutes=1)))
    assert store.load_territory_shield("t1", NOW) is None
    store.add_shield(TerritoryShield(id="new", territory_id="t1", user_id="bob", expires_at=NOW + timedelta(minutes=1)))
    assert store.load_territory_shield("t1", NOW).id == "new"


def test_load_store_from_json(tmp_path):
    square = [
        {"lat": 40.0, "lng": -3.0},
        {"lat": 40.0, "lng": -2.999},
        {"lat": 40.001, "lng": -2.999},
        {"lat": 40.001, "lng": -3.0},
        {"lat": 40.0, "lng": -3.0},
    ]
    document = {
        "profiles": [{"id": "bob", "username": "Bob", "total_points": 120}],
        "territories": [
            {"id": "t1", "owner_id": "bob", "coordinates": square, "avg_pace": 6.0, "conquest_points": 40}
        ],
        "shields": [
            {"id": "s1", "territory_id": "t1", "user_id": "bob", "expires_at": "2025-06-02T12:00:00Z"},
            {"id": "s2", "territory_id": "t1", "user_id": "bob"},
        ],
        "pois": [{"id": "p1", "name": "Retiro", "category": "park", "coordinates": square}],
        "challenges": [
            {"id": "c1", "name": "Centre", "latitude": 40.0005, "longitude": -2.9995, "reward_points": 30}
        ],
        "missions": [{"id": "m1", "title": "Parks", "mission_type": "park", "target_count": 2}],
        "clan_memberships": [{"clan_id": "k1", "user_id": "bob"}],
        "clan_missions": [{"id": "km1", "clan_id": "k1", "mission_type": "points", "target_count": 500}],
    }
    seed = tmp_path / "seed.json"
    seed.write_text(json.dumps(document), encoding="utf-8")

    store = load_store(seed)
    territory = store.territories["t1"]
    assert territory.area == pytest.approx(111.2 * 85.2, rel=1e-2)
    assert territory.points == 40
    # Level 2 owner: 0.5 min/km defense bonus.
    assert territory.required_pace == pytest.approx(5.5)
    assert list(store.shields) == ["s1"]
    assert store.shields["s1"].expires_at.tzinfo is not None
    assert store.pois[0].category == "park"
    assert store.challenges[0].reward_points == 30
    assert store.missions[0].target_count == 2
    assert store.load_clan_memberships("bob")[0].clan_id == "k1"
    assert store.load_clan_missions(["k1"])[0].target_count == 500
