import logging

import pytest

from territory_conquest.errors import CatalogLookupFailure
from territory_conquest.models import (
    ClanMembership,
    ClanMission,
    MapChallenge,
    Mission,
    Poi,
    PoiTag,
    Profile,
)
from territory_conquest.services import ClaimService, ClaimServiceConfig
from territory_conquest.storage import InMemoryStore

from conftest import NOW, make_square, offset


def seed_catalog(store):
    store.pois = [
        Poi(id="p1", name="Retiro", category="park", coordinates=make_square(300.0, -50.0, -50.0)),
        Poi(id="p2", name="Retiro", category="park", coordinates=make_square(20.0, 10.0, 10.0)),
        Poi(id="p3", name="Cibeles", category="fountain", coordinates=make_square(20.0, 900.0, 900.0)),
    ]
    inside = offset(55, 55)
    outside = offset(800, 800)
    store.challenges = [
        MapChallenge(id="ch1", name="Heart of the park", latitude=inside.lat, longitude=inside.lng, reward_points=30),
        MapChallenge(id="ch2", name="Far away", latitude=outside.lat, longitude=outside.lng, reward_points=99),
    ]
    store.missions = [
        Mission(id="m-park", title="Run through a park", mission_type="park", target_count=1, reward_points=20, reward_shields=1),
        Mission(id="m-runs", title="Three runs", mission_type="runs", target_count=3, reward_points=50),
        Mission(id="m-dist", title="Run 1 km", mission_type="distance", target_count=1000, reward_points=10),
    ]
    store.clan_memberships = [ClanMembership(clan_id="c1", user_id="alice")]
    store.add_clan_mission(
        ClanMission(id="cm1", clan_id="c1", mission_type="territories", target_count=1, reward_points=100)
    )
    store.add_clan_mission(
        ClanMission(id="cm2", clan_id="c1", mission_type="fountain", target_count=2, reward_points=100)
    )


def test_side_effects_add_rewards_in_one_commit(service, store, claim_factory):
    seed_catalog(store)
    result = service.process("alice", claim_factory(110.0))

    assert result.action == "new"
    assert result.poi_tags == [PoiTag("park", "Retiro")]
    assert result.challenge_rewards == ["Heart of the park"]
    assert result.missions_completed == ["Run through a park"]
    assert result.mission_reward_points == 20
    assert result.mission_reward_shields == 1
    assert result.points_gained == 60 + 30 + 20
    assert result.clan_missions_completed == ["territories"]

    territory = store.territories[result.territory_id]
    assert territory.tags == [PoiTag("park", "Retiro")]
    assert territory.poi_summary == "Retiro"

    alice = store.profiles["alice"]
    assert alice.total_points == 110
    assert alice.shield_charges == 1

    assert ("ch1", "alice") in store.challenge_claims
    assert ("ch2", "alice") not in store.challenge_claims
    assert store.mission_progress[("m-park", "alice")].completed
    assert store.mission_progress[("m-park", "alice")].completed_at == NOW
    assert store.mission_progress[("m-runs", "alice")].progress == 1
    assert not store.mission_progress[("m-runs", "alice")].completed
    assert store.mission_progress[("m-dist", "alice")].progress == pytest.approx(440, abs=1)

    assert store.clan_points["c1"] == 110 + 100
    assert store.clan_territories["c1"] == 1
    assert store.clan_missions["cm1"].active is False
    assert store.clan_missions["cm2"].current_progress == 0
    assert store.clan_memberships[0].contribution_points == 110
    assert [entry.event_type for entry in store.clan_feed] == ["territory_new"]

    titles = [intent.title for user, intent in store.notifications if user == "alice"]
    assert titles == ["Map challenge", "Mission completed"]


def test_rewards_are_not_granted_twice(service, store, claim_factory):
    seed_catalog(store)
    service.process("alice", claim_factory(110.0))
    again = service.process("alice", claim_factory(110.0))

    assert again.action == "reinforced"
    assert again.challenge_rewards == []
    assert again.missions_completed == []
    assert again.points_gained == 0
    assert store.mission_progress[("m-runs", "alice")].progress == 2
    assert store.profiles["alice"].total_points == 110


class FailingPoiStore(InMemoryStore):
    def load_pois(self):
        raise CatalogLookupFailure("poi service down")


def test_catalog_failure_does_not_fail_claim(claim_factory, caplog):
    store = FailingPoiStore()
    store.add_profile(Profile(id="alice"))
    seed_catalog(store)
    service = ClaimService(ClaimServiceConfig(store=store, catalog=store, clock=lambda: NOW))

    caplog.set_level(logging.WARNING)
    result = service.process("alice", claim_factory(110.0))

    assert result.action == "new"
    assert result.poi_tags == []
    # Challenges do not depend on POIs and still apply.
    assert result.challenge_rewards == ["Heart of the park"]
    assert any("Skipping poi tagging side effect" in r.getMessage() for r in caplog.records)


class UnreachableClanStore(InMemoryStore):
    def load_clan_memberships(self, user_id):
        raise ConnectionError("clan service unreachable")


def test_unexpected_catalog_error_skips_only_that_stage(claim_factory, caplog):
    store = UnreachableClanStore()
    store.add_profile(Profile(id="alice"))
    seed_catalog(store)
    service = ClaimService(ClaimServiceConfig(store=store, catalog=store, clock=lambda: NOW))

    caplog.set_level(logging.WARNING)
    result = service.process("alice", claim_factory(110.0))

    assert result.action == "new"
    assert result.challenge_rewards == ["Heart of the park"]
    assert result.clan_missions_completed == []
    skipped = [r for r in caplog.records if "Skipping clans side effect" in r.getMessage()]
    assert skipped and skipped[0].exc_info is not None


class CountingStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.poi_loads = 0

    def load_pois(self):
        self.poi_loads += 1
        return super().load_pois()


def test_poi_catalog_is_cached_between_claims(claim_factory):
    store = CountingStore()
    store.add_profile(Profile(id="alice"))
    seed_catalog(store)
    service = ClaimService(ClaimServiceConfig(store=store, catalog=store, clock=lambda: NOW))

    service.process("alice", claim_factory(110.0))
    service.process("alice", claim_factory(110.0, east_m=1_000.0))
    assert store.poi_loads == 1


def test_no_catalog_means_no_side_effects(store, claim_factory):
    seed_catalog(store)
    service = ClaimService(ClaimServiceConfig(store=store, clock=lambda: NOW))
    result = service.process("alice", claim_factory(110.0))
    assert result.points_gained == 60
    assert result.poi_tags == []
    assert store.challenge_claims == set()
