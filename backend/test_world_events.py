"""Tests for global world events."""
import random
from unittest.mock import MagicMock

import pytest

from config import Settings
from world import World
from world_events import WORLD_EVENTS, WorldEventManager, pick_event


def event(event_id):
    return next(e for e in WORLD_EVENTS if e["id"] == event_id)


def eligible_ids(world):
    return {e["id"] for e in WORLD_EVENTS if e["condition"](world)}


@pytest.fixture
def world():
    return World(Settings(random_seed=2))


class TestEligibility:
    """Tests for event conditions."""

    def test_initial_world(self, world):
        assert eligible_ids(world) == {"market_correction", "political_scandal",
                                       "scientific_breakthrough", "natural_disaster"}

    def test_boom_when_economy_low(self, world):
        world.global_metrics["economy"] = 0.5
        ids = eligible_ids(world)
        assert "economic_boom" in ids
        assert "market_correction" not in ids

    def test_solar_flare_needs_satellites(self, world):
        world.launch_satellite(world.faction_manager.player_faction)
        assert "solar_flare" in eligible_ids(world)


class TestPickEvent:
    """Tests for the weighted draw."""

    def test_empty(self):
        assert pick_event([], random.Random(0)) is None

    def test_weighting(self):
        rng = MagicMock()
        rng.random.return_value = 0.95
        heavy, light = {"id": "heavy", "weight": 9}, {"id": "light", "weight": 1}
        assert pick_event([heavy, light], rng)["id"] == "light"
        rng.random.return_value = 0.5
        assert pick_event([heavy, light], rng)["id"] == "heavy"


class TestEffects:
    """Tests for each event's world changes."""

    def test_economic_boom(self, world):
        world.global_metrics["economy"] = 0.5
        funds = [f.funds for f in world.faction_manager.all()]
        world.event_manager.trigger_event(event("economic_boom"), world)
        assert [f.funds for f in world.faction_manager.all()] == [x + 5000 for x in funds]
        assert world.global_metrics["economy"] == pytest.approx(0.6)

    def test_metrics_are_clamped(self, world):
        world.event_manager.trigger_event(event("market_correction"), world)
        assert world.global_metrics["economy"] == pytest.approx(0.9)
        world.global_metrics["economy"] = 0.05
        world.event_manager.trigger_event(event("market_correction"), world)
        assert world.global_metrics["economy"] == 0.0

    def test_natural_disaster_hits_vulnerable_region(self, world):
        before = {r.id: r.stability for r in world.region_manager.all()}
        world.event_manager.trigger_event(event("natural_disaster"), world)
        damaged = [r for r in world.region_manager.all() if r.stability < before[r.id]]
        assert len(damaged) == 1
        assert damaged[0].climate_vulnerability > 0.6
        assert world.narrative.events[-1].event_type == "GLOBAL_EVENT"
        assert world.narrative.events[-1].data["eventId"] == "natural_disaster"

    def test_solar_flare_sets_world_buff(self, world):
        world.event_manager.trigger_event(event("solar_flare"), world)
        assert world.has_world_buff("AI_SATELLITE_DISRUPTION")
        world._update_timers(60.0)
        assert not world.has_world_buff("AI_SATELLITE_DISRUPTION")


class TestWorldEventManager:
    """Tests for the cadence."""

    def test_fires_on_interval(self, world):
        manager = WorldEventManager(interval=60.0, rng=random.Random(4))
        assert manager.update(59.0, world) is None
        assert manager.update(1.0, world) in {e["id"] for e in WORLD_EVENTS}
        assert manager.timer == 0.0
