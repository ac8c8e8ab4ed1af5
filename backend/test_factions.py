"""Tests for the faction ledger and income."""
import pytest
from unittest.mock import MagicMock

from factions import Faction, FactionManager, PLAYER_FACTION_ID, AI_FACTION_ID


class TestFaction:
    """Tests for affordability and spending."""

    def test_can_afford_missing_keys_count_as_zero(self):
        faction = Faction(id="f", name="F", funds=100)
        assert faction.can_afford({"funds": 100})
        assert faction.can_afford({})
        assert faction.can_afford(None)
        assert not faction.can_afford({"intel": 1})

    def test_spend_is_all_or_nothing(self):
        faction = Faction(id="f", name="F", funds=1000, intel=50)
        assert faction.spend({"funds": 500, "intel": 100}) is False
        assert faction.funds == 1000
        assert faction.intel == 50

        assert faction.spend({"funds": 500, "intel": 50}) is True
        assert faction.funds == 500
        assert faction.intel == 0

    def test_spend_marks_dirty(self):
        faction = Faction(id="f", name="F", funds=10)
        faction.dirty = False
        faction.spend({"funds": 5})
        assert faction.dirty is True

    def test_add_resources_never_negative(self):
        faction = Faction(id="f", name="F", funds=10)
        faction.add_resources({"funds": -50})
        assert faction.funds == 0

    def test_drain_returns_amount_taken(self):
        faction = Faction(id="f", name="F", funds=30)
        assert faction.drain("funds", 50) == 30
        assert faction.funds == 0
        assert faction.drain("funds", 10) == 0

    def test_counter_intel_floor(self):
        faction = Faction(id="f", name="F")
        faction.adjust_counter_intel(-1.0)
        assert faction.counter_intel == 0.0

    def test_to_dict(self):
        data = Faction(id="f", name="F", funds=1, intel=2, tech=3).to_dict()
        assert data["resources"] == {"funds": 1, "intel": 2, "tech": 3}
        assert data["counter_intel"] == 0.1


class TestFactionManager:
    """Tests for starting resources and per-tick income."""

    def _world(self, regions=None, buildings=None, satellites=None, completed=None, buffs=None):
        world = MagicMock()
        world.research.completed = completed or set()
        world.has_world_buff.side_effect = lambda name: name in (buffs or set())
        world.satellites = satellites or {}
        world.region_manager.regions = regions or {}
        buildings = buildings or set()
        world.has_building.side_effect = lambda region_id, kind, owner=None: (region_id, kind) in buildings
        return world

    def test_casual_starting_resources(self):
        manager = FactionManager(casual_mode=True)
        assert manager.player_faction.resources == {"funds": 20000, "intel": 10000, "tech": 4000}
        assert manager.ai_faction.resources == {"funds": 20000, "intel": 10000, "tech": 10000}
        assert manager.ai_faction.counter_intel == 0.05

    def test_normal_starting_resources(self):
        manager = FactionManager(casual_mode=False)
        assert manager.player_faction.resources == {"funds": 10000, "intel": 5000, "tech": 2000}
        assert manager.ai_faction.counter_intel == 0.1

    def test_lookup(self):
        manager = FactionManager()
        assert manager.get(PLAYER_FACTION_ID) is manager.player_faction
        assert manager.get(AI_FACTION_ID) is manager.ai_faction
        assert manager.get("nobody") is None
        assert manager.rival_of(manager.player_faction) is manager.ai_faction

    def test_base_trickle(self):
        manager = FactionManager()
        before = manager.player_faction.resources
        manager.update(1.0, self._world())
        after = manager.player_faction.resources
        assert after["funds"] - before["funds"] == pytest.approx(10)
        assert after["intel"] - before["intel"] == pytest.approx(5)
        assert after["tech"] - before["tech"] == pytest.approx(2)

    def test_singularity_multiplier_only_for_ai(self):
        manager = FactionManager()
        ai_before = manager.ai_faction.funds
        player_before = manager.player_faction.funds
        manager.update(1.0, self._world(completed={"singularity_1", "singularity_2"}))
        assert manager.ai_faction.funds - ai_before == pytest.approx(30)
        assert manager.player_faction.funds - player_before == pytest.approx(10)

    def test_satellite_intel_suppressed_for_ai_during_disruption(self):
        manager = FactionManager()
        satellites = {
            "s1": MagicMock(owner=PLAYER_FACTION_ID),
            "s2": MagicMock(owner=AI_FACTION_ID),
        }
        ai_before = manager.ai_faction.intel
        player_before = manager.player_faction.intel
        manager.update(1.0, self._world(satellites=satellites, buffs={"AI_SATELLITE_DISRUPTION"}))
        assert manager.player_faction.intel - player_before == pytest.approx(15)
        assert manager.ai_faction.intel - ai_before == pytest.approx(5)

    def test_region_income_with_buildings(self):
        manager = FactionManager()
        region = MagicMock(id="r1", owner=PLAYER_FACTION_ID, economy=1.0, active_buffs=[])
        world = self._world(regions={"r1": region}, buildings={("r1", "BASE"), ("r1", "RESEARCH_OUTPOST")})
        before = manager.player_faction.resources
        manager.update(1.0, world)
        after = manager.player_faction.resources
        assert after["funds"] - before["funds"] == pytest.approx(10 + 15)
        assert after["tech"] - before["tech"] == pytest.approx(2 + 4.5)

    def test_informant_network_pays_owner(self):
        manager = FactionManager()
        buff = MagicMock(type="INFORMANT_NETWORK", owner_faction_id=PLAYER_FACTION_ID)
        region = MagicMock(id="r1", owner="NEUTRAL", economy=1.0, active_buffs=[buff])
        before = manager.player_faction.intel
        manager.update(2.0, self._world(regions={"r1": region}))
        assert manager.player_faction.intel - before == pytest.approx(5 + 10)
