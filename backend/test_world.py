"""Tests for world orchestration, commands and the delta protocol."""
import pytest

from config import Settings
from threats import ThreatDomain, ThreatType
from world import RESEARCH_PROJECTS, World


@pytest.fixture
def world():
    return World(Settings(random_seed=3))


@pytest.fixture
def player(world):
    return world.faction_manager.player_faction


class TestCommands:
    """Commands are queued and applied at the start of the next tick."""

    def test_applied_on_next_tick(self, world):
        world.submit({"type": "add_building",
                      "payload": {"region_id": "north_america", "building_type": "SENSOR"}})
        assert world.buildings == {}
        world.tick(0.1)
        assert world.has_building("north_america", "SENSOR", "mitigators")

    def test_bad_payload_is_logged_not_raised(self, world):
        world.submit({"type": "move_unit", "payload": {}})
        world.submit({"type": "recruit_agent", "payload": {"region_id": "north_america"}})
        world.tick(0.1)
        assert len(world.agent_manager.agents) == 1

    def test_unknown_command_type(self, world):
        assert world.apply_command({"type": "launch_rockets"}) is None

    def test_debug_create_threat(self, world):
        world.submit({"type": "debug_create_threat",
                      "payload": {"domain": "CYBER", "type": "REAL", "severity": 0.4, "lat": 45.0, "lon": -100.0}})
        assert world.drain_commands() == 1
        threat = next(iter(world.threats.values()))
        assert threat.domain is ThreatDomain.CYBER
        assert world.threat_manager.region_for(threat).id == "north_america"


class TestExecuteAction:
    """Tests for target resolution."""

    def test_unknown_ids_abort_before_mutation(self, world, player):
        funds = player.funds
        assert not world.execute_action("investigate", threat_id="threat-42")
        assert not world.execute_action("diplomatic_mission", region_id="atlantis")
        assert not world.execute_action("gather_intel", agent_id="agent-42")
        assert not world.execute_action("no_such_action")
        assert player.funds == funds

    def test_region_inferred_from_threat(self, world, player):
        threat = world.debug_create_threat("BIO", lat=45.0, lon=-100.0)
        assert "initiate_quarantine" in world.available_actions(threat_id=threat.id)
        assert world.execute_action("initiate_quarantine", threat_id=threat.id)
        assert world.region_manager.get("north_america").has_buff("QUARANTINE")

    def test_agent_actions_listed_for_agent(self, world):
        agent = world.recruit_agent("north_america")
        assert set(world.available_actions(agent_id=agent.id)) == {
            "gather_intel", "infiltrate", "sabotage", "steal_tech"}


class TestBuildings:
    """Tests for construction."""

    def test_charges_and_marks_region(self, world, player):
        world.get_delta()
        building = world.add_building("north_america", "RESEARCH_OUTPOST")
        assert building.id == "building-0"
        assert player.funds == 20000 - 1200
        assert player.tech == 4000 - 500
        updated = [e["id"] for e in world.get_delta().updated_entities if e["entity_type"] == "region"]
        assert updated == ["north_america"]
        assert [b["type"] for b in world.to_dict()["buildings"]] == ["RESEARCH_OUTPOST"]

    def test_rejects_unknown(self, world):
        assert world.add_building("atlantis", "BASE") is None
        assert world.add_building("north_america", "CASTLE") is None

    def test_unaffordable(self, world, player):
        player.funds = 10
        assert world.add_building("north_america", "BASE") is None
        assert world.buildings == {}


class TestResearch:
    """Tests for projects and completion effects."""

    def test_fund_research_charges_once(self, world, player):
        assert world.execute_action("fund_research")
        assert player.tech == 4000 - 2000
        assert world.research.active_project == "advanced_materials"
        assert not world.execute_action("fund_research")

    def test_start_research_command_charges(self, world, player):
        assert world.start_research("advanced_agents")
        assert player.tech == 4000 - 3000
        assert not world.start_research("advanced_materials")

    def test_start_research_unaffordable(self, world, player):
        assert not world.start_research("moon_program")
        assert world.research.active_project is None
        assert player.tech == 4000

    def test_advanced_materials_completion(self, world, player):
        base = player.counter_intel
        world.start_research_project("advanced_materials")
        world._update_research(RESEARCH_PROJECTS["advanced_materials"]["duration"] - 1)
        assert world.research.active_project == "advanced_materials"
        world._update_research(1.0)
        assert world.research.active_project is None
        assert "advanced_materials" in world.research.completed
        assert player.counter_intel == pytest.approx(base + 0.05)
        assert world.narrative.events[-1].event_type == "RESEARCH_COMPLETE"
        assert not world.start_research_project("advanced_materials")

    def test_moon_program_raises_satellite_cap(self, world, player):
        world.start_research_project("moon_program")
        world._update_research(180.0)
        assert player.max_satellites == 7


class TestSpecialEffects:
    """Tests for world-level effect targets."""

    def test_steal_tech_share(self, world, player):
        ai = world.faction_manager.ai_faction
        ai.tech = 2000
        world.steal_tech(player)
        assert ai.tech == pytest.approx(1500)
        assert player.tech == pytest.approx(4500)
        assert world.narrative.events[-1].event_type == "TECH_STOLEN"

    def test_launch_satellite_via_action(self, world, player):
        player.tech = 10000
        assert world.execute_action("launch_satellite")
        assert len(world.satellites) == 1
        assert player.funds == 20000 - 2500
        assert player.tech == 10000 - 5000


class TestDeltas:
    """Tests for the sync protocol through the world."""

    def test_initial_delta_announces_static_entities(self, world):
        delta = world.get_delta()
        kinds = {e["entity_type"] for e in delta.new_entities}
        assert kinds == {"faction", "region"}
        assert delta.updated_entities == []

    def test_empty_after_snapshot(self, world):
        world.debug_create_threat("ENV", lat=0.0, lon=0.0)
        snapshot = world.snapshot()
        assert len(snapshot["threats"]) == 1
        assert world.get_delta().is_empty()

    def test_empty_after_extract(self, world):
        world.tick(0.1)
        world.get_delta()
        assert world.get_delta().is_empty()

    def test_new_entities_not_in_updated(self, world):
        world.get_delta()
        threat = world.threat_manager.create_threat(ThreatDomain.ENV, ThreatType.REAL, 0.5, 0.0, 0.0)
        threat.set_severity(0.6)
        delta = world.get_delta()
        assert threat.id in [e["id"] for e in delta.new_entities]
        assert threat.id not in [e["id"] for e in delta.updated_entities]


class TestLongRun:
    """Invariants hold over a long seeded run."""

    def test_resources_never_negative(self, world):
        for _ in range(600):
            world.tick(1.0)
            for faction in world.faction_manager.all():
                assert faction.funds >= 0
                assert faction.intel >= 0
                assert faction.tech >= 0
            for region in world.region_manager.all():
                assert 0.0 <= region.stability <= 1.0
                assert 0.0 <= region.economy <= 1.0
        assert world.tick_count == 600
        assert world.time == pytest.approx(600.0)
        assert any(e.event_type == "GLOBAL_EVENT" for e in world.narrative.events)
