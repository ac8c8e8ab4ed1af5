"""
World orchestration - owns every manager, applies queued commands and runs
the fixed per-tick update order.

Tick order: commands -> world events -> regions -> factions -> threats ->
agents/units -> AI -> research -> timed modifiers -> chronicles.
"""

import queue
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import actions
from actions import ActionContext, ActionService
from agents import AgentManager
from ai import AIManager
from config import Settings, get_settings
from factions import FactionManager
from logger import setup_logger
from narrative import NarrativeManager
from regions import RegionManager
from sync import Delta, SyncRegistry
from threat_manager import ThreatManager
from threats import ThreatDomain
from units import UnitManager
from world_events import WorldEventManager

logger = setup_logger("world")

BUILDING_COSTS = {
    "BASE": {"funds": 1000},
    "SENSOR": {"funds": 750},
    "RESEARCH_OUTPOST": {"funds": 1200, "tech": 500},
}

RESEARCH_PROJECTS = {
    "advanced_materials": {"name": "Advanced Materials", "cost": {"tech": 2000}, "duration": 60.0},
    "advanced_agents": {"name": "Advanced Agents", "cost": {"tech": 3000}, "duration": 90.0},
    "moon_program": {"name": "Moon Program", "cost": {"tech": 8000}, "duration": 180.0},
    "singularity_1": {"name": "Singularity Phase 1", "cost": {"tech": 5000}, "duration": 120.0},
    "singularity_2": {"name": "Singularity Phase 2", "cost": {"tech": 10000}, "duration": 180.0},
    "singularity_3": {"name": "Singularity Phase 3", "cost": {"tech": 20000}, "duration": 240.0},
}
ADVANCED_MATERIALS_COUNTER_INTEL = 0.05
MOON_PROGRAM_SATELLITES = 2
STEAL_TECH_SHARE = 0.25
STEAL_TECH_CAP = 1000.0


@dataclass
class Building:
    id: str
    region_id: str
    type: str
    owner: str

    def to_dict(self) -> dict:
        return {"id": self.id, "region_id": self.region_id, "type": self.type, "owner": self.owner}


@dataclass
class ResearchState:
    active_project: Optional[str] = None
    progress: float = 0.0  # seconds spent on the active project
    completed: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        duration = RESEARCH_PROJECTS[self.active_project]["duration"] if self.active_project else 0.0
        return {
            "active_project": self.active_project,
            "progress": self.progress / duration if duration else 0.0,
            "completed": sorted(self.completed),
        }


@dataclass
class TimedModifier:
    faction_id: str
    attribute: str
    delta: float
    remaining: float


class World:
    """Single owner of all simulation state."""

    def __init__(self, settings: Settings = None, rng: random.Random = None):
        self.settings = settings or get_settings()
        self.rng = rng or random.Random(self.settings.random_seed)
        self.time = 0.0
        self.tick_count = 0
        self.global_metrics = {"stability": 1.0, "economy": 1.0, "trust": 1.0}
        self.world_buffs: Dict[str, float] = {}
        self.timed_modifiers: List[TimedModifier] = []
        self.buildings: Dict[str, Building] = {}
        self.research = ResearchState()
        self.commands: "queue.Queue[dict]" = queue.Queue()
        self._next_building_id = 0

        self.narrative = NarrativeManager(clock=lambda: self.time)
        self.region_manager = RegionManager(self.settings.data_dir, self.rng)
        self.faction_manager = FactionManager(self.settings.casual_mode, self.settings.max_satellites)

        self.sync = SyncRegistry({
            "faction": lambda: self.faction_manager.factions,
            "region": lambda: self.region_manager.regions,
            "threat": lambda: self.threat_manager.threats,
            "agent": lambda: self.agent_manager.agents,
            "unit": lambda: self.unit_manager.units,
            "satellite": lambda: self.unit_manager.satellites,
        })
        self.threat_manager = ThreatManager(
            self.region_manager, self.narrative, self.rng,
            casual_mode=self.settings.casual_mode,
            spread_interval=self.settings.spread_interval,
            tracker=self.sync.tracker("threat"),
        )
        self.agent_manager = AgentManager(self.settings.data_dir, self.rng, self.narrative,
                                          tracker=self.sync.tracker("agent"))
        self.unit_manager = UnitManager(self.rng, self.narrative,
                                        unit_tracker=self.sync.tracker("unit"),
                                        satellite_tracker=self.sync.tracker("satellite"))
        self.ai_manager = AIManager(self.settings.casual_mode, self.settings.ai_decision_interval, self.rng)
        self.event_manager = WorldEventManager(self.settings.world_event_interval, self.rng)
        self.action_service = ActionService(self.narrative)

        for faction_id in self.faction_manager.factions:
            self.sync.mark_new("faction", faction_id)
        for region_id in self.region_manager.regions:
            self.sync.mark_new("region", region_id)
        logger.info(f"World created (casual_mode={self.settings.casual_mode}, seed={self.settings.random_seed})")

    # ===== VIEWS =====

    @property
    def satellites(self):
        return self.unit_manager.satellites

    @property
    def units(self):
        return self.unit_manager.units

    @property
    def agents(self):
        return self.agent_manager.agents

    @property
    def threats(self):
        return self.threat_manager.threats

    def get_action(self, action_id: str):
        return actions.get_action(action_id)

    def has_building(self, region_id: str, building_type: str, owner_id: str = None) -> bool:
        return any(b.region_id == region_id and b.type == building_type and (owner_id is None or b.owner == owner_id)
                   for b in self.buildings.values())

    def has_world_buff(self, buff_type: str) -> bool:
        return self.world_buffs.get(buff_type, 0.0) > 0

    def add_world_buff(self, buff_type: str, duration: float):
        self.world_buffs[buff_type] = max(duration, self.world_buffs.get(buff_type, 0.0))
        logger.info(f"World buff {buff_type} active for {duration:.0f}s")

    def adjust_global_metric(self, name: str, delta: float):
        self.global_metrics[name] = max(0.0, min(1.0, self.global_metrics[name] + delta))

    # ===== EFFECT TARGETS =====

    def start_research_project(self, project_id: str) -> bool:
        """Begin a project without charging for it."""
        if project_id not in RESEARCH_PROJECTS:
            logger.error(f"Unknown research project {project_id}")
            return False
        if self.research.active_project is not None:
            logger.info(f"Research already active: {self.research.active_project}")
            return False
        if project_id in self.research.completed:
            logger.info(f"Research {project_id} already completed")
            return False
        self.research.active_project = project_id
        self.research.progress = 0.0
        self.narrative.log_event("RESEARCH_STARTED", {"projectId": project_id,
                                                      "name": RESEARCH_PROJECTS[project_id]["name"]})
        logger.info(f"Research started: {project_id}")
        return True

    def launch_satellite(self, faction) -> bool:
        return self.unit_manager.launch_satellite(faction) is not None

    def grant_resources(self, faction, amounts: Dict[str, float]) -> bool:
        faction.add_resources(amounts)
        return True

    def steal_tech(self, faction) -> bool:
        rival = self.faction_manager.rival_of(faction)
        taken = rival.drain("tech", min(rival.tech * STEAL_TECH_SHARE, STEAL_TECH_CAP))
        faction.add_resources({"tech": taken})
        self.narrative.log_event("TECH_STOLEN", {"factionId": faction.id, "fromFactionId": rival.id, "amount": taken})
        return True

    def boost_counter_intel(self, faction, delta: float, duration: float):
        """Temporary counter-intel change, reverted when `duration` simulated seconds pass."""
        faction.adjust_counter_intel(delta)
        self.timed_modifiers.append(TimedModifier(faction.id, "counter_intel", delta, duration))

    def apply_mission_success(self, agent, action):
        ctx = ActionContext(
            world=self,
            faction=self.faction_manager.get(agent.faction_id),
            region=self.region_manager.get(agent.region_id),
            agent=agent,
        )
        self.action_service.apply_effects(action.on_success, action, ctx)

    # ===== COMMAND OPERATIONS =====

    def _faction(self, faction_id: str = None):
        if faction_id is None:
            return self.faction_manager.player_faction
        return self.faction_manager.get(faction_id)

    def execute_action(self, action_id: str, threat_id: str = None, region_id: str = None,
                       agent_id: str = None, faction_id: str = None) -> bool:
        action = actions.get_action(action_id)
        if action is None:
            logger.error(f"Unknown action {action_id}")
            return False
        faction = self._faction(faction_id)
        if faction is None:
            logger.error(f"Faction {faction_id} not found")
            return False

        threat = region = agent = None
        if threat_id is not None:
            threat = self.threat_manager.get(threat_id)
            if threat is None:
                logger.error(f"Threat {threat_id} not found")
                return False
        if agent_id is not None:
            agent = self.agent_manager.get(agent_id)
            if agent is None or agent.faction_id != faction.id:
                logger.error(f"Agent {agent_id} not found for {faction.id}")
                return False
        if region_id is not None:
            region = self.region_manager.get(region_id)
            if region is None:
                logger.error(f"Region {region_id} not found")
                return False
        elif threat is not None:
            region = self.threat_manager.region_for(threat)
        elif agent is not None:
            region = self.region_manager.get(agent.region_id)

        ctx = ActionContext(world=self, faction=faction, threat=threat, region=region, agent=agent)
        return self.action_service.execute_action(action, ctx)

    def available_actions(self, threat_id: str = None, region_id: str = None, agent_id: str = None) -> List[str]:
        threat = self.threat_manager.get(threat_id) if threat_id else None
        region = self.region_manager.get(region_id) if region_id else None
        if region is None and threat is not None:
            region = self.threat_manager.region_for(threat)
        agent = self.agent_manager.get(agent_id) if agent_id else None
        ctx = ActionContext(world=self, faction=self.faction_manager.player_faction,
                            threat=threat, region=region, agent=agent)
        catalog = actions.AGENT_ACTIONS if agent is not None else actions.PLAYER_ACTIONS
        return [a.id for a in self.action_service.get_available_actions(ctx, catalog)]

    def add_building(self, region_id: str, building_type: str, faction=None, charge: bool = True) -> Optional[Building]:
        faction = faction or self.faction_manager.player_faction
        region = self.region_manager.get(region_id)
        if region is None:
            logger.error(f"Region {region_id} not found")
            return None
        cost = BUILDING_COSTS.get(building_type)
        if cost is None:
            logger.error(f"Unknown building type {building_type}")
            return None
        if charge and not faction.spend(cost):
            logger.info(f"Faction {faction.id} cannot afford {building_type}")
            return None

        building = Building(f"building-{self._next_building_id}", region.id, building_type, faction.id)
        self._next_building_id += 1
        self.buildings[building.id] = building
        region.dirty = True
        self.narrative.log_event("BUILDING_CONSTRUCTED", {
            "buildingId": building.id,
            "buildingType": building_type,
            "factionId": faction.id,
            "regionName": region.name,
        })
        logger.info(f"{faction.id} built {building_type} in {region.name}")
        return building

    def recruit_agent(self, region_id: str, faction=None):
        faction = faction or self.faction_manager.player_faction
        region = self.region_manager.get(region_id)
        if region is None:
            logger.error(f"Region {region_id} not found")
            return None
        level = 2 if "advanced_agents" in self.research.completed else 1
        return self.agent_manager.recruit(faction, region, level=level)

    def build_unit(self, region_id: str, unit_type: str, faction=None):
        faction = faction or self.faction_manager.player_faction
        region = self.region_manager.get(region_id)
        if region is None:
            logger.error(f"Region {region_id} not found")
            return None
        return self.unit_manager.build_unit(faction, region, unit_type)

    def start_research(self, project_id: str, faction=None) -> bool:
        """Charge the project cost and begin it."""
        faction = faction or self.faction_manager.player_faction
        project = RESEARCH_PROJECTS.get(project_id)
        if project is None:
            logger.error(f"Unknown research project {project_id}")
            return False
        if self.research.active_project is not None or project_id in self.research.completed:
            return False
        if not faction.spend(project["cost"]):
            logger.info(f"Faction {faction.id} cannot afford research {project_id}")
            return False
        return self.start_research_project(project_id)

    def debug_create_threat(self, domain: str, type: str = "REAL", severity: float = 0.5,
                            lat: float = 0.0, lon: float = 0.0, **extra):
        options = {"domain": domain, "type": type, "severity": severity, "lat": lat, "lon": lon,
                   "is_from_ai": False}
        options.update({k: v for k, v in extra.items() if k in ("sub_type", "properties")})
        return self.threat_manager.generate_threat(options, self)

    # ===== COMMAND QUEUE =====

    def submit(self, command: dict):
        """Queue a {type, payload} command for the start of the next tick."""
        self.commands.put(command)

    def apply_command(self, command: dict):
        command_type = command.get("type")
        payload = command.get("payload") or {}
        if command_type == "execute_action":
            return self.execute_action(payload["action_id"], payload.get("threat_id"), payload.get("region_id"),
                                       payload.get("agent_id"), payload.get("faction_id"))
        if command_type == "move_unit":
            return self.unit_manager.move_unit(payload["unit_id"], float(payload["lat"]), float(payload["lon"]))
        if command_type == "debug_create_threat":
            return self.debug_create_threat(**payload)
        if command_type == "add_building":
            return self.add_building(payload["region_id"], payload["building_type"])
        if command_type == "recruit_agent":
            return self.recruit_agent(payload["region_id"])
        if command_type == "build_unit":
            return self.build_unit(payload["region_id"], payload["unit_type"])
        if command_type == "start_research":
            return self.start_research(payload["project_id"])
        logger.warning(f"Unknown command type {command_type}")
        return None

    def drain_commands(self) -> int:
        applied = 0
        while True:
            try:
                command = self.commands.get_nowait()
            except queue.Empty:
                return applied
            try:
                self.apply_command(command)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Command {command.get('type')} failed: {e}")
            applied += 1

    # ===== TICK =====

    def tick(self, dt: float):
        self.time += dt
        self.tick_count += 1

        self.drain_commands()
        self.event_manager.update(dt, self)
        self.region_manager.update(
            dt,
            total_env_severity=self.threat_manager.total_severity(ThreatDomain.ENV),
            threatened=self.threat_manager.threatened_region_ids(),
        )
        self.faction_manager.update(dt, self)
        self.threat_manager.update(dt, self)
        self.agent_manager.update(dt, self)
        self.unit_manager.update(dt)
        self.ai_manager.update(dt, self)
        self._update_research(dt)
        self._update_timers(dt)
        self.narrative.process_chronicles(self)

    def _update_research(self, dt: float):
        project_id = self.research.active_project
        if project_id is None:
            return
        self.research.progress += dt
        if self.research.progress < RESEARCH_PROJECTS[project_id]["duration"]:
            return

        self.research.active_project = None
        self.research.progress = 0.0
        self.research.completed.add(project_id)
        player = self.faction_manager.player_faction
        if project_id == "advanced_materials":
            player.adjust_counter_intel(ADVANCED_MATERIALS_COUNTER_INTEL)
        elif project_id == "moon_program":
            player.max_satellites += MOON_PROGRAM_SATELLITES
            player.dirty = True
        self.narrative.log_event("RESEARCH_COMPLETE", {"projectId": project_id,
                                                       "name": RESEARCH_PROJECTS[project_id]["name"]})
        logger.info(f"Research complete: {project_id}")

    def _update_timers(self, dt: float):
        for buff_type in list(self.world_buffs):
            self.world_buffs[buff_type] -= dt
            if self.world_buffs[buff_type] <= 0:
                del self.world_buffs[buff_type]
                logger.info(f"World buff {buff_type} expired")

        active = []
        for modifier in self.timed_modifiers:
            modifier.remaining -= dt
            if modifier.remaining > 0:
                active.append(modifier)
                continue
            faction = self.faction_manager.get(modifier.faction_id)
            if faction is not None and modifier.attribute == "counter_intel":
                faction.adjust_counter_intel(-modifier.delta)
        self.timed_modifiers = active

    # ===== SYNC =====

    def get_delta(self) -> Delta:
        return self.sync.extract(self.tick_count)

    def to_dict(self) -> dict:
        return {
            "tick": self.tick_count,
            "time": self.time,
            "global_metrics": dict(self.global_metrics),
            "world_buffs": dict(self.world_buffs),
            "factions": [f.to_dict() for f in self.faction_manager.all()],
            "regions": [r.to_dict() for r in self.region_manager.all()],
            "travel_routes": [{"from": a, "to": b} for a, b in self.region_manager.travel_routes],
            "threats": [t.to_dict() for t in self.threat_manager.threats.values()],
            "plumes": [p.to_dict() for p in self.threat_manager.plumes.values()],
            "agents": [a.to_dict() for a in self.agent_manager.agents.values()],
            "units": [u.to_dict() for u in self.unit_manager.units.values()],
            "satellites": [s.to_dict() for s in self.unit_manager.satellites.values()],
            "buildings": [b.to_dict() for b in self.buildings.values()],
            "research": self.research.to_dict(),
            "ai": self.ai_manager.to_dict(),
        }

    def snapshot(self) -> dict:
        """Full state; pending changes are folded into it and tracking restarts."""
        state = self.to_dict()
        self.sync.clear()
        return state


actions.validate_action_catalog(target_classes={**actions.TARGET_CLASSES, "WORLD": World})
