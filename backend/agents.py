"""
Field agents - recruitment, missions, risk rolls and promotion.
"""

import json
import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from logger import setup_logger
from sync import DeltaTracker

logger = setup_logger("agents")

RECRUIT_COST = {"funds": 1500, "intel": 500}
MISSION_DURATION = 30.0  # simulated seconds for a full mission
BASE_MISSION_RISK = 0.05
HIGH_RISK_MISSIONS = {"SABOTAGE": 0.15, "STEAL_TECH": 0.15}
MISSING_ABILITY_RISK = 0.3
EXPERIENCE_RISK_REDUCTION = 0.02
ALERT_RISK_STEP = 0.05
MIN_RISK, MAX_RISK = 0.01, 0.95
KIA_CHANCE = 0.5
STARTING_ABILITIES = 2

CODENAMES = [
    "Viper", "Falcon", "Ghost", "Raven", "Cipher", "Lynx", "Nomad", "Echo",
    "Wraith", "Onyx", "Sparrow", "Atlas", "Kestrel", "Mirage", "Jackal", "Orchid",
]


class AgentStatus(Enum):
    IDLE = "IDLE"
    ON_MISSION = "ON_MISSION"
    CAPTURED = "CAPTURED"
    KIA = "KIA"


ALLOWED_TRANSITIONS = {
    AgentStatus.IDLE: {AgentStatus.ON_MISSION},
    AgentStatus.ON_MISSION: {AgentStatus.IDLE, AgentStatus.CAPTURED, AgentStatus.KIA},
    AgentStatus.CAPTURED: set(),
    AgentStatus.KIA: set(),
}


@dataclass
class Mission:
    action_id: str
    mission_type: str
    required_ability: Optional[str] = None
    progress: float = 0.0
    risk: float = BASE_MISSION_RISK
    started_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "action_id": self.action_id,
            "mission_type": self.mission_type,
            "required_ability": self.required_ability,
            "progress": self.progress,
            "risk": self.risk,
            "started_at": self.started_at,
        }


@dataclass
class Agent:
    """An operative assigned to a region. Holds at most one mission."""
    id: str
    name: str
    faction_id: str
    region_id: str
    level: int = 1
    experience: int = 0
    abilities: List[str] = field(default_factory=list)
    status: AgentStatus = AgentStatus.IDLE
    mission: Optional[Mission] = None
    dirty: bool = field(default=True, compare=False)

    def _transition(self, new_status: AgentStatus):
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Agent {self.id} cannot go from {self.status.value} to {new_status.value}")
        self.status = new_status
        self.dirty = True

    def has_ability(self, ability_id: Optional[str]) -> bool:
        return ability_id is None or ability_id in self.abilities

    def start_mission(self, action, started_at: float = 0.0) -> bool:
        if self.status != AgentStatus.IDLE:
            logger.warning(f"Agent {self.id} is {self.status.value}, cannot start {action.id}")
            return False
        self.mission = Mission(
            action_id=action.id,
            mission_type=action.mission_type,
            required_ability=action.required_ability,
            started_at=started_at,
        )
        self._transition(AgentStatus.ON_MISSION)
        logger.info(f"Agent {self.name} started {action.id} in {self.region_id}")
        return True

    def advance_mission(self, dt: float):
        if self.mission is None:
            return
        self.mission.progress = min(1.0, self.mission.progress + dt / MISSION_DURATION)
        self.dirty = True

    def complete_mission(self) -> bool:
        """Back to IDLE with one more experience; returns True on a level-up."""
        self.mission = None
        self.experience += 1
        self._transition(AgentStatus.IDLE)
        if self.experience >= 2 * self.level:
            self.level += 1
            return True
        return False

    def fail_mission(self, killed: bool):
        self._transition(AgentStatus.KIA if killed else AgentStatus.CAPTURED)
        self.mission = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "faction_id": self.faction_id,
            "region_id": self.region_id,
            "level": self.level,
            "experience": self.experience,
            "abilities": list(self.abilities),
            "status": self.status.value,
            "mission": self.mission.to_dict() if self.mission else None,
        }


def load_abilities(data_dir: Path) -> Dict[str, dict]:
    abilities_file = Path(data_dir) / "abilities.json"
    if not abilities_file.exists():
        logger.warning(f"No abilities file at {abilities_file}")
        return {}
    with open(abilities_file, "r", encoding="utf-8") as f:
        return {entry["id"]: entry for entry in json.load(f)}


class AgentManager:
    """Roster of agents plus the per-tick mission resolution."""

    def __init__(self, data_dir: Path, rng: random.Random = None, narrative=None,
                 tracker: DeltaTracker = None):
        self.rng = rng or random.Random()
        self.narrative = narrative
        self.tracker = tracker or DeltaTracker("agent")
        self.abilities = load_abilities(data_dir)
        self.agents: Dict[str, Agent] = {}
        self._next_id = 0

    def get(self, agent_id: str) -> Optional[Agent]:
        return self.agents.get(agent_id)

    def for_faction(self, faction_id: str) -> List[Agent]:
        return [a for a in self.agents.values() if a.faction_id == faction_id]

    def _log(self, event_type: str, data: dict):
        if self.narrative is not None:
            self.narrative.log_event(event_type, data)

    def recruit(self, faction, region, level: int = 1) -> Optional[Agent]:
        """Spend the recruitment cost and place a new agent in `region`."""
        if not faction.spend(RECRUIT_COST):
            logger.info(f"Faction {faction.id} cannot afford to recruit an agent")
            return None

        ability_ids = sorted(self.abilities)
        count = min(STARTING_ABILITIES, len(ability_ids))
        agent = Agent(
            id=f"agent-{self._next_id}",
            name=f"Agent {self.rng.choice(CODENAMES)}",
            faction_id=faction.id,
            region_id=region.id,
            level=level,
            abilities=self.rng.sample(ability_ids, count) if count else [],
        )
        self._next_id += 1
        self.agents[agent.id] = agent
        self.tracker.mark_new(agent.id)
        self._log("AGENT_DEPLOYED", {
            "agentId": agent.id,
            "agentName": agent.name,
            "factionId": faction.id,
            "regionName": region.name,
        })
        logger.info(f"Recruited {agent.name} ({agent.id}) in {region.name}")
        return agent

    def mission_risk(self, agent: Agent, world) -> float:
        mission = agent.mission
        risk = HIGH_RISK_MISSIONS.get(mission.mission_type, BASE_MISSION_RISK)
        risk -= EXPERIENCE_RISK_REDUCTION * agent.experience
        if not agent.has_ability(mission.required_ability):
            risk += MISSING_ABILITY_RISK

        region = world.region_manager.get(agent.region_id)
        owner = world.faction_manager.get(region.owner) if region else None
        if owner is not None:
            risk += owner.counter_intel
            if owner.id == world.faction_manager.ai_faction.id:
                risk += ALERT_RISK_STEP * world.ai_manager.alert_level
        return max(MIN_RISK, min(MAX_RISK, risk))

    def update(self, dt: float, world):
        for agent in list(self.agents.values()):
            if agent.status != AgentStatus.ON_MISSION or agent.mission is None:
                continue
            agent.advance_mission(dt)
            agent.mission.risk = self.mission_risk(agent, world)
            if agent.mission.progress >= 1.0:
                self._resolve_mission(agent, world)

    def _resolve_mission(self, agent: Agent, world):
        mission = agent.mission
        region = world.region_manager.get(agent.region_id)
        region_name = region.name if region else agent.region_id
        action = world.get_action(mission.action_id)
        mission_name = action.name if action else mission.action_id

        if self.rng.random() < mission.risk:
            killed = self.rng.random() < KIA_CHANCE
            agent.fail_mission(killed)
            if killed:
                self._log("AGENT_KIA", {"agentName": agent.name, "missionName": mission_name, "regionName": region_name})
                self.remove(agent)
            else:
                self._log("AGENT_CAPTURED", {"agentName": agent.name, "missionName": mission_name, "regionName": region_name})
            logger.info(f"{agent.name} failed {mission.action_id} ({'KIA' if killed else 'captured'})")
            return

        risk = mission.risk
        leveled = agent.complete_mission()
        if action is not None:
            world.apply_mission_success(agent, action)
        self._log("MISSION_SUCCESS", {
            "agentName": agent.name,
            "missionName": mission_name,
            "regionName": region_name,
            "risk": risk,
            "level": agent.level,
        })
        if leveled:
            self._log("AGENT_LEVEL_UP", {"agentName": agent.name, "newLevel": agent.level})

    def remove(self, agent: Agent):
        if self.agents.pop(agent.id, None) is not None:
            self.tracker.mark_removed(agent.id)
