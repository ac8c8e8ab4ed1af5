"""
AI opponent - the action library the planner chooses from and the manager
that tracks alert level, goals and the decision cadence.
"""

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from logger import setup_logger
from planner import GOAPPlanner, WorldView

logger = setup_logger("ai")

AI_GOALS = ["destabilize_region", "disrupt_economy", "tech_supremacy", "counter_player"]
RESOURCE_THRESHOLD = 2000

# (score above, level, casual interval, normal interval)
ALERT_LEVELS = [
    (10, 2, 2.0, 1.0),
    (5, 1, 4.0, 2.0),
]
DEFAULT_ALERT = (0, 6.0, 3.0)


@dataclass
class AIAction:
    id: str
    cost: Dict[str, float]
    preconditions: Dict[str, bool]
    effects: Dict[str, bool]
    perform: Callable = field(repr=False, default=None)  # (world, faction) -> bool

    def run(self, world) -> bool:
        """Spend once and perform; nothing happens if the cost is not covered."""
        faction = world.faction_manager.ai_faction
        if not faction.can_afford(self.cost):
            logger.debug(f"AI cannot afford {self.id}")
            return False
        if not self.perform(world, faction, dry_run=True):
            return False
        faction.spend(self.cost)
        return self.perform(world, faction)


# ===== ACTION BODIES =====
# Each body is called once with dry_run=True to confirm it has a target, then for real.

def _generate_real_threat(world, faction, dry_run: bool = False) -> bool:
    if dry_run:
        return bool(world.region_manager.regions)
    return world.threat_manager.generate_threat({"is_from_ai": True, "type": "REAL"}, world) is not None


def _generate_fake_threat(world, faction, dry_run: bool = False) -> bool:
    if dry_run:
        return bool(world.region_manager.regions)
    return world.threat_manager.generate_threat({"is_from_ai": True, "type": "FAKE"}, world) is not None


def _generate_ransomware_threat(world, faction, dry_run: bool = False) -> bool:
    if dry_run:
        return bool(world.region_manager.regions)
    options = {"is_from_ai": True, "domain": "CYBER", "sub_type": "RANSOMWARE", "type": "REAL"}
    return world.threat_manager.generate_threat(options, world) is not None


def claimable_regions(world, faction) -> List:
    """NEUTRAL regions joined by a travel route to a region the faction owns."""
    regions = world.region_manager
    return [r for r in regions.all()
            if r.owner == "NEUTRAL" and any(n.owner == faction.id for n in regions.neighbors(r))]


def _claim_neutral_region(world, faction, dry_run: bool = False) -> bool:
    candidates = claimable_regions(world, faction)
    if not candidates:
        return False
    if dry_run:
        return True
    region = candidates[0]
    region.set_owner(faction.id)
    world.narrative.log_event("REGION_CLAIMED", {"faction": faction.name, "region": region.name})
    logger.info(f"{faction.name} claimed {region.name}")
    return True


def unfortified_regions(world, faction) -> List:
    return [r for r in world.region_manager.owned_by(faction.id)
            if not world.has_building(r.id, "BASE")]


def _build_base(world, faction, dry_run: bool = False) -> bool:
    candidates = unfortified_regions(world, faction)
    if not candidates:
        return False
    if dry_run:
        return True
    return world.add_building(candidates[0].id, "BASE", faction, charge=False) is not None


AI_ACTIONS: List[AIAction] = [
    AIAction("generate_real_threat", {"funds": 1000, "tech": 500},
             {"hasEnoughResources": True}, {"playerIsWeaker": True}, _generate_real_threat),
    AIAction("generate_fake_threat", {"funds": 500, "intel": 200},
             {"hasEnoughResources": True}, {"playerIsDistracted": True}, _generate_fake_threat),
    AIAction("claim_neutral_region", {"funds": 1500},
             {"hasEnoughResources": True, "neutralRegionExists": True}, {"aiHasMoreTerritory": True},
             _claim_neutral_region),
    AIAction("build_base", {"funds": 1000},
             {"hasEnoughResources": True, "unfortifiedRegionExists": True}, {"aiTerritoryIsStronger": True},
             _build_base),
    AIAction("generate_ransomware_threat", {"funds": 1200, "tech": 800},
             {"hasEnoughResources": True}, {"playerIsWeaker": True}, _generate_ransomware_threat),
]


class AIManager:
    """Alert level, current goal and the periodic planning step for the AI faction."""

    def __init__(self, casual_mode: bool = True, decision_interval: float = 5.0,
                 rng: random.Random = None, actions: List[AIAction] = None):
        self.casual_mode = casual_mode
        self.decision_interval = decision_interval
        self.rng = rng or random.Random()
        self.actions = actions if actions is not None else AI_ACTIONS
        self.planner = GOAPPlanner()
        self.ai_goal: Optional[str] = None
        self.alert_level = 0
        self.alert_score = 0
        self.threat_generation_interval = DEFAULT_ALERT[1] if casual_mode else DEFAULT_ALERT[2]
        self.threat_generation_timer = 0.0
        self.last_action: Optional[str] = None

    def select_ai_goal(self) -> str:
        self.ai_goal = self.rng.choice(AI_GOALS)
        logger.debug(f"AI goal is now {self.ai_goal}")
        return self.ai_goal

    def update_alert_level(self, world):
        player_id = world.faction_manager.player_faction.id
        player_regions = len(world.region_manager.owned_by(player_id))
        self.alert_score = world.threat_manager.player_mitigations + 2 * player_regions

        level, casual_interval, normal_interval = DEFAULT_ALERT
        for threshold, candidate, casual, normal in ALERT_LEVELS:
            if self.alert_score > threshold:
                level, casual_interval, normal_interval = candidate, casual, normal
                break
        if level != self.alert_level:
            logger.info(f"AI alert level {self.alert_level} -> {level} (score={self.alert_score})")
        self.alert_level = level
        self.threat_generation_interval = casual_interval if self.casual_mode else normal_interval

    def build_world_view(self, world) -> WorldView:
        faction_manager = world.faction_manager
        ai, player = faction_manager.ai_faction, faction_manager.player_faction
        regions = world.region_manager
        ai_count = len(regions.owned_by(ai.id))
        player_count = len(regions.owned_by(player.id))
        unfortified = bool(unfortified_regions(world, ai))
        return WorldView(
            hasEnoughResources=ai.funds > RESOURCE_THRESHOLD,
            neutralRegionExists=bool(regions.owned_by("NEUTRAL")),
            unfortifiedRegionExists=unfortified,
            aiHasMoreTerritory=ai_count > player_count,
            aiTerritoryIsStronger=not unfortified,
        )

    def goals(self) -> List[dict]:
        goals = [
            {"id": "weaken_player", "goal": {"playerIsWeaker": True}, "priority": self.alert_level * 2},
            {"id": "expand_territory", "goal": {"aiHasMoreTerritory": True}, "priority": 1},
            {"id": "strengthen_territory", "goal": {"aiTerritoryIsStronger": True}, "priority": 1},
            {"id": "distract_player", "goal": {"playerIsDistracted": True}, "priority": 0.5},
        ]
        return sorted(goals, key=lambda g: g["priority"], reverse=True)

    def decide(self, world) -> Optional[AIAction]:
        """Plan against the current view and run the first action of the first non-empty plan."""
        view = self.build_world_view(world)
        for goal in self.goals():
            plan = self.planner.plan(view, self.actions, goal["goal"])
            if plan:
                action = plan[0]
                succeeded = action.run(world)
                self.last_action = action.id
                logger.info(f"AI goal {goal['id']}: ran {action.id} (success={succeeded})")
                return action
        return None

    def update(self, dt: float, world):
        self.update_alert_level(world)

        self.threat_generation_timer += dt
        if self.threat_generation_timer >= self.threat_generation_interval:
            self.threat_generation_timer = 0.0
            self.select_ai_goal()

        faction = world.faction_manager.ai_faction
        faction.decision_timer += dt
        if faction.decision_timer < self.decision_interval:
            return
        faction.decision_timer = 0.0
        self.decide(world)

    def to_dict(self) -> dict:
        return {
            "alert_level": self.alert_level,
            "alert_score": self.alert_score,
            "goal": self.ai_goal,
            "last_action": self.last_action,
        }
