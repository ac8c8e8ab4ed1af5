"""
Faction ledger - fungible resources, affordability checks and per-tick income.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from logger import setup_logger

logger = setup_logger("factions")

PLAYER_FACTION_ID = "mitigators"
AI_FACTION_ID = "technocrats"
NEUTRAL = "NEUTRAL"

RESOURCE_KEYS = ("funds", "intel", "tech")

# Base trickle per tick, scaled by the faction multiplier
BASE_TRICKLE = {"funds": 10, "intel": 5, "tech": 2}
SATELLITE_INTEL_BONUS = 10
INFORMANT_INTEL_PER_SECOND = 5

# AI income escalation after singularity research milestones
SINGULARITY_MULTIPLIERS = [
    ("singularity_3", 5.0),
    ("singularity_2", 3.0),
    ("singularity_1", 1.5),
]


@dataclass
class Faction:
    """A resource-holding side of the conflict."""
    id: str
    name: str
    funds: float = 0.0
    intel: float = 0.0
    tech: float = 0.0
    counter_intel: float = 0.1
    decision_timer: float = 0.0
    max_satellites: int = 5
    dirty: bool = field(default=True, compare=False)

    @property
    def resources(self) -> Dict[str, float]:
        return {"funds": self.funds, "intel": self.intel, "tech": self.tech}

    def can_afford(self, cost: Optional[Dict[str, float]]) -> bool:
        """True only if every component of the cost vector is covered."""
        if not cost:
            return True
        return all(getattr(self, key) >= cost.get(key, 0) for key in RESOURCE_KEYS)

    def spend(self, cost: Optional[Dict[str, float]]) -> bool:
        """Deduct the whole cost vector, or nothing at all."""
        if not self.can_afford(cost):
            logger.debug(f"Faction {self.id} cannot afford {cost}")
            return False
        if cost:
            for key in RESOURCE_KEYS:
                amount = cost.get(key, 0)
                if amount:
                    setattr(self, key, getattr(self, key) - amount)
            self.dirty = True
        return True

    def add_resources(self, amounts: Dict[str, float]):
        for key in RESOURCE_KEYS:
            amount = amounts.get(key, 0)
            if amount:
                setattr(self, key, max(0.0, getattr(self, key) + amount))
                self.dirty = True

    def drain(self, resource: str, amount: float) -> float:
        """Remove up to `amount` of a resource; returns what was actually taken."""
        taken = max(0.0, min(getattr(self, resource), amount))
        if taken:
            setattr(self, resource, getattr(self, resource) - taken)
            self.dirty = True
        return taken

    def adjust_counter_intel(self, delta: float):
        self.counter_intel = max(0.0, self.counter_intel + delta)
        self.dirty = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "resources": self.resources,
            "counter_intel": self.counter_intel,
            "max_satellites": self.max_satellites,
        }


class FactionManager:
    """Owns both factions and applies trickle, territory and buff income."""

    def __init__(self, casual_mode: bool = True, max_satellites: int = 5):
        self.casual_mode = casual_mode
        self.factions: Dict[str, Faction] = {}
        self._initialize_factions(max_satellites)

    def _initialize_factions(self, max_satellites: int):
        self.player_faction = Faction(
            id=PLAYER_FACTION_ID,
            name="Hero Mitigators",
            funds=20000 if self.casual_mode else 10000,
            intel=10000 if self.casual_mode else 5000,
            tech=4000 if self.casual_mode else 2000,
            max_satellites=max_satellites,
        )
        self.ai_faction = Faction(
            id=AI_FACTION_ID,
            name="Evil Technocrats",
            funds=20000,
            intel=10000,
            tech=10000,
            max_satellites=max_satellites,
        )
        if self.casual_mode:
            self.ai_faction.counter_intel = 0.05
        self.factions = {
            self.player_faction.id: self.player_faction,
            self.ai_faction.id: self.ai_faction,
        }
        logger.info(f"Initialized factions (casual_mode={self.casual_mode})")

    def get(self, faction_id: str) -> Optional[Faction]:
        return self.factions.get(faction_id)

    def all(self) -> List[Faction]:
        return list(self.factions.values())

    def rival_of(self, faction: Faction) -> Faction:
        return self.ai_faction if faction.id == self.player_faction.id else self.player_faction

    def income_multiplier(self, faction: Faction, completed_research: set) -> float:
        if faction.id != self.ai_faction.id:
            return 1.0
        for project_id, multiplier in SINGULARITY_MULTIPLIERS:
            if project_id in completed_research:
                return multiplier
        return 1.0

    def update(self, dt: float, world):
        """Apply one tick of income.

        `world` supplies regions, buildings, satellites, world buffs and
        completed research; only faction resources are mutated here.
        """
        completed = world.research.completed
        disrupted = world.has_world_buff("AI_SATELLITE_DISRUPTION")

        for faction in self.factions.values():
            multiplier = self.income_multiplier(faction, completed)
            faction.add_resources({key: amount * multiplier for key, amount in BASE_TRICKLE.items()})

            if faction.id == self.ai_faction.id and disrupted:
                continue
            satellites = sum(1 for s in world.satellites.values() if s.owner == faction.id)
            if satellites:
                faction.add_resources({"intel": satellites * SATELLITE_INTEL_BONUS})

        for region in world.region_manager.regions.values():
            if region.owner == self.player_faction.id:
                income_multiplier = 1.5 if world.has_building(region.id, "BASE", self.player_faction.id) else 1.0
                tech_multiplier = 3.0 if world.has_building(region.id, "RESEARCH_OUTPOST", self.player_faction.id) else 1.0
                self.player_faction.add_resources({
                    "funds": region.economy * 10 * income_multiplier * dt,
                    "intel": region.economy * 2 * income_multiplier * dt,
                    "tech": region.economy * 1 * income_multiplier * tech_multiplier * dt,
                })

            for buff in region.active_buffs:
                if buff.type == "INFORMANT_NETWORK" and buff.owner_faction_id:
                    owner = self.get(buff.owner_faction_id)
                    if owner:
                        owner.add_resources({"intel": INFORMANT_INTEL_PER_SECOND * dt})
