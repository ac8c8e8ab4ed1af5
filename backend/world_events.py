"""
Global world events - weighted random draws from the currently eligible set.
"""

import random
from typing import Dict, List, Optional

from logger import setup_logger

logger = setup_logger("world_events")

SOLAR_FLARE_DURATION = 60.0


def _economic_boom(world, rng):
    for faction in world.faction_manager.all():
        faction.add_resources({"funds": 5000})
    world.adjust_global_metric("economy", 0.1)
    return "The world economy is flourishing."


def _market_correction(world, rng):
    world.adjust_global_metric("economy", -0.1)
    return "The global markets have cooled down."


def _political_scandal(world, rng):
    region = rng.choice(world.region_manager.all())
    region.set_stability(region.stability - 0.2)
    world.adjust_global_metric("trust", -0.1)
    return f"A scandal in {region.name} has rocked the world."


def _scientific_breakthrough(world, rng):
    for faction in world.faction_manager.all():
        faction.add_resources({"tech": 2000})
    return "A new discovery promises to change the world."


def _vulnerable_regions(world):
    return [r for r in world.region_manager.all() if r.climate_vulnerability > 0.6]


def _natural_disaster(world, rng):
    region = rng.choice(_vulnerable_regions(world))
    region.apply_damage(stability=0.3, economy=0.3)
    return f"A disaster has struck {region.name}."


def _solar_flare(world, rng):
    world.add_world_buff("AI_SATELLITE_DISRUPTION", SOLAR_FLARE_DURATION)
    return "Satellite communications have been disrupted."


WORLD_EVENTS: List[Dict] = [
    {"id": "economic_boom", "title": "Economic Boom", "weight": 10,
     "condition": lambda world: world.global_metrics["economy"] < 0.8, "effect": _economic_boom},
    {"id": "market_correction", "title": "Market Correction", "weight": 5,
     "condition": lambda world: world.global_metrics["economy"] > 0.9, "effect": _market_correction},
    {"id": "political_scandal", "title": "Political Scandal", "weight": 10,
     "condition": lambda world: world.global_metrics["trust"] > 0.3 and bool(world.region_manager.regions),
     "effect": _political_scandal},
    {"id": "scientific_breakthrough", "title": "Scientific Breakthrough", "weight": 10,
     "condition": lambda world: True, "effect": _scientific_breakthrough},
    {"id": "natural_disaster", "title": "Natural Disaster", "weight": 5,
     "condition": lambda world: bool(_vulnerable_regions(world)), "effect": _natural_disaster},
    {"id": "solar_flare", "title": "Solar Flare", "weight": 3,
     "condition": lambda world: bool(world.satellites), "effect": _solar_flare},
]


def pick_event(eligible: List[Dict], rng: random.Random) -> Optional[Dict]:
    """Weighted choice over the eligible events."""
    if not eligible:
        return None
    roll = rng.random() * sum(e["weight"] for e in eligible)
    for event in eligible:
        roll -= event["weight"]
        if roll <= 0:
            return event
    return eligible[-1]


class WorldEventManager:

    def __init__(self, interval: float = 60.0, rng: random.Random = None):
        self.interval = interval
        self.rng = rng or random.Random()
        self.timer = 0.0

    def update(self, dt: float, world) -> Optional[str]:
        self.timer += dt
        if self.timer < self.interval:
            return None
        self.timer = 0.0
        return self.trigger_random_event(world)

    def trigger_random_event(self, world) -> Optional[str]:
        eligible = [e for e in WORLD_EVENTS if e["condition"](world)]
        event = pick_event(eligible, self.rng)
        if event is None:
            logger.debug("No eligible world events")
            return None
        return self.trigger_event(event, world)

    def trigger_event(self, event: Dict, world) -> str:
        description = event["effect"](world, self.rng)
        world.narrative.log_event("GLOBAL_EVENT", {
            "eventId": event["id"],
            "title": event["title"],
            "description": description,
        })
        logger.info(f"World event: {event['title']}")
        return event["id"]
