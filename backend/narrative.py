"""
Narrative event log and chronicle rules.

The log is append-only. Chronicle processing walks each new event once and
turns it into at most one chronicle using the first rule that matches.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from logger import setup_logger

logger = setup_logger("narrative")

TECHNOCRAT_PLOT_BOOST = 0.1
TECHNOCRAT_PLOT_DURATION = 60.0


@dataclass
class NarrativeEvent:
    id: str
    sim_time: float
    timestamp: str
    event_type: str
    data: dict

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": {"sim_time": self.sim_time, "wall_clock": self.timestamp},
            "event_type": self.event_type,
            "data": self.data,
        }


@dataclass
class Chronicle:
    id: str
    rule_id: str
    title: str
    description: str
    event_id: str
    sim_time: float = 0.0
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "title": self.title,
            "description": self.description,
            "event_id": self.event_id,
            "sim_time": self.sim_time,
            "details": self.details,
        }


# =============================================================================
# CHRONICLE RULES
# =============================================================================

def _mitigation_data(event, narrative, world) -> dict:
    faction = world.faction_manager.get(event.data.get("factionId")) if world else None
    return {
        "regionName": event.data.get("regionName") or "an unknown region",
        "domain": event.data.get("domain"),
        "factionName": faction.name if faction else "an unknown entity",
    }


def _crisis_averted(event, narrative, world) -> bool:
    generated = narrative.generation_event(event.data.get("threatId"))
    return generated is not None and not generated.data.get("isFromAI")


def _technocrat_plot(event, narrative, world) -> bool:
    generated = narrative.generation_event(event.data.get("threatId"))
    player_id = world.faction_manager.player_faction.id if world else "mitigators"
    return bool(generated and generated.data.get("isFromAI") and event.data.get("factionId") == player_id)


def _reward_counter_intel(world):
    world.boost_counter_intel(world.faction_manager.player_faction, TECHNOCRAT_PLOT_BOOST, TECHNOCRAT_PLOT_DURATION)


def _chernobyl_echo(event, narrative, world) -> bool:
    return narrative.first_synergy_id == event.id


def _pick(*keys) -> Callable:
    return lambda event, narrative, world: {key: event.data.get(key) for key in keys}


CHRONICLE_RULES: List[Dict] = [
    {
        "id": "crisis_averted",
        "trigger": "THREAT_MITIGATED",
        "condition": _crisis_averted,
        "template_data": _mitigation_data,
        "title": "Crisis Averted in {regionName}",
        "description": "A {domain} threat that emerged in {regionName} has been successfully neutralized by {factionName}.",
    },
    {
        "id": "technocrat_plot",
        "trigger": "THREAT_MITIGATED",
        "condition": _technocrat_plot,
        "template_data": _mitigation_data,
        "title": "Technocrat Plot Uncovered in {regionName}",
        "description": "A {domain} threat secretly deployed by the Evil Technocrats in {regionName} has been exposed and neutralized.",
        "on_trigger": _reward_counter_intel,
    },
    {
        "id": "fallout_warning",
        "trigger": "WMD_DETONATION",
        "condition": lambda event, narrative, world: (event.data.get("yield") or 0) > 20,
        "template_data": lambda event, narrative, world: {"regionName": event.data.get("region")},
        "title": "Nuclear Fallout Detected",
        "description": "A WMD detonation in {regionName} has resulted in significant radioactive fallout, creating a new radiological threat.",
    },
    {
        "id": "agent_promoted",
        "trigger": "AGENT_LEVEL_UP",
        "condition": lambda event, narrative, world: (event.data.get("newLevel") or 0) > 1,
        "template_data": _pick("agentName", "newLevel"),
        "title": "Agent Promoted: {agentName}",
        "description": "Agent {agentName} has been promoted to level {newLevel} after demonstrating exceptional skill in the field.",
    },
    {
        "id": "agent_captured_narrative",
        "trigger": "AGENT_CAPTURED",
        "condition": lambda event, narrative, world: True,
        "template_data": _pick("agentName", "missionName", "regionName"),
        "title": "Agent Captured: {agentName}",
        "description": "Agent {agentName} was captured during a failed {missionName} mission in {regionName}. Their fate is unknown.",
    },
    {
        "id": "critical_success",
        "trigger": "MISSION_SUCCESS",
        "condition": lambda event, narrative, world: (event.data.get("level") or 0) >= 3 and (event.data.get("risk") or 0) > 0.5,
        "template_data": _pick("missionName", "agentName", "regionName"),
        "title": "Critical Success: {missionName}",
        "description": "Agent {agentName} achieved a critical success during a high-stakes {missionName} mission in {regionName}, yielding exceptional results.",
    },
    {
        "id": "ai_expansion",
        "trigger": "REGION_CLAIMED",
        "condition": lambda event, narrative, world: event.data.get("faction") == "Evil Technocrats",
        "template_data": lambda event, narrative, world: {"regionName": event.data.get("region")},
        "title": "Technocrat Expansion",
        "description": "The Technocrats have expanded their influence by claiming the region of {regionName}.",
    },
    {
        "id": "satellite_launch_success",
        "trigger": "SATELLITE_LAUNCH",
        "condition": lambda event, narrative, world: True,
        "template_data": lambda event, narrative, world: {
            "factionName": getattr(world.faction_manager.get(event.data.get("factionId")), "name", "an unknown faction")
            if world else event.data.get("factionId"),
        },
        "title": "Satellite in Orbit",
        "description": "The {factionName} have successfully launched a new satellite, boosting their global intelligence capabilities.",
    },
    {
        "id": "chernobyl_echo",
        "trigger": "CYBER_RAD_SYNERGY",
        "condition": _chernobyl_echo,
        "template_data": lambda event, narrative, world: {},
        "title": "The Chernobyl Echo",
        "description": "A major cyber-attack has compromised nuclear facility safety protocols, leading to a significant "
                       "radiological event. The synergy between digital and radiological threats marks a new, "
                       "dangerous chapter in global security.",
    },
]


def find_matching_rule(event: NarrativeEvent, narrative: "NarrativeManager", world) -> Optional[dict]:
    """First rule whose trigger and condition both match, or None."""
    for rule in CHRONICLE_RULES:
        if rule["trigger"] != event.event_type:
            continue
        if rule["condition"](event, narrative, world):
            return rule
    return None


# =============================================================================
# MANAGER
# =============================================================================

class NarrativeManager:
    """Append-only event log plus chronicle synthesis."""

    def __init__(self, clock: Callable[[], float] = None):
        self.clock = clock or (lambda: 0.0)
        self.events: List[NarrativeEvent] = []
        self.chronicles: List[Chronicle] = []
        self._next_event_id = 0
        self._next_chronicle_id = 0
        self._processed = 0
        self._generated_by_threat: Dict[str, NarrativeEvent] = {}
        self.first_synergy_id: Optional[str] = None
        self._lock = threading.Lock()

    def log_event(self, event_type: str, data: dict = None) -> NarrativeEvent:
        with self._lock:
            event = NarrativeEvent(
                id=f"event-{self._next_event_id}",
                sim_time=self.clock(),
                timestamp=datetime.now().isoformat(),
                event_type=event_type,
                data=dict(data or {}),
            )
            self._next_event_id += 1
            self.events.append(event)
            if event_type == "THREAT_GENERATED":
                self._generated_by_threat.setdefault(event.data.get("threatId"), event)
            elif event_type == "CYBER_RAD_SYNERGY" and self.first_synergy_id is None:
                self.first_synergy_id = event.id
        logger.debug(f"[{event.id}] {event_type} {event.data}")
        return event

    def generation_event(self, threat_id: str) -> Optional[NarrativeEvent]:
        """The THREAT_GENERATED event that introduced threat_id, if logged."""
        return self._generated_by_threat.get(threat_id)

    def process_chronicles(self, world=None) -> List[Chronicle]:
        """Turn every not-yet-seen event into at most one chronicle."""
        created = []
        while self._processed < len(self.events):
            event = self.events[self._processed]
            self._processed += 1
            rule = find_matching_rule(event, self, world)
            if rule is None:
                continue
            chronicle = self._build_chronicle(rule, event, world)
            self.chronicles.append(chronicle)
            created.append(chronicle)
            logger.info(f"Chronicle: {chronicle.title}")
            on_trigger = rule.get("on_trigger")
            if on_trigger is not None and world is not None:
                on_trigger(world)
        return created

    def _build_chronicle(self, rule: dict, event: NarrativeEvent, world) -> Chronicle:
        data = rule["template_data"](event, self, world)
        chronicle = Chronicle(
            id=f"chronicle-{self._next_chronicle_id}",
            rule_id=rule["id"],
            title=rule["title"].format(**data),
            description=rule["description"].format(**data),
            event_id=event.id,
            sim_time=event.sim_time,
            details=data,
        )
        self._next_chronicle_id += 1
        return chronicle

    def get_events(self, since_id: str = None, limit: int = 100, event_type: str = None) -> List[dict]:
        with self._lock:
            events = list(self.events)
        if since_id:
            try:
                since = int(since_id.rsplit("-", 1)[-1])
            except ValueError:
                logger.warning(f"Bad since_id {since_id}")
                since = -1
            events = [e for e in events if int(e.id.rsplit("-", 1)[-1]) > since]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return [e.to_dict() for e in events[-limit:]] if limit else [e.to_dict() for e in events]

    def get_chronicles(self) -> List[dict]:
        return [c.to_dict() for c in self.chronicles]
