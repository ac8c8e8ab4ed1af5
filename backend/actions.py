"""
Declarative action catalog and the generic executor.

Actions are pure data: a resource cost, ordered availability predicates and
ordered effects. The ActionService evaluates the predicates against a narrow
ActionContext and dispatches the effects to methods bound in EffectMethod.
"""

import operator
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Tuple

from agents import Agent
from logger import setup_logger
from regions import Region
from threats import Threat

logger = setup_logger("actions")


class ActionCatalogError(Exception):
    """Raised at import when a catalog entry is malformed."""
    pass


# =============================================================================
# VOCABULARY
# =============================================================================

PREDICATE_TYPES = {
    "threat_property",
    "selected_threat_property",
    "region_property",
    "agent_property",
    "world_property",
    "region_has_buff",
    "world_property_count",
}

COMPARATORS = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

EFFECT_TYPES = {"call_method", "call_method_on_target", "call_method_on_world"}
TARGET_TYPES = {"THREAT", "REGION", "WORLD", "AGENT"}

PLAYER_TOKEN = "PLAYER"
FACTION_TOKEN = "playerFaction"
ACTION_TOKEN = "action"
WORLD_TIME_TOKEN = "worldTime"

_MISSING = object()


class EffectMethod(Enum):
    """Every (target type, method name) an effect may call."""
    THREAT_INVESTIGATE = ("THREAT", "investigate")
    THREAT_MITIGATE = ("THREAT", "mitigate")
    THREAT_DEPLOY_COUNTER_INTEL = ("THREAT", "deploy_counter_intel")
    THREAT_STABILIZE_MARKETS = ("THREAT", "stabilize_markets")
    THREAT_SABOTAGE_ROBOTICS = ("THREAT", "sabotage_robotics")
    THREAT_INDUCE_DECOHERENCE = ("THREAT", "induce_decoherence")
    REGION_DIPLOMATIC_MISSION = ("REGION", "start_diplomatic_mission")
    REGION_AWARENESS_CAMPAIGN = ("REGION", "start_awareness_campaign")
    REGION_INVEST_IN_EDUCATION = ("REGION", "invest_in_education")
    REGION_NETWORK_INFRASTRUCTURE = ("REGION", "deploy_network_infrastructure")
    REGION_QUARANTINE = ("REGION", "initiate_quarantine")
    REGION_SCRUB_NETWORK = ("REGION", "scrub_network")
    REGION_COUNTER_PROPAGANDA = ("REGION", "launch_counter_propaganda")
    REGION_FORTIFY = ("REGION", "fortify")
    REGION_INFORMANT_NETWORK = ("REGION", "establish_informant_network")
    REGION_SUFFER_SABOTAGE = ("REGION", "suffer_sabotage")
    WORLD_START_RESEARCH = ("WORLD", "start_research_project")
    WORLD_LAUNCH_SATELLITE = ("WORLD", "launch_satellite")
    WORLD_GRANT_RESOURCES = ("WORLD", "grant_resources")
    WORLD_STEAL_TECH = ("WORLD", "steal_tech")
    AGENT_START_MISSION = ("AGENT", "start_mission")

    @property
    def target(self) -> str:
        return self.value[0]

    @property
    def method(self) -> str:
        return self.value[1]


BOUND_METHODS = {member.value for member in EffectMethod}

# World is bound by world.py once the class exists
TARGET_CLASSES = {"THREAT": Threat, "REGION": Region, "AGENT": Agent}


# =============================================================================
# DESCRIPTORS
# =============================================================================

@dataclass(frozen=True)
class Predicate:
    type: str
    property: Optional[str] = None
    comparison: str = "eq"
    value: Any = None
    buff: Optional[str] = None
    filter: Optional[Tuple[str, str, Any]] = None  # (property, comparison, value)


@dataclass(frozen=True)
class Effect:
    type: str
    method: str
    params: Tuple = ()
    target: Optional[str] = None  # overrides the action target for call_method_on_target


@dataclass(frozen=True)
class ActionDescriptor:
    id: str
    name: str
    description: str = ""
    target_type: str = "THREAT"
    resource_cost: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    availability: Tuple[Predicate, ...] = ()
    effects: Tuple[Effect, ...] = ()
    mission_type: Optional[str] = None
    required_ability: Optional[str] = None
    on_success: Tuple[Effect, ...] = ()

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "target_type": self.target_type,
            "resource_cost": dict(self.resource_cost),
        }
        if self.mission_type:
            data["mission_type"] = self.mission_type
            data["required_ability"] = self.required_ability
        return data


def _action(action_id: str, name: str, target_type: str, cost: dict, availability=(), effects=(),
            description: str = "", **agent_fields) -> ActionDescriptor:
    return ActionDescriptor(
        id=action_id,
        name=name,
        description=description,
        target_type=target_type,
        resource_cost=MappingProxyType(dict(cost)),
        availability=tuple(availability),
        effects=tuple(effects),
        mission_type=agent_fields.get("mission_type"),
        required_ability=agent_fields.get("required_ability"),
        on_success=tuple(agent_fields.get("on_success", ())),
    )


def _threat_is(prop, comparison, value):
    return Predicate("threat_property", prop, comparison, value)


def _region_is(prop, comparison, value):
    return Predicate("region_property", prop, comparison, value)


def _no_buff(buff):
    return Predicate("region_has_buff", buff=buff, value=False)


INVESTIGATED = _threat_is("investigation_progress", "gte", 1.0)
PLAYER_OWNED_REGION = _region_is("owner", "eq", PLAYER_TOKEN)


# ===== PLAYER CATALOG =====

_PLAYER_ACTION_LIST = [
    _action("investigate", "Investigate", "THREAT", {"intel": 100},
            [_threat_is("investigation_progress", "lt", 1.0)],
            [Effect("call_method", "investigate", (FACTION_TOKEN,))],
            "Expose the threat; a fully investigated hoax collapses."),
    _action("mitigate", "Mitigate", "THREAT", {"funds": 500, "tech": 200},
            [INVESTIGATED, _threat_is("type", "eq", "REAL")],
            [Effect("call_method", "mitigate", (FACTION_TOKEN,))]),
    _action("counter_intel", "Deploy Counter-Intel", "THREAT", {"intel": 250, "funds": 100},
            [_threat_is("domain", "eq", "INFO"), INVESTIGATED],
            [Effect("call_method", "deploy_counter_intel", (FACTION_TOKEN,))]),
    _action("stabilize_markets", "Stabilize Markets", "THREAT", {"funds": 1000},
            [_threat_is("domain", "eq", "ECON"), INVESTIGATED],
            [Effect("call_method", "stabilize_markets", (FACTION_TOKEN,))]),
    _action("robotic_sabotage", "Robotic Sabotage", "THREAT", {"tech": 400, "intel": 200},
            [_threat_is("domain", "eq", "ROBOT"), INVESTIGATED],
            [Effect("call_method", "sabotage_robotics", (FACTION_TOKEN,))]),
    _action("induce_decoherence", "Induce Decoherence", "THREAT", {"tech": 500, "funds": 300},
            [_threat_is("domain", "eq", "QUANTUM"), INVESTIGATED,
             _threat_is("properties.coherence_time", "gt", 0)],
            [Effect("call_method", "induce_decoherence", (FACTION_TOKEN,))]),
    _action("fund_research", "Fund Research", "WORLD", {"tech": 2000},
            [Predicate("world_property", "research.active_project", "eq", None)],
            [Effect("call_method_on_world", "start_research_project", ("advanced_materials",))]),
    _action("diplomatic_mission", "Diplomatic Mission", "REGION", {"funds": 1500},
            [],
            [Effect("call_method_on_target", "start_diplomatic_mission")]),
    _action("awareness_campaign", "Awareness Campaign", "REGION", {"funds": 500, "intel": 200},
            [],
            [Effect("call_method_on_target", "start_awareness_campaign")]),
    _action("invest_in_education", "Invest in Education", "REGION", {"funds": 1000},
            [_region_is("education", "lt", 1.0)],
            [Effect("call_method_on_target", "invest_in_education", (FACTION_TOKEN,))]),
    _action("deploy_network_infrastructure", "Deploy Network Infrastructure", "REGION",
            {"funds": 800, "tech": 400},
            [_region_is("attributes.internet_access", "lt", 1.0)],
            [Effect("call_method_on_target", "deploy_network_infrastructure", (FACTION_TOKEN,))]),
    _action("launch_satellite", "Launch Satellite", "WORLD", {"funds": 2500, "tech": 5000},
            [Predicate("world_property_count", "satellites", "lt", f"{FACTION_TOKEN}.max_satellites",
                       filter=("owner", "eq", PLAYER_TOKEN))],
            [Effect("call_method_on_world", "launch_satellite", (FACTION_TOKEN,))]),
    _action("initiate_quarantine", "Initiate Quarantine", "REGION", {"funds": 700},
            [_threat_is("domain", "eq", "BIO"), PLAYER_OWNED_REGION, _no_buff("QUARANTINE")],
            [Effect("call_method_on_target", "initiate_quarantine", (FACTION_TOKEN,))]),
    _action("scrub_network", "Scrub Network", "REGION", {"tech": 600},
            [_threat_is("domain", "eq", "CYBER"), PLAYER_OWNED_REGION, _no_buff("NETWORK_SCRUB")],
            [Effect("call_method_on_target", "scrub_network", (FACTION_TOKEN,))]),
    _action("counter_propaganda", "Counter Propaganda", "REGION", {"intel": 500},
            [_threat_is("domain", "eq", "INFO"), PLAYER_OWNED_REGION, _no_buff("COUNTER_PROPAGANDA")],
            [Effect("call_method_on_target", "launch_counter_propaganda", (FACTION_TOKEN,))]),
    _action("fortify_region", "Fortify Region", "REGION", {"funds": 1200},
            [PLAYER_OWNED_REGION, _no_buff("FORTIFIED")],
            [Effect("call_method_on_target", "fortify", (FACTION_TOKEN,))]),
]

# ===== AGENT CATALOG =====

AGENT_IDLE = Predicate("agent_property", "status", "eq", "IDLE")
START_MISSION = Effect("call_method_on_target", "start_mission", (ACTION_TOKEN, WORLD_TIME_TOKEN))

_AGENT_ACTION_LIST = [
    _action("gather_intel", "Gather Intel", "AGENT", {"funds": 200}, [AGENT_IDLE], [START_MISSION],
            mission_type="GATHER_INTEL", required_ability="SURVEILLANCE",
            on_success=[Effect("call_method_on_world", "grant_resources", (FACTION_TOKEN, {"intel": 300}))]),
    _action("infiltrate", "Infiltrate", "AGENT", {"funds": 300, "intel": 100}, [AGENT_IDLE], [START_MISSION],
            mission_type="INFILTRATE", required_ability="INFILTRATION",
            on_success=[Effect("call_method_on_target", "establish_informant_network", (FACTION_TOKEN,),
                               target="REGION")]),
    _action("sabotage", "Sabotage", "AGENT", {"funds": 500, "tech": 200}, [AGENT_IDLE], [START_MISSION],
            mission_type="SABOTAGE", required_ability="DEMOLITIONS",
            on_success=[Effect("call_method_on_target", "suffer_sabotage", target="REGION")]),
    _action("steal_tech", "Steal Tech", "AGENT", {"funds": 400, "intel": 200}, [AGENT_IDLE], [START_MISSION],
            mission_type="STEAL_TECH", required_ability="CYBER_INTRUSION",
            on_success=[Effect("call_method_on_world", "steal_tech", (FACTION_TOKEN,))]),
]

PLAYER_ACTIONS: Dict[str, ActionDescriptor] = MappingProxyType({a.id: a for a in _PLAYER_ACTION_LIST})
AGENT_ACTIONS: Dict[str, ActionDescriptor] = MappingProxyType({a.id: a for a in _AGENT_ACTION_LIST})


# =============================================================================
# VALIDATION
# =============================================================================

def _effect_target(action: ActionDescriptor, effect: Effect) -> str:
    if effect.type == "call_method":
        return "THREAT"
    if effect.type == "call_method_on_world":
        return "WORLD"
    return effect.target or action.target_type


def validate_action_catalog(catalogs=None, target_classes: dict = None):
    """Check every descriptor against the vocabulary and the bound methods.

    Raises ActionCatalogError on the first problem found.
    """
    catalogs = catalogs or (PLAYER_ACTIONS, AGENT_ACTIONS)
    target_classes = target_classes or TARGET_CLASSES

    for catalog in catalogs:
        for action_id, action in catalog.items():
            if action_id != action.id:
                raise ActionCatalogError(f"Catalog key {action_id} does not match action id {action.id}")
            if action.target_type not in TARGET_TYPES:
                raise ActionCatalogError(f"{action.id}: unknown target type {action.target_type}")
            for predicate in action.availability:
                if predicate.type not in PREDICATE_TYPES:
                    raise ActionCatalogError(f"{action.id}: unknown predicate type {predicate.type}")
                if predicate.comparison not in COMPARATORS:
                    raise ActionCatalogError(f"{action.id}: unknown comparator {predicate.comparison}")
                if predicate.filter and predicate.filter[1] not in COMPARATORS:
                    raise ActionCatalogError(f"{action.id}: unknown filter comparator {predicate.filter[1]}")
            for effect in action.effects + action.on_success:
                if effect.type not in EFFECT_TYPES:
                    raise ActionCatalogError(f"{action.id}: unknown effect type {effect.type}")
                binding = (_effect_target(action, effect), effect.method)
                if binding not in BOUND_METHODS:
                    raise ActionCatalogError(f"{action.id}: {binding[0]}.{binding[1]} is not a bound effect method")

    for member in EffectMethod:
        target_class = target_classes.get(member.target)
        if target_class is None:
            continue
        if not callable(getattr(target_class, member.method, None)):
            raise ActionCatalogError(f"{member.name}: {target_class.__name__} has no method {member.method}")


validate_action_catalog()


# =============================================================================
# EXECUTOR
# =============================================================================

@dataclass
class ActionContext:
    """Everything one action evaluation may look at."""
    world: Any
    faction: Any
    threat: Optional[Threat] = None
    region: Optional[Region] = None
    agent: Optional[Agent] = None


def resolve_property(subject, path: str):
    """Follow a dotted path over attributes or dict keys; enums resolve to their value."""
    value = subject
    for part in path.split("."):
        if value is None:
            return _MISSING
        if isinstance(value, dict):
            value = value.get(part, _MISSING)
        else:
            value = getattr(value, part, _MISSING)
        if value is _MISSING:
            return _MISSING
    if isinstance(value, Enum):
        return value.value
    return value


def get_action(action_id: str) -> Optional[ActionDescriptor]:
    return PLAYER_ACTIONS.get(action_id) or AGENT_ACTIONS.get(action_id)


def list_actions() -> dict:
    return {
        "player": [a.to_dict() for a in PLAYER_ACTIONS.values()],
        "agent": [a.to_dict() for a in AGENT_ACTIONS.values()],
    }


class ActionService:
    """Checks availability and executes catalog actions for a faction."""

    def __init__(self, narrative=None):
        self.narrative = narrative

    # ===== AVAILABILITY =====

    def _substitute(self, value, ctx: ActionContext):
        if value == PLAYER_TOKEN:
            return ctx.faction.id
        if isinstance(value, str) and value.startswith(f"{FACTION_TOKEN}."):
            resolved = resolve_property(ctx.faction, value[len(FACTION_TOKEN) + 1:])
            return None if resolved is _MISSING else resolved
        return value

    def _compare(self, actual, comparison: str, expected, ctx: ActionContext) -> bool:
        compare = COMPARATORS.get(comparison)
        if compare is None:
            logger.warning(f"Unknown comparator {comparison}")
            return False
        try:
            return bool(compare(actual, self._substitute(expected, ctx)))
        except TypeError as e:
            logger.warning(f"Cannot compare {actual!r} {comparison} {expected!r}: {e}")
            return False

    def _subject_for(self, predicate: Predicate, ctx: ActionContext):
        if predicate.type in ("threat_property", "selected_threat_property"):
            return ctx.threat
        if predicate.type in ("region_property", "region_has_buff"):
            return ctx.region
        if predicate.type == "agent_property":
            return ctx.agent
        return ctx.world

    def check_predicate(self, predicate: Predicate, ctx: ActionContext) -> bool:
        if predicate.type not in PREDICATE_TYPES:
            logger.warning(f"Unknown predicate type {predicate.type}")
            return False
        subject = self._subject_for(predicate, ctx)
        if subject is None:
            return False

        if predicate.type == "region_has_buff":
            expected = True if predicate.value is None else predicate.value
            return subject.has_buff(predicate.buff) == expected

        value = resolve_property(subject, predicate.property)
        if value is _MISSING:
            logger.warning(f"Property {predicate.property} not found for {predicate.type}")
            return False

        if predicate.type == "world_property_count":
            items = value.values() if isinstance(value, dict) else value
            if predicate.filter:
                prop, comparison, expected = predicate.filter
                items = [item for item in items
                         if self._compare(resolve_property(item, prop), comparison, expected, ctx)]
            return self._compare(len(list(items)), predicate.comparison, predicate.value, ctx)

        return self._compare(value, predicate.comparison, predicate.value, ctx)

    def is_action_available(self, action: ActionDescriptor, ctx: ActionContext) -> bool:
        """Affordable and every predicate holds; stops at the first failure."""
        if ctx.faction is None or not ctx.faction.can_afford(dict(action.resource_cost)):
            return False
        for predicate in action.availability:
            if not self.check_predicate(predicate, ctx):
                return False
        return True

    def get_available_actions(self, ctx: ActionContext, catalog=None) -> List[ActionDescriptor]:
        catalog = catalog if catalog is not None else PLAYER_ACTIONS
        return [a for a in catalog.values() if self.is_action_available(a, ctx)]

    # ===== EXECUTION =====

    def _param(self, param, action: ActionDescriptor, ctx: ActionContext):
        if param == FACTION_TOKEN:
            return ctx.faction
        if param == ACTION_TOKEN:
            return action
        if param == WORLD_TIME_TOKEN:
            return getattr(ctx.world, "time", 0.0)
        return param

    def _target_for(self, action: ActionDescriptor, effect: Effect, ctx: ActionContext):
        target_type = _effect_target(action, effect)
        return {
            "THREAT": ctx.threat,
            "REGION": ctx.region,
            "AGENT": ctx.agent,
            "WORLD": ctx.world,
        }.get(target_type)

    def apply_effects(self, effects, action: ActionDescriptor, ctx: ActionContext):
        for effect in effects:
            if effect.type not in EFFECT_TYPES:
                logger.warning(f"{action.id}: unknown effect type {effect.type}")
                continue
            target = self._target_for(action, effect, ctx)
            if target is None:
                logger.error(f"{action.id}: no target for effect {effect.method}")
                continue
            method = getattr(target, effect.method, None)
            if not callable(method):
                logger.error(f"{action.id}: {type(target).__name__} has no method {effect.method}")
                continue
            method(*[self._param(p, action, ctx) for p in effect.params])

    def execute_action(self, action, ctx: ActionContext) -> bool:
        """Re-check, spend, then apply effects in order."""
        if isinstance(action, str):
            descriptor = get_action(action)
            if descriptor is None:
                logger.error(f"Unknown action {action}")
                return False
            action = descriptor

        if not self.is_action_available(action, ctx):
            logger.info(f"Action {action.id} unavailable for {getattr(ctx.faction, 'id', None)}")
            return False
        if not ctx.faction.spend(dict(action.resource_cost)):
            return False

        self.apply_effects(action.effects, action, ctx)
        logger.info(f"Executed {action.id} for {ctx.faction.id}")
        if self.narrative is not None:
            self.narrative.log_event("ACTION_EXECUTED", {
                "actionId": action.id,
                "factionId": ctx.faction.id,
                "threatId": ctx.threat.id if ctx.threat else None,
                "regionId": ctx.region.id if ctx.region else None,
                "agentId": ctx.agent.id if ctx.agent else None,
            })
        return True
