"""
Per-domain threat update rules.

Each rule has the shape `(threat, dt, ctx) -> None` and may mutate only the
threat itself, plus whatever the narrow DomainContext lets it touch.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from logger import setup_logger
from threats import (
    Threat, ThreatDomain, ThreatType,
    BiologicalProperties, CyberProperties, EconomicProperties, EnvironmentalProperties,
    GeopoliticalProperties, InformationProperties, QuantumProperties, RadiologicalProperties,
    RoboticProperties, SpaceProperties, WMDProperties,
)

logger = setup_logger("domain_logic")

QUANTUM_EFFECTS = ["ENTANGLEMENT_DISRUPTION", "SUPERPOSITION_EXPLOIT", "QUANTUM_TUNNELING", "DECOHERENCE_CASCADE"]
ROBOT_FAILURE_MODES = ["GOAL_DRIFT", "ETHICS_OVERRIDE"]
ROBOT_EMERGENT_BEHAVIOR = "CoordinatedAssault"
COLLAPSED_COHERENCE = -1.0
KARMAN_LINE_KM = 100.0
WMD_FALLOUT_THRESHOLD = 0.5


@dataclass
class DomainContext:
    """Capabilities handed to domain rules for one tick."""
    region_for: Callable  # (threat) -> Optional[Region]
    log_event: Callable  # (event_type, data) -> None
    damage_region: Callable  # (region, stability, economy) -> None
    drain_owner_funds: Callable  # (region, amount) -> float
    spawn_threat: Callable  # (domain, type, severity, lat, lon, properties) -> Threat
    rng: random.Random = field(default_factory=random.Random)


# =============================================================================
# DOMAIN RULES
# =============================================================================

def update_quantum(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, QuantumProperties):
        return
    if props.collapsed:
        return

    props.coherence_time -= 0.01 * threat.severity * dt
    threat.touch()

    if props.coherence_time < 1:
        threat.set_severity(threat.severity * 0.5)
        threat.set_visibility(threat.visibility * 0.8)
        props.coherence_time = COLLAPSED_COHERENCE
        props.collapsed = True
        effect = ctx.rng.choice(QUANTUM_EFFECTS)
        props.quantum_effects.append(effect)
        ctx.log_event("QUANTUM_DECOHERENCE", {
            "threatId": threat.id,
            "severity": round(threat.severity, 2),
            "effect": effect,
        })


def update_robot(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, RoboticProperties) or not props.adaptation_rate:
        return

    gain = props.adaptation_rate * threat.severity * 0.01
    if "DEEP_LEARNING" in props.learning_algorithms:
        gain *= 1.5
    props.collective_intelligence = min(1.0, props.collective_intelligence + gain * dt)
    threat.touch()

    if props.collective_intelligence > 0.5:
        old_level = props.decision_level
        props.decision_level = min(1.0, old_level + 0.005 * dt)
        if old_level < 0.7 <= props.decision_level:
            failure = ctx.rng.choice(ROBOT_FAILURE_MODES)
            if failure not in props.failure_modes:
                props.failure_modes.append(failure)
                ctx.log_event("ROBOTIC_FAILURE_MODE", {"threatId": threat.id, "failure": failure})

    if props.collective_intelligence > 0.7 and ROBOT_EMERGENT_BEHAVIOR not in props.emergent_behaviors:
        props.emergent_behaviors.append(ROBOT_EMERGENT_BEHAVIOR)
        ctx.log_event("ROBOTIC_EMERGENCE", {"threatId": threat.id, "behavior": ROBOT_EMERGENT_BEHAVIOR})


def update_bio(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, BiologicalProperties):
        return
    region = ctx.region_for(threat)

    props.lethality = min(1.0, props.lethality + 0.001 * dt)
    if region is not None and region.has_buff("QUARANTINE"):
        props.infectivity = max(0.0, props.infectivity - 0.01 * dt)
    else:
        density = min(1.0, region.population.count / 1e9) if region is not None else 0.0
        props.infectivity = min(1.0, props.infectivity + 0.005 * density * dt)
    threat.touch()

    threat.set_severity(threat.severity + props.lethality * props.infectivity * 0.01 * dt)


def update_cyber(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, CyberProperties):
        return
    region = ctx.region_for(threat)

    props.stealth = max(0.0, props.stealth - 0.01 * dt)
    threat.touch()
    if threat.visibility < 1.0 - props.stealth:
        threat.set_visibility(1.0 - props.stealth)

    if region is not None and region.has_buff("NETWORK_SCRUB"):
        threat.set_severity(threat.severity - 0.01 * dt)
    else:
        threat.set_severity(threat.severity + 0.002 * dt)

    if threat.sub_type == "RANSOMWARE" and region is not None:
        ctx.drain_owner_funds(region, threat.severity * 10 * dt)


def update_info(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, InformationProperties):
        return
    region = ctx.region_for(threat)
    if region is not None and region.has_buff("COUNTER_PROPAGANDA"):
        threat.set_spread_rate(threat.spread_rate - 0.02 * dt)
    else:
        threat.set_spread_rate(threat.spread_rate + props.polarization_factor * 0.01 * dt)


def update_econ(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, EconomicProperties):
        return
    region = ctx.region_for(threat)
    economy = region.economy if region is not None else 1.0
    props.contagion_risk = min(1.0, props.contagion_risk + 0.005 * (2.0 - economy) * dt)
    threat.touch()


def update_geo(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, GeopoliticalProperties) or threat.has_had_initial_impact:
        return
    threat.has_had_initial_impact = True
    region = ctx.region_for(threat)
    if region is not None:
        ctx.damage_region(region, 0.3 * props.magnitude, 0.2 * props.magnitude)
    threat.mark_mitigated()
    ctx.log_event("GEO_EVENT", {
        "threatId": threat.id,
        "magnitude": props.magnitude,
        "region": region.name if region else None,
    })


def update_wmd(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, WMDProperties) or threat.has_had_initial_impact:
        return
    threat.has_had_initial_impact = True
    region = ctx.region_for(threat)
    scale = min(1.0, props.yield_kt / 50.0)
    if region is not None:
        ctx.damage_region(region, 0.5 * scale, 0.4 * scale)
    ctx.log_event("WMD_DETONATION", {
        "threatId": threat.id,
        "region": region.name if region else "an unknown region",
        "yield": props.yield_kt,
    })

    if props.fallout_potential > WMD_FALLOUT_THRESHOLD:
        ctx.spawn_threat(
            ThreatDomain.RAD, ThreatType.REAL, props.fallout_potential,
            threat.lat, threat.lon,
            RadiologicalProperties(contamination=props.fallout_potential),
        )
    threat.mark_mitigated()


def update_rad(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, RadiologicalProperties) or props.half_life <= 0:
        return
    decay = props.contamination * (math.log(2) / props.half_life) * dt
    props.contamination = max(0.0, props.contamination - decay)
    threat.set_severity(props.contamination)


def update_space(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, SpaceProperties):
        return
    debris_density = (props.orbital_debris_potential or 0.1) * 0.01
    props.altitude -= debris_density * dt
    threat.touch()
    if props.altitude < KARMAN_LINE_KM and not threat.is_mitigated:
        threat.mark_mitigated()
        ctx.log_event("SPACE_DEORBIT", {"threatId": threat.id})


def update_env(threat: Threat, dt: float, ctx: DomainContext):
    props = threat.properties
    if not isinstance(props, EnvironmentalProperties):
        return
    props.area_of_effect = min(1.0, props.area_of_effect + threat.severity * 0.001 * dt)
    threat.touch()


DOMAIN_LOGIC: Dict[ThreatDomain, Callable] = {
    ThreatDomain.QUANTUM: update_quantum,
    ThreatDomain.ROBOT: update_robot,
    ThreatDomain.BIO: update_bio,
    ThreatDomain.CYBER: update_cyber,
    ThreatDomain.INFO: update_info,
    ThreatDomain.ECON: update_econ,
    ThreatDomain.GEO: update_geo,
    ThreatDomain.WMD: update_wmd,
    ThreatDomain.RAD: update_rad,
    ThreatDomain.SPACE: update_space,
    ThreatDomain.ENV: update_env,
}


def update_threat(threat: Threat, dt: float, ctx: DomainContext) -> None:
    """Run the domain rule for a threat; domains without a rule are left alone."""
    rule: Optional[Callable] = DOMAIN_LOGIC.get(threat.domain)
    if rule is None or threat.properties is None:
        return
    rule(threat, dt, ctx)
