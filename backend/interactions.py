"""
Cross-domain interaction matrix.

Keys are ordered domain pairs; a lookup tries both orientations and hands the
threats to the effect in key order. Rates are computed from the values before
the transfer and scaled by dt.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from threats import (
    Threat, ThreatDomain,
    InformationProperties, QuantumProperties, RoboticProperties,
)

D = ThreatDomain


@dataclass(frozen=True)
class Interaction:
    effect: Callable  # (threat_a, threat_b, dt) -> None, ordered as the key
    narrative_event: Optional[str] = None


def _cyber_rad(cyber: Threat, rad: Threat, dt: float):
    cyber_sev, rad_sev = cyber.severity, rad.severity
    rad.set_severity(rad_sev + 0.001 * cyber_sev * dt)
    cyber.set_severity(cyber_sev + 0.0005 * rad_sev * dt)


def _econ_info(econ: Threat, info: Threat, dt: float):
    econ_sev, info_sev = econ.severity, info.severity
    info.set_spread_rate(info.spread_rate + 0.002 * econ_sev * dt)
    econ.set_severity(econ_sev + 0.001 * info_sev * dt)


def _quantum_robot(quantum: Threat, robot: Threat, dt: float):
    q_props, r_props = quantum.properties, robot.properties
    if not isinstance(q_props, QuantumProperties) or not isinstance(r_props, RoboticProperties):
        return
    if q_props.entanglement_level > 0.7:
        r_props.adaptation_rate = (r_props.adaptation_rate or 1.0) * (1 + 0.5 * dt / 60)
        r_props.collective_intelligence = min(
            1.0, r_props.collective_intelligence + q_props.entanglement_level * 0.3 * dt / 60)
        robot.touch()


def _cyber_robot(cyber: Threat, robot: Threat, dt: float):
    r_props = robot.properties
    if not isinstance(r_props, RoboticProperties):
        return
    if cyber.severity > 0.6:
        r_props.decision_level = min(1.0, r_props.decision_level + (cyber.severity - 0.6) * 0.01 * dt)
        robot.touch()


def _quantum_info(quantum: Threat, info: Threat, dt: float):
    q_props, i_props = quantum.properties, info.properties
    if not isinstance(q_props, QuantumProperties) or not isinstance(i_props, InformationProperties):
        return
    if q_props.coherence_time > 3:
        i_props.deepfake_quality = min(1.0, i_props.deepfake_quality + q_props.coherence_time * 0.005 * dt)
        info.touch()


def _bio_cyber(bio: Threat, cyber: Threat, dt: float):
    cyber.set_severity(cyber.severity + 0.0015 * bio.severity * dt)


def _robot_info(robot: Threat, info: Threat, dt: float):
    info.set_spread_rate(info.spread_rate + 0.0025 * robot.severity * dt)


def _rad_env(rad: Threat, env: Threat, dt: float):
    rad.set_severity(rad.severity + 0.002 * env.severity * dt)
    rad.set_spread_rate(rad.spread_rate + 0.003 * env.severity * dt)


CROSS_DOMAIN_INTERACTIONS: Dict[Tuple[ThreatDomain, ThreatDomain], Interaction] = {
    (D.CYBER, D.RAD): Interaction(_cyber_rad, "CYBER_RAD_SYNERGY"),
    (D.ECON, D.INFO): Interaction(_econ_info, "ECON_INFO_SYNERGY"),
    (D.QUANTUM, D.ROBOT): Interaction(_quantum_robot, "QUANTUM_ROBOTIC_ENHANCEMENT"),
    (D.CYBER, D.ROBOT): Interaction(_cyber_robot, "CYBER_ROBOT_HACK"),
    (D.QUANTUM, D.INFO): Interaction(_quantum_info, "QUANTUM_DISINFORMATION_BREAKTHROUGH"),
    (D.BIO, D.CYBER): Interaction(_bio_cyber, "BIO_CYBER_SYNERGY"),
    (D.ROBOT, D.INFO): Interaction(_robot_info, "ROBOT_INFO_SYNERGY"),
    (D.RAD, D.ENV): Interaction(_rad_env, "RAD_ENV_SYNERGY"),
}


def find_interaction(threat_a: Threat, threat_b: Threat) -> Optional[Tuple[Interaction, Threat, Threat]]:
    """Look up the pair in both orientations.

    Returns the interaction with the two threats ordered as its key, or None.
    """
    interaction = CROSS_DOMAIN_INTERACTIONS.get((threat_a.domain, threat_b.domain))
    if interaction is not None:
        return interaction, threat_a, threat_b
    interaction = CROSS_DOMAIN_INTERACTIONS.get((threat_b.domain, threat_a.domain))
    if interaction is not None:
        return interaction, threat_b, threat_a
    return None


def apply_interaction(threat_a: Threat, threat_b: Threat, dt: float) -> Optional[str]:
    """Apply the pair's interaction if one exists; returns its narrative event name."""
    if threat_a is threat_b:
        return None
    found = find_interaction(threat_a, threat_b)
    if found is None:
        return None
    interaction, first, second = found
    interaction.effect(first, second, dt)
    return interaction.narrative_event
