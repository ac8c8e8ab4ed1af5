"""
Threats - domain-tagged hazards with clamped state and a per-domain property bag.

Every tracked field changes through an explicit mutator that clamps the value
and marks the threat dirty for the next delta extraction.
"""

import random
from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from typing import Dict, List, Optional, Tuple

from logger import setup_logger

logger = setup_logger("threats")


class ThreatDomain(Enum):
    CYBER = "CYBER"
    BIO = "BIO"
    GEO = "GEO"
    ENV = "ENV"
    INFO = "INFO"
    SPACE = "SPACE"
    WMD = "WMD"
    ECON = "ECON"
    QUANTUM = "QUANTUM"
    RAD = "RAD"
    ROBOT = "ROBOT"


class ThreatType(Enum):
    REAL = "REAL"
    FAKE = "FAKE"
    UNKNOWN = "UNKNOWN"


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


# =============================================================================
# DOMAIN PROPERTY BAGS
# =============================================================================

@dataclass
class BiologicalProperties:
    lethality: float = 0.1
    infectivity: float = 0.2


@dataclass
class CyberProperties:
    stealth: float = 0.8


@dataclass
class GeopoliticalProperties:
    magnitude: float = 0.5


@dataclass
class EnvironmentalProperties:
    area_of_effect: float = 0.1


@dataclass
class InformationProperties:
    polarization_factor: float = 0.3
    deepfake_quality: float = 0.2


@dataclass
class SpaceProperties:
    altitude: float = 400.0  # km, nominal LEO
    orbital_debris_potential: float = 0.1


@dataclass
class WMDProperties:
    yield_kt: float = 15.0
    fallout_potential: float = 0.3


@dataclass
class EconomicProperties:
    market_crash_potential: float = 0.2
    contagion_risk: float = 0.0


@dataclass
class QuantumProperties:
    coherence_time: float = 7.5
    entanglement_level: float = 0.5
    quantum_effects: List[str] = field(default_factory=list)
    collapsed: bool = False


@dataclass
class RadiologicalProperties:
    contamination: float = 0.5
    half_life: float = 300.0  # seconds


@dataclass
class RoboticProperties:
    adaptation_rate: float = 0.25
    collective_intelligence: float = 0.1
    decision_level: float = 0.0
    learning_algorithms: List[str] = field(default_factory=list)
    failure_modes: List[str] = field(default_factory=list)
    emergent_behaviors: List[str] = field(default_factory=list)


PROPERTY_TYPES = {
    ThreatDomain.BIO: BiologicalProperties,
    ThreatDomain.CYBER: CyberProperties,
    ThreatDomain.GEO: GeopoliticalProperties,
    ThreatDomain.ENV: EnvironmentalProperties,
    ThreatDomain.INFO: InformationProperties,
    ThreatDomain.SPACE: SpaceProperties,
    ThreatDomain.WMD: WMDProperties,
    ThreatDomain.ECON: EconomicProperties,
    ThreatDomain.QUANTUM: QuantumProperties,
    ThreatDomain.RAD: RadiologicalProperties,
    ThreatDomain.ROBOT: RoboticProperties,
}


def build_properties(domain: ThreatDomain, data: Optional[dict] = None):
    """Build the property bag for a domain, ignoring unknown keys."""
    prop_type = PROPERTY_TYPES.get(domain)
    if prop_type is None:
        return None
    data = data or {}
    known = {f.name for f in fields(prop_type)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown {domain.value} properties: {sorted(unknown)}")
    return prop_type(**{k: v for k, v in data.items() if k in known})


def random_properties(domain: ThreatDomain, rng: random.Random):
    """Randomized starting bag for a freshly generated threat."""
    if domain == ThreatDomain.QUANTUM:
        return QuantumProperties(coherence_time=5 + rng.random() * 5, entanglement_level=rng.random())
    if domain == ThreatDomain.ROBOT:
        algorithms = ["DEEP_LEARNING"] if rng.random() < 0.3 else ["REINFORCEMENT"]
        return RoboticProperties(adaptation_rate=rng.random() * 0.5,
                                 collective_intelligence=rng.random() * 0.2,
                                 learning_algorithms=algorithms)
    if domain == ThreatDomain.SPACE:
        return SpaceProperties(orbital_debris_potential=rng.random())
    if domain == ThreatDomain.INFO:
        return InformationProperties(polarization_factor=rng.random(), deepfake_quality=rng.random())
    if domain == ThreatDomain.ECON:
        return EconomicProperties(market_crash_potential=rng.random())
    if domain == ThreatDomain.GEO:
        return GeopoliticalProperties(magnitude=0.2 + rng.random() * 0.6)
    if domain == ThreatDomain.WMD:
        return WMDProperties(yield_kt=5 + rng.random() * 45, fallout_potential=rng.random())
    if domain == ThreatDomain.BIO:
        return BiologicalProperties(lethality=rng.random() * 0.2, infectivity=0.1 + rng.random() * 0.3)
    if domain == ThreatDomain.RAD:
        return RadiologicalProperties(contamination=0.2 + rng.random() * 0.6)
    return build_properties(domain)


# =============================================================================
# THREAT
# =============================================================================

@dataclass
class Threat:
    """A hazard in one domain. Clamped fields are written through the set_* mutators."""
    id: str
    domain: ThreatDomain
    type: ThreatType
    severity: float
    lat: float = 0.0
    lon: float = 0.0
    sub_type: Optional[str] = None
    visibility: float = 0.1
    investigation_progress: float = 0.0
    spread_rate: float = 0.0
    properties: Optional[object] = None
    is_mitigated: bool = False
    was_mitigated_by_player: bool = False
    mitigated_by: Optional[str] = None
    has_had_initial_impact: bool = False
    is_spreading: bool = False
    spread_timer: float = 0.0
    spread_interval: float = 30.0
    is_from_ai: bool = False
    dirty: bool = field(default=True, compare=False)

    def __post_init__(self):
        if isinstance(self.domain, str):
            self.domain = ThreatDomain(self.domain)
        if isinstance(self.type, str):
            self.type = ThreatType(self.type)
        self.severity = clamp01(self.severity)
        self.visibility = clamp01(self.visibility)
        self.investigation_progress = clamp01(self.investigation_progress)
        self.spread_rate = clamp01(self.spread_rate)
        if isinstance(self.properties, dict):
            self.properties = build_properties(self.domain, self.properties)
        expected = PROPERTY_TYPES.get(self.domain)
        if self.properties is not None and expected and not isinstance(self.properties, expected):
            raise ValueError(f"{type(self.properties).__name__} does not belong to domain {self.domain.value}")

    @property
    def position(self) -> Tuple[float, float]:
        return self.lat, self.lon

    # ===== MUTATORS =====

    def touch(self):
        """Mark dirty after a property-bag change."""
        self.dirty = True

    def set_severity(self, value: float):
        self.severity = clamp01(value)
        self.dirty = True

    def set_visibility(self, value: float):
        self.visibility = clamp01(value)
        self.dirty = True

    def set_spread_rate(self, value: float):
        self.spread_rate = clamp01(value)
        self.dirty = True

    def set_investigation_progress(self, value: float):
        self.investigation_progress = clamp01(value)
        self.dirty = True

    def mark_mitigated(self, faction_id: str = None):
        if self.is_mitigated:
            return
        self.is_mitigated = True
        if faction_id:
            self.mitigated_by = faction_id
            self.was_mitigated_by_player = True
        self.dirty = True

    # ===== PLAYER-FACING OPERATIONS =====

    def investigate(self, faction=None) -> bool:
        """Advance investigation; a fully exposed hoax ends there."""
        self.set_investigation_progress(self.investigation_progress + 0.25)
        self.set_visibility(self.visibility + 0.1)
        if self.investigation_progress >= 1.0 and self.type == ThreatType.FAKE:
            self.mark_mitigated(getattr(faction, "id", None))
            logger.info(f"Threat {self.id} exposed as FAKE")
        return True

    def mitigate(self, faction=None) -> bool:
        if self.investigation_progress < 1.0 or self.type != ThreatType.REAL:
            logger.warning(f"Threat {self.id} is not eligible for mitigation")
            return False
        self.mark_mitigated(getattr(faction, "id", None))
        logger.info(f"Threat {self.id} mitigated by {getattr(faction, 'id', 'unknown')}")
        return True

    def deploy_counter_intel(self, faction=None) -> bool:
        self.set_spread_rate(self.spread_rate - 0.2)
        return True

    def stabilize_markets(self, faction=None) -> bool:
        self.set_severity(self.severity - 0.2)
        return True

    def sabotage_robotics(self, faction=None) -> bool:
        if not isinstance(self.properties, RoboticProperties):
            return False
        props = self.properties
        props.collective_intelligence = max(0.0, props.collective_intelligence - 0.3)
        self.touch()
        return True

    def induce_decoherence(self, faction=None) -> bool:
        if not isinstance(self.properties, QuantumProperties):
            return False
        self.properties.coherence_time -= 2.0
        self.touch()
        return True

    # ===== SERIALIZATION =====

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "domain": self.domain.value,
            "type": self.type.value,
            "sub_type": self.sub_type,
            "lat": self.lat,
            "lon": self.lon,
            "severity": self.severity,
            "visibility": self.visibility,
            "investigation_progress": self.investigation_progress,
            "spread_rate": self.spread_rate,
            "properties": asdict(self.properties) if self.properties is not None else None,
            "is_mitigated": self.is_mitigated,
            "was_mitigated_by_player": self.was_mitigated_by_player,
            "has_had_initial_impact": self.has_had_initial_impact,
            "is_spreading": self.is_spreading,
            "is_from_ai": self.is_from_ai,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Threat":
        domain = ThreatDomain(data["domain"])
        return cls(
            id=data["id"],
            domain=domain,
            type=ThreatType(data.get("type", "UNKNOWN")),
            severity=data.get("severity", 0.1),
            lat=data.get("lat", 0.0),
            lon=data.get("lon", 0.0),
            sub_type=data.get("sub_type"),
            visibility=data.get("visibility", 0.1),
            investigation_progress=data.get("investigation_progress", 0.0),
            spread_rate=data.get("spread_rate", 0.0),
            properties=build_properties(domain, data.get("properties")),
        )
