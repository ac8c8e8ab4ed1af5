"""
Threat manager - owns the live threat set and runs the per-tick threat pipeline:
domain update, region damage, removal sweep, BIO spreading, cross-domain
interactions and radiological plumes.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from domain_logic import DomainContext, update_threat
from interactions import apply_interaction
from logger import setup_logger
from regions import Region, RegionManager, lat_lon_to_vector
from sync import DeltaTracker
from threats import Threat, ThreatDomain, ThreatType, build_properties, random_properties

logger = setup_logger("threat_manager")

# Share of severity that turns into economic damage, per domain
ECONOMIC_DAMAGE_MULTIPLIERS = {
    ThreatDomain.ECON: 1.0,
    ThreatDomain.CYBER: 0.5,
    ThreatDomain.GEO: 0.5,
    ThreatDomain.WMD: 0.5,
    ThreatDomain.BIO: 0.3,
    ThreatDomain.ENV: 0.3,
    ThreatDomain.RAD: 0.3,
}
DEFAULT_ECONOMIC_DAMAGE_MULTIPLIER = 0.1
FORTIFIED_GEO_DAMAGE_MULTIPLIER = 0.2
SENSOR_VISIBILITY_RATE = 0.1
BIO_SPREAD_SEVERITY_THRESHOLD = 0.7
BIO_SPAWN_SEVERITY = 0.1

# AI goal -> candidate domains for generated threats
AI_GOAL_DOMAINS = {
    "destabilize_region": [ThreatDomain.GEO, ThreatDomain.INFO, ThreatDomain.BIO],
    "disrupt_economy": [ThreatDomain.ECON, ThreatDomain.CYBER],
    "tech_supremacy": [ThreatDomain.QUANTUM, ThreatDomain.ROBOT],
    "counter_player": [ThreatDomain.CYBER, ThreatDomain.INFO, ThreatDomain.WMD],
}


def economic_damage(threat: Threat) -> float:
    return threat.severity * ECONOMIC_DAMAGE_MULTIPLIERS.get(threat.domain, DEFAULT_ECONOMIC_DAMAGE_MULTIPLIER)


# =============================================================================
# RADIOLOGICAL PLUME
# =============================================================================

@dataclass
class PlumeParticle:
    position: List[float]
    age: float = 0.0


@dataclass
class RadiologicalPlume:
    """Particle cloud drifting downwind of a RAD threat."""
    threat_id: str
    origin: List[float]
    particle_count: int = 100
    max_age: float = 10.0
    particles: List[PlumeParticle] = field(default_factory=list)

    def update(self, dt: float, wind_speed: float, wind_direction: float, rng: random.Random):
        if len(self.particles) < self.particle_count:
            self.particles.append(PlumeParticle(position=list(self.origin)))

        wind_x = math.cos(math.radians(wind_direction)) * wind_speed * dt * 0.01
        wind_z = math.sin(math.radians(wind_direction)) * wind_speed * dt * 0.01
        for particle in self.particles:
            particle.age += dt
            particle.position[0] += wind_x + (rng.random() - 0.5) * 0.1
            particle.position[1] += (rng.random() - 0.5) * 0.1
            particle.position[2] += wind_z + (rng.random() - 0.5) * 0.1
        self.particles = [p for p in self.particles if p.age <= self.max_age]

    def to_dict(self) -> dict:
        return {
            "threat_id": self.threat_id,
            "particles": [p.position for p in self.particles],
        }


# =============================================================================
# THREAT MANAGER
# =============================================================================

class ThreatManager:
    """Live threat set plus spreading, contagion and interaction sweeps."""

    def __init__(self, region_manager: RegionManager, narrative, rng: random.Random = None,
                 casual_mode: bool = True, spread_interval: float = 30.0,
                 tracker: DeltaTracker = None):
        self.region_manager = region_manager
        self.narrative = narrative
        self.rng = rng or random.Random()
        self.casual_mode = casual_mode
        self.spread_interval = spread_interval
        self.tracker = tracker or DeltaTracker("threat")
        self.threats: Dict[str, Threat] = {}
        self.plumes: Dict[str, RadiologicalPlume] = {}
        self.player_mitigations = 0
        self._next_id = 0
        self._region_cache: Dict[str, Optional[str]] = {}
        self._announced_pairs: Set[Tuple[str, str]] = set()

    # ===== LOOKUP =====

    def get(self, threat_id: str) -> Optional[Threat]:
        return self.threats.get(threat_id)

    def region_for(self, threat: Threat) -> Optional[Region]:
        if threat.id not in self._region_cache:
            region = self.region_manager.region_for_position(threat.lat, threat.lon)
            self._region_cache[threat.id] = region.id if region else None
        region_id = self._region_cache[threat.id]
        return self.region_manager.get(region_id) if region_id else None

    def threats_in_region(self, region_id: str) -> List[Threat]:
        return [t for t in self.threats.values() if self._region_id(t) == region_id]

    def _region_id(self, threat: Threat) -> Optional[str]:
        region = self.region_for(threat)
        return region.id if region else None

    def total_severity(self, domain: ThreatDomain) -> float:
        return sum(t.severity for t in self.threats.values() if t.domain == domain)

    def threatened_region_ids(self) -> Set[str]:
        return {rid for rid in (self._region_id(t) for t in self.threats.values()) if rid}

    # ===== CREATION =====

    def _allocate_id(self) -> str:
        threat_id = f"threat-{self._next_id}"
        self._next_id += 1
        return threat_id

    def add_threat(self, threat: Threat) -> Threat:
        if threat.id in self.threats:
            raise ValueError(f"Duplicate threat id {threat.id}")
        if not threat.spread_interval:
            threat.spread_interval = self.spread_interval
        self.threats[threat.id] = threat
        self.tracker.mark_new(threat.id)
        if threat.domain == ThreatDomain.RAD:
            self.plumes[threat.id] = RadiologicalPlume(threat.id, lat_lon_to_vector(threat.lat, threat.lon))
        logger.debug(f"Added threat {threat.id} ({threat.domain.value}, severity={threat.severity:.2f})")
        return threat

    def create_threat(self, domain: ThreatDomain, threat_type: ThreatType, severity: float,
                      lat: float, lon: float, properties=None, sub_type: str = None,
                      is_from_ai: bool = False) -> Threat:
        if properties is None or isinstance(properties, dict):
            properties = build_properties(domain, properties)
        threat = Threat(
            id=self._allocate_id(),
            domain=domain,
            type=threat_type,
            severity=severity,
            lat=lat,
            lon=lon,
            sub_type=sub_type,
            properties=properties,
            spread_interval=self.spread_interval,
            is_from_ai=is_from_ai,
        )
        return self.add_threat(threat)

    def _position_near(self, region: Region) -> Tuple[float, float]:
        """A random point inside the inner half of a region."""
        distance = self.rng.random() * region.radius * 0.5
        bearing = self.rng.random() * 2 * math.pi
        d_lat = distance / 111.0 * math.cos(bearing)
        cos_lat = max(0.1, math.cos(math.radians(region.lat)))
        d_lon = distance / (111.0 * cos_lat) * math.sin(bearing)
        lat = max(-89.9, min(89.9, region.lat + d_lat))
        lon = (region.lon + d_lon + 180) % 360 - 180
        return lat, lon

    def _choose_ai_target(self, goal: Optional[str], world) -> Tuple[ThreatDomain, Region]:
        regions = self.region_manager.all()
        if goal == "destabilize_region":
            return self.rng.choice(AI_GOAL_DOMAINS[goal]), min(regions, key=lambda r: r.stability)
        if goal == "disrupt_economy":
            return self.rng.choice(AI_GOAL_DOMAINS[goal]), max(regions, key=lambda r: r.economy)
        if goal == "tech_supremacy":
            return self.rng.choice(AI_GOAL_DOMAINS[goal]), self.rng.choice(regions)
        if goal == "counter_player":
            domain = self.rng.choice(AI_GOAL_DOMAINS[goal])
            player_id = world.faction_manager.player_faction.id
            ai_id = world.faction_manager.ai_faction.id
            player_regions = self.region_manager.owned_by(player_id)
            if player_regions:
                frontier = [r for r in player_regions
                            if any(n.owner == ai_id for n in self.region_manager.neighbors(r))]
                return domain, self.rng.choice(frontier or player_regions)
            return domain, max(regions, key=lambda r: r.stability)
        return self.rng.choice(list(ThreatDomain)), self.rng.choice(regions)

    def generate_threat(self, options: dict, world) -> Optional[Threat]:
        """Create a threat from an AI decision or a debug request.

        Costs are the caller's business; this only builds and registers.
        """
        options = options or {}
        is_from_ai = bool(options.get("is_from_ai"))
        sub_type = options.get("sub_type")

        if is_from_ai:
            if not self.region_manager.regions:
                logger.error("Cannot generate AI threat: no regions loaded")
                return None
            ai_manager = world.ai_manager
            if ai_manager.ai_goal is None:
                ai_manager.select_ai_goal()
            domain, region = self._choose_ai_target(ai_manager.ai_goal, world)
            if options.get("domain"):
                domain = ThreatDomain(options["domain"])
            threat_type = ThreatType(options.get("type", "REAL"))
            lat, lon = self._position_near(region)
            severity = (self.rng.random() * 0.2 + 0.1) if self.casual_mode else (self.rng.random() * 0.4 + 0.1)
            properties = random_properties(domain, self.rng)
        else:
            domain = ThreatDomain(options["domain"])
            threat_type = ThreatType(options.get("type", "REAL"))
            severity = float(options.get("severity", 0.3))
            lat = float(options.get("lat", 0.0))
            lon = float(options.get("lon", 0.0))
            properties = options.get("properties")
            if properties is None:
                properties = random_properties(domain, self.rng)

        if domain == ThreatDomain.BIO and sub_type is None and self.rng.random() < 0.1:
            sub_type = "DISEASE_X"
            severity = 0.5

        threat = self.create_threat(domain, threat_type, severity, lat, lon,
                                    properties=properties, sub_type=sub_type, is_from_ai=is_from_ai)
        self.narrative.log_event("THREAT_GENERATED", {
            "threatId": threat.id,
            "domain": threat.domain.value,
            "type": threat.type.value,
            "lat": threat.lat,
            "lon": threat.lon,
            "isFromAI": is_from_ai,
        })
        logger.info(f"Generated {threat.domain.value} threat {threat.id} (ai={is_from_ai}, severity={threat.severity:.2f})")
        return threat

    # ===== PER-TICK PIPELINE =====

    def _domain_context(self, world) -> DomainContext:
        def drain_owner_funds(region: Region, amount: float) -> float:
            owner = world.faction_manager.get(region.owner)
            return owner.drain("funds", amount) if owner else 0.0

        def spawn_threat(domain, threat_type, severity, lat, lon, properties=None):
            threat = self.create_threat(domain, threat_type, severity, lat, lon, properties=properties)
            self.narrative.log_event("THREAT_SPAWNED", {
                "threatId": threat.id,
                "domain": threat.domain.value,
                "lat": lat,
                "lon": lon,
            })
            return threat

        return DomainContext(
            region_for=self.region_for,
            log_event=self.narrative.log_event,
            damage_region=lambda region, stability, economy: region.apply_damage(stability, economy),
            drain_owner_funds=drain_owner_funds,
            spawn_threat=spawn_threat,
            rng=self.rng,
        )

    def update(self, dt: float, world):
        ctx = self._domain_context(world)
        to_remove: List[Threat] = []

        for threat in list(self.threats.values()):
            update_threat(threat, dt, ctx)

            region = self.region_for(threat)
            if region is not None and world.has_building(region.id, "SENSOR"):
                threat.set_visibility(threat.visibility + SENSOR_VISIBILITY_RATE * dt)

            if threat.is_mitigated:
                to_remove.append(threat)
                continue

            if region is not None:
                self._apply_region_damage(threat, region, dt)
                if threat.domain == ThreatDomain.INFO:
                    self._update_misinformation_impact(threat, region, dt)
                if threat.domain == ThreatDomain.ECON:
                    self._propagate_financial_contagion(threat, dt, world.global_metrics["economy"])

        # threats mitigated by commands earlier in the tick are swept too
        for threat in self.threats.values():
            if threat.is_mitigated and threat not in to_remove:
                to_remove.append(threat)
        for threat in to_remove:
            self.remove_threat(threat)

        self._handle_spreading(dt)
        self._handle_cross_domain_interactions(dt)
        self._update_plumes(dt)

    def _apply_region_damage(self, threat: Threat, region: Region, dt: float):
        multiplier = 1.0
        if threat.domain == ThreatDomain.GEO and region.has_buff("FORTIFIED"):
            multiplier = FORTIFIED_GEO_DAMAGE_MULTIPLIER
        region.apply_damage(
            stability=threat.severity * 0.001 * dt * multiplier,
            economy=economic_damage(threat) * 0.001 * dt * multiplier,
        )

    def _update_misinformation_impact(self, threat: Threat, region: Region, dt: float):
        props = threat.properties
        if props is None:
            return
        polarization = props.polarization_factor
        deepfake = props.deepfake_quality
        vulnerability = (1 - region.population.trust) * (1 - region.education)
        threat.set_spread_rate(threat.spread_rate + (0.4 * polarization + 0.3 * deepfake + 0.3 * vulnerability) * (dt / 10))
        trust_decay = (polarization * 0.1 + deepfake * 0.2) * threat.severity * (1 - region.education) * (dt / 10)
        if trust_decay:
            region.set_trust(region.population.trust - trust_decay)

    def _propagate_financial_contagion(self, threat: Threat, dt: float, market_index: float):
        props = threat.properties
        if props is None:
            return
        network_effect = 1 + market_index * 0.2
        increase = threat.severity * props.market_crash_potential * network_effect * (dt / 10)
        threat.set_severity(threat.severity + increase)

    def remove_threat(self, threat: Threat):
        if self.threats.pop(threat.id, None) is None:
            return
        self.plumes.pop(threat.id, None)
        self.tracker.mark_removed(threat.id)
        region = self.region_for(threat)
        self._region_cache.pop(threat.id, None)
        self._announced_pairs = {pair for pair in self._announced_pairs if threat.id not in pair}

        if threat.was_mitigated_by_player:
            self.player_mitigations += 1
            self.narrative.log_event("THREAT_MITIGATED", {
                "threatId": threat.id,
                "factionId": threat.mitigated_by,
                "domain": threat.domain.value,
                "regionName": region.name if region else None,
            })
        logger.info(f"Removed threat {threat.id} ({threat.domain.value})")

    def _handle_spreading(self, dt: float):
        for threat in list(self.threats.values()):
            if (threat.domain == ThreatDomain.BIO and threat.severity > BIO_SPREAD_SEVERITY_THRESHOLD
                    and not threat.is_spreading):
                threat.is_spreading = True
                threat.spread_timer = 0.0
                threat.touch()

            if not threat.is_spreading:
                continue
            threat.spread_timer += dt
            if threat.spread_timer < threat.spread_interval:
                continue

            source = self.region_for(threat)
            if source is not None:
                infected = {self._region_id(t) for t in self.threats.values() if t.domain == ThreatDomain.BIO}
                targets = [r for r in self.region_manager.neighbors(source) if r.id not in infected]
                if targets:
                    target = targets[0]
                    spawned = self.create_threat(ThreatDomain.BIO, ThreatType.REAL, BIO_SPAWN_SEVERITY,
                                                 target.lat, target.lon)
                    self.narrative.log_event("BIO_SPREAD", {
                        "sourceThreatId": threat.id,
                        "threatId": spawned.id,
                        "from": source.name,
                        "to": target.name,
                    })
            threat.is_spreading = False
            threat.touch()

    def _handle_cross_domain_interactions(self, dt: float):
        by_region: Dict[str, List[Threat]] = {}
        for threat in self.threats.values():
            region_id = self._region_id(threat)
            if region_id:
                by_region.setdefault(region_id, []).append(threat)

        for threats in by_region.values():
            for i in range(len(threats)):
                for j in range(i + 1, len(threats)):
                    threat_a, threat_b = threats[i], threats[j]
                    event_name = apply_interaction(threat_a, threat_b, dt)
                    if not event_name:
                        continue
                    pair = tuple(sorted((threat_a.id, threat_b.id)))
                    if pair in self._announced_pairs:
                        continue
                    self._announced_pairs.add(pair)
                    self.narrative.log_event(event_name, {
                        "threats": [threat_a.id, threat_b.id],
                        "domains": [threat_a.domain.value, threat_b.domain.value],
                    })

    def _update_plumes(self, dt: float):
        for threat_id, plume in self.plumes.items():
            threat = self.threats.get(threat_id)
            region = self.region_for(threat) if threat else None
            if region is not None and region.weather is not None:
                plume.update(dt, region.weather.wind_speed, region.weather.wind_direction, self.rng)

    def to_dict(self) -> dict:
        return {
            "threats": [t.to_dict() for t in self.threats.values()],
            "plumes": [p.to_dict() for p in self.plumes.values()],
        }
