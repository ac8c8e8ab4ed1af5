"""
Regions - geographic/political units, timed buffs, weather and the route graph.
"""

import json
import math
import random
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from logger import setup_logger

logger = setup_logger("regions")

EARTH_RADIUS_KM = 6371.0
PLANET_RADIUS = 60.0  # game-space units

# Default lifetime of region buffs, in simulated seconds
BUFF_DURATIONS = {
    "QUARANTINE": 120.0,
    "NETWORK_SCRUB": 90.0,
    "COUNTER_PROPAGANDA": 120.0,
    "FORTIFIED": 300.0,
    "INFORMANT_NETWORK": 300.0,
}

WEATHER_TYPES = ["CLEAR", "RAIN", "STORM", "SNOW", "DUST_STORM", "ACID_RAIN", "RADIOLOGICAL_FALLOUT"]

STABILITY_RECOVERY_RATE = 0.0005


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


# ===== GEOMETRY =====

def great_circle_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in km."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def lat_lon_to_vector(lat: float, lon: float, radius: float = PLANET_RADIUS) -> List[float]:
    phi = math.radians(90 - lat)
    theta = math.radians(lon + 180)
    return [
        -(radius * math.sin(phi) * math.cos(theta)),
        radius * math.cos(phi),
        radius * math.sin(phi) * math.sin(theta),
    ]


def vector_to_lat_lon(vector: List[float]) -> Tuple[float, float]:
    x, y, z = vector
    radius = math.sqrt(x * x + y * y + z * z)
    if radius == 0:
        return 0.0, 0.0
    lat = 90 - math.degrees(math.acos(max(-1.0, min(1.0, y / radius))))
    lon = math.degrees(math.atan2(z, -x)) - 180
    if lon < -180:
        lon += 360
    return lat, lon


# ===== DATA TYPES =====

@dataclass
class Buff:
    """A timed region-level modifier."""
    type: str
    remaining: float
    owner_faction_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Population:
    count: float = 1_000_000.0
    growth_rate: float = 0.01
    trust: float = 0.7

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Weather:
    type: str = "CLEAR"
    wind_speed: float = 0.0  # km/h
    wind_direction: float = 0.0  # degrees
    duration: float = 0.0
    intensity: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Region:
    """A geographic/political unit. Clamped fields change only through setters."""
    id: str
    name: str
    centroid: Tuple[float, float]
    radius: float
    stability: float = 1.0
    economy: float = 1.0
    education: float = 0.5
    population: Population = field(default_factory=Population)
    climate_vulnerability: float = 0.3
    temperature: float = 15.0
    internet_access: float = 0.5
    owner: str = "NEUTRAL"
    weather: Optional[Weather] = None
    active_buffs: List[Buff] = field(default_factory=list)
    dirty: bool = field(default=True, compare=False)

    @property
    def lat(self) -> float:
        return self.centroid[0]

    @property
    def lon(self) -> float:
        return self.centroid[1]

    @property
    def position(self) -> List[float]:
        return lat_lon_to_vector(self.lat, self.lon)

    @property
    def attributes(self) -> dict:
        return {
            "climate_vulnerability": self.climate_vulnerability,
            "temperature": self.temperature,
            "internet_access": self.internet_access,
        }

    # ===== MUTATORS =====

    def set_stability(self, value: float):
        self.stability = clamp01(value)
        self.dirty = True

    def set_economy(self, value: float):
        self.economy = clamp01(value)
        self.dirty = True

    def set_education(self, value: float):
        self.education = clamp01(value)
        self.dirty = True

    def set_trust(self, value: float):
        self.population.trust = clamp01(value)
        self.dirty = True

    def set_internet_access(self, value: float):
        self.internet_access = clamp01(value)
        self.dirty = True

    def set_owner(self, owner: str):
        self.owner = owner
        self.dirty = True

    def apply_damage(self, stability: float = 0.0, economy: float = 0.0):
        """Subtract from stability and economy, clamped at zero."""
        if stability:
            self.set_stability(self.stability - stability)
        if economy:
            self.set_economy(self.economy - economy)

    def grow_population(self, dt: float):
        """Hourly growth_rate applied over dt seconds."""
        if not self.population.growth_rate:
            return
        self.population.count += self.population.count * self.population.growth_rate * dt / 3600
        self.dirty = True

    def tick_weather(self, dt: float):
        if self.weather is None:
            return
        self.weather.duration -= dt
        self.dirty = True

    # ===== BUFFS =====

    def has_buff(self, buff_type: str) -> bool:
        return any(b.type == buff_type for b in self.active_buffs)

    def add_buff(self, buff_type: str, duration: float = None, owner_faction_id: str = None) -> bool:
        """Add a buff. A type already present is left untouched."""
        if self.has_buff(buff_type):
            logger.debug(f"Buff {buff_type} already active in {self.id}")
            return False
        if duration is None:
            duration = BUFF_DURATIONS.get(buff_type, 60.0)
        self.active_buffs.append(Buff(buff_type, duration, owner_faction_id))
        self.dirty = True
        return True

    def tick_buffs(self, dt: float):
        if not self.active_buffs:
            return
        for buff in self.active_buffs:
            buff.remaining -= dt
        expired = [b for b in self.active_buffs if b.remaining <= 0]
        if expired:
            self.active_buffs = [b for b in self.active_buffs if b.remaining > 0]
            logger.debug(f"Buffs expired in {self.id}: {[b.type for b in expired]}")
        self.dirty = True

    # ===== ACTION EFFECTS =====

    def start_diplomatic_mission(self) -> bool:
        self.set_stability(self.stability + 0.15)
        return True

    def start_awareness_campaign(self) -> bool:
        self.set_trust(self.population.trust + 0.1)
        self.set_education(self.education + 0.02)
        return True

    def invest_in_education(self, faction=None) -> bool:
        self.set_education(self.education + 0.1)
        return True

    def deploy_network_infrastructure(self, faction=None) -> bool:
        self.set_internet_access(self.internet_access + 0.25)
        self.set_economy(self.economy + 0.05)
        return True

    def initiate_quarantine(self, faction=None) -> bool:
        if not self.add_buff("QUARANTINE", owner_faction_id=getattr(faction, "id", None)):
            return False
        self.set_economy(self.economy - 0.05)
        return True

    def scrub_network(self, faction=None) -> bool:
        return self.add_buff("NETWORK_SCRUB", owner_faction_id=getattr(faction, "id", None))

    def launch_counter_propaganda(self, faction=None) -> bool:
        return self.add_buff("COUNTER_PROPAGANDA", owner_faction_id=getattr(faction, "id", None))

    def fortify(self, faction=None) -> bool:
        return self.add_buff("FORTIFIED", owner_faction_id=getattr(faction, "id", None))

    def establish_informant_network(self, faction=None) -> bool:
        return self.add_buff("INFORMANT_NETWORK", owner_faction_id=getattr(faction, "id", None))

    def suffer_sabotage(self) -> bool:
        self.apply_damage(stability=0.1, economy=0.1)
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "centroid": list(self.centroid),
            "radius": self.radius,
            "stability": self.stability,
            "economy": self.economy,
            "education": self.education,
            "population": self.population.to_dict(),
            "attributes": self.attributes,
            "owner": self.owner,
            "weather": self.weather.to_dict() if self.weather else None,
            "active_buffs": [b.to_dict() for b in self.active_buffs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Region":
        attributes = data.get("attributes", {})
        population = data.get("population", {})
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            centroid=tuple(data["centroid"]),
            radius=float(data.get("radius", 1000)),
            stability=clamp01(data.get("stability", 1.0)),
            economy=clamp01(data.get("economy", 1.0)),
            education=clamp01(data.get("education", 0.5)),
            population=Population(
                count=population.get("count", 1_000_000.0),
                growth_rate=population.get("growth_rate", 0.01),
                trust=clamp01(population.get("trust", 0.7)),
            ),
            climate_vulnerability=attributes.get("climate_vulnerability", 0.3),
            temperature=attributes.get("temperature", 15.0),
            internet_access=clamp01(attributes.get("internet_access", 0.5)),
            owner=data.get("owner", "NEUTRAL"),
        )


# ===== WEATHER =====

class WeatherSystem:
    """Rolls new weather for a region whenever the current spell runs out."""

    def __init__(self, rng: random.Random = None):
        self.rng = rng or random.Random()

    def update(self, regions: List[Region], dt: float, total_env_severity: float = 0.0):
        for region in regions:
            if region.weather is None or region.weather.duration <= 0:
                region.weather = self.generate_weather(region, total_env_severity)
                region.dirty = True
            else:
                region.tick_weather(dt)

    def generate_weather(self, region: Region, total_env_severity: float = 0.0) -> Weather:
        weather = Weather(
            wind_speed=self.rng.random() * 100,
            wind_direction=self.rng.random() * 360,
            duration=60 + self.rng.random() * 120,
            intensity=self.rng.random(),
        )
        adverse_chance = region.climate_vulnerability * 0.1 + total_env_severity * 0.05
        if self.rng.random() < adverse_chance:
            weather.type = self.rng.choice(WEATHER_TYPES[1:])
        return weather


# ===== MANAGER =====

class RegionManager:
    """Owns the regions, the travel-route graph and position lookup."""

    def __init__(self, data_dir: Path, rng: random.Random = None):
        self.data_dir = Path(data_dir)
        self.regions: Dict[str, Region] = {}
        self.travel_routes: List[Tuple[str, str]] = []
        self._adjacency: Dict[str, List[str]] = {}
        self.weather_system = WeatherSystem(rng)
        self.load()

    def load(self):
        regions_file = self.data_dir / "regions.json"
        with open(regions_file, "r", encoding="utf-8") as f:
            regions_data = json.load(f)
        self.regions = {}
        for data in regions_data:
            region = Region.from_dict(data)
            self.regions[region.id] = region

        routes_file = self.data_dir / "travel_routes.json"
        routes_data = []
        if routes_file.exists():
            with open(routes_file, "r", encoding="utf-8") as f:
                routes_data = json.load(f)

        self.travel_routes = []
        self._adjacency = {region_id: [] for region_id in self.regions}
        for route in routes_data:
            source, target = route.get("from"), route.get("to")
            if source not in self.regions or target not in self.regions:
                logger.warning(f"Skipping route with unknown region: {source} -> {target}")
                continue
            self.travel_routes.append((source, target))
            self._adjacency[source].append(target)
            self._adjacency[target].append(source)

        logger.info(f"Loaded {len(self.regions)} regions, {len(self.travel_routes)} travel routes")

    def get(self, region_id: str) -> Optional[Region]:
        return self.regions.get(region_id)

    def all(self) -> List[Region]:
        return list(self.regions.values())

    def neighbors(self, region: Region) -> List[Region]:
        """Regions connected to `region` by a travel route, in route order."""
        return [self.regions[rid] for rid in self._adjacency.get(region.id, [])]

    def region_for_position(self, lat: float, lon: float) -> Optional[Region]:
        """First region whose radius contains the position."""
        for region in self.regions.values():
            if great_circle_distance(lat, lon, region.lat, region.lon) <= region.radius:
                return region
        return None

    def owned_by(self, owner: str) -> List[Region]:
        return [r for r in self.regions.values() if r.owner == owner]

    def update(self, dt: float, total_env_severity: float = 0.0, threatened: Set[str] = None):
        threatened = threatened or set()
        for region in self.regions.values():
            region.tick_buffs(dt)
            if region.id not in threatened and region.stability < 1.0:
                region.set_stability(region.stability + STABILITY_RECOVERY_RATE * dt)
            region.grow_population(dt)
        self.weather_system.update(self.all(), dt, total_env_severity)
