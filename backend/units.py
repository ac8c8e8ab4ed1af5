"""
Units and satellites - point-mass physics, path following and construction.

Positions are 3-vectors in game space centred on the planet (radius 60).
"""

import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from logger import setup_logger
from regions import PLANET_RADIUS, lat_lon_to_vector, vector_to_lat_lon
from sync import DeltaTracker

logger = setup_logger("units")

GRAVITY = 1000.0
SATELLITE_ORBIT_RADIUS = 80.0
GROUND_PATH_POINTS = 50
AIR_ALTITUDE_FACTOR = 1.05

UNIT_TYPES = {
    "FIELD_TEAM": {"cost": {"funds": 500, "intel": 100}, "movement_type": "ground", "speed": 2.0},
    "GROUND_VEHICLE": {"cost": {"funds": 800, "tech": 200}, "movement_type": "ground", "speed": 4.0},
    "AIRCRAFT": {"cost": {"funds": 1000, "tech": 400}, "movement_type": "air", "speed": 10.0},
}


# ===== VECTOR HELPERS =====

def _length(v: List[float]) -> float:
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def _scale(v: List[float], s: float) -> List[float]:
    return [v[0] * s, v[1] * s, v[2] * s]


def _add(a: List[float], b: List[float]) -> List[float]:
    return [a[0] + b[0], a[1] + b[1], a[2] + b[2]]


def _sub(a: List[float], b: List[float]) -> List[float]:
    return [a[0] - b[0], a[1] - b[1], a[2] - b[2]]


def _normalize(v: List[float]) -> List[float]:
    length = _length(v)
    return _scale(v, 1.0 / length) if length else [0.0, 0.0, 0.0]


def _cross(a: List[float], b: List[float]) -> List[float]:
    return [a[1] * b[2] - a[2] * b[1], a[2] * b[0] - a[0] * b[2], a[0] * b[1] - a[1] * b[0]]


# =============================================================================
# PHYSICS
# =============================================================================

@dataclass
class PhysicsState:
    position: List[float]
    velocity: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    acceleration: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    mass: float = 1.0
    max_speed: float = 5.0
    max_force: float = 1.0
    friction: float = 0.1
    movement_type: str = "ground"  # ground | air | orbital | static

    def apply_force(self, force: List[float]):
        self.acceleration = _add(self.acceleration, _scale(force, 1.0 / self.mass))

    def to_dict(self) -> dict:
        return {
            "position": list(self.position),
            "velocity": list(self.velocity),
            "movement_type": self.movement_type,
        }


def step_physics(state: PhysicsState, dt: float):
    """Integrate one step; acceleration is consumed and reset."""
    if state.movement_type == "static":
        return

    if state.movement_type == "orbital":
        r = _length(state.position)
        if r > 0:
            gravity = GRAVITY * state.mass / (r * r)
            state.apply_force(_scale(_normalize(state.position), -gravity))
    else:
        speed = _length(state.velocity)
        if speed > 0:
            state.apply_force(_scale(_normalize(state.velocity), -state.friction))

    state.velocity = _add(state.velocity, _scale(state.acceleration, dt))
    if state.movement_type in ("ground", "air"):
        speed = _length(state.velocity)
        if speed > state.max_speed:
            state.velocity = _scale(state.velocity, state.max_speed / speed)

    state.position = _add(state.position, _scale(state.velocity, dt))
    if state.movement_type == "ground":
        state.position = _scale(_normalize(state.position), PLANET_RADIUS)
    state.acceleration = [0.0, 0.0, 0.0]


# ===== PATHING =====

def great_circle_path(start: List[float], end: List[float], points: int = GROUND_PATH_POINTS,
                      radius: float = PLANET_RADIUS) -> List[List[float]]:
    """Waypoints along the surface arc from start to end (slerp)."""
    a, b = _normalize(start), _normalize(end)
    dot = max(-1.0, min(1.0, a[0] * b[0] + a[1] * b[1] + a[2] * b[2]))
    omega = math.acos(dot)
    axis = None
    if dot < -1 + 1e-9:
        # antipodal: any perpendicular gives a valid arc
        helper = [0.0, 1.0, 0.0] if abs(a[1]) < 0.9 else [1.0, 0.0, 0.0]
        axis = _normalize(_cross(a, helper))
    path = []
    for i in range(1, points + 1):
        t = i / points
        if axis is not None:
            point = _add(_scale(a, math.cos(t * math.pi)), _scale(axis, math.sin(t * math.pi)))
        elif omega < 1e-6:
            point = _add(_scale(a, 1 - t), _scale(b, t))
        else:
            point = _add(_scale(a, math.sin((1 - t) * omega) / math.sin(omega)),
                         _scale(b, math.sin(t * omega) / math.sin(omega)))
        path.append(_scale(_normalize(point), radius))
    return path


def air_path(start: List[float], end: List[float], radius: float = PLANET_RADIUS) -> List[List[float]]:
    altitude = radius * AIR_ALTITUDE_FACTOR
    return [_scale(_normalize(start), altitude), _scale(_normalize(end), altitude)]


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass
class Unit:
    id: str
    owner: str
    region_id: Optional[str]
    unit_type: str
    physics: PhysicsState
    speed: float = 2.0
    status: str = "IDLE"
    path: List[List[float]] = field(default_factory=list)
    dirty: bool = field(default=True, compare=False)

    def set_path(self, path: List[List[float]]):
        self.path = path
        self.status = "MOVING" if path else "IDLE"
        self.dirty = True

    def follow_path(self, dt: float):
        if not self.path:
            return
        remaining = self.speed * dt
        while self.path and remaining > 0:
            target = self.path[0]
            offset = _sub(target, self.physics.position)
            distance = _length(offset)
            if distance <= remaining:
                self.physics.position = list(target)
                self.path.pop(0)
                remaining -= distance
            else:
                self.physics.position = _add(self.physics.position, _scale(offset, remaining / distance))
                remaining = 0
        if not self.path:
            self.status = "IDLE"
        self.dirty = True

    def to_dict(self) -> dict:
        lat, lon = vector_to_lat_lon(self.physics.position)
        return {
            "id": self.id,
            "owner": self.owner,
            "region_id": self.region_id,
            "unit_type": self.unit_type,
            "status": self.status,
            "lat": lat,
            "lon": lon,
            "physics": self.physics.to_dict(),
        }


@dataclass
class Satellite:
    id: str
    owner: str
    physics: PhysicsState
    dirty: bool = field(default=True, compare=False)

    def to_dict(self) -> dict:
        lat, lon = vector_to_lat_lon(self.physics.position)
        return {
            "id": self.id,
            "owner": self.owner,
            "lat": lat,
            "lon": lon,
            "altitude": _length(self.physics.position),
            "physics": self.physics.to_dict(),
        }


# =============================================================================
# MANAGER
# =============================================================================

class UnitManager:
    """Builds, moves and integrates units and satellites."""

    def __init__(self, rng: random.Random = None, narrative=None,
                 unit_tracker: DeltaTracker = None, satellite_tracker: DeltaTracker = None):
        self.rng = rng or random.Random()
        self.narrative = narrative
        self.unit_tracker = unit_tracker or DeltaTracker("unit")
        self.satellite_tracker = satellite_tracker or DeltaTracker("satellite")
        self.units: Dict[str, Unit] = {}
        self.satellites: Dict[str, Satellite] = {}
        self._next_unit_id = 0
        self._next_satellite_id = 0

    def _log(self, event_type: str, data: dict):
        if self.narrative is not None:
            self.narrative.log_event(event_type, data)

    def build_unit(self, faction, region, unit_type: str) -> Optional[Unit]:
        profile = UNIT_TYPES.get(unit_type)
        if profile is None:
            logger.error(f"Unknown unit type {unit_type}")
            return None
        if not faction.spend(profile["cost"]):
            logger.info(f"Faction {faction.id} cannot afford {unit_type}")
            return None

        unit = Unit(
            id=f"unit-{self._next_unit_id}",
            owner=faction.id,
            region_id=region.id,
            unit_type=unit_type,
            physics=PhysicsState(position=lat_lon_to_vector(region.lat, region.lon),
                                 movement_type=profile["movement_type"],
                                 max_speed=profile["speed"]),
            speed=profile["speed"],
        )
        self._next_unit_id += 1
        self.units[unit.id] = unit
        self.unit_tracker.mark_new(unit.id)
        self._log("UNIT_BUILT", {"unitId": unit.id, "unitType": unit_type, "factionId": faction.id,
                                 "regionName": region.name})
        logger.info(f"Built {unit_type} {unit.id} in {region.name}")
        return unit

    def move_unit(self, unit_id: str, lat: float, lon: float) -> bool:
        unit = self.units.get(unit_id)
        if unit is None:
            logger.error(f"Unit {unit_id} not found")
            return False
        destination = lat_lon_to_vector(lat, lon)
        if unit.physics.movement_type == "air":
            unit.set_path(air_path(unit.physics.position, destination))
        else:
            unit.set_path(great_circle_path(unit.physics.position, destination))
        logger.debug(f"Unit {unit_id} moving to ({lat:.2f}, {lon:.2f})")
        return True

    def count_satellites(self, owner: str) -> int:
        return sum(1 for s in self.satellites.values() if s.owner == owner)

    def launch_satellite(self, faction) -> Optional[Satellite]:
        """Put a satellite into a random circular orbit. Costs are paid by the caller."""
        if self.count_satellites(faction.id) >= faction.max_satellites:
            logger.info(f"Faction {faction.id} is at its satellite limit")
            return None

        direction = _normalize([self.rng.gauss(0, 1), self.rng.gauss(0, 1), self.rng.gauss(0, 1)])
        if _length(direction) == 0:
            direction = [1.0, 0.0, 0.0]
        position = _scale(direction, SATELLITE_ORBIT_RADIUS)
        helper = [0.0, 1.0, 0.0] if abs(direction[1]) < 0.9 else [1.0, 0.0, 0.0]
        tangent = _normalize(_cross(direction, helper))
        speed = math.sqrt(GRAVITY / SATELLITE_ORBIT_RADIUS)

        satellite = Satellite(
            id=f"satellite-{self._next_satellite_id}",
            owner=faction.id,
            physics=PhysicsState(position=position, velocity=_scale(tangent, speed),
                                 movement_type="orbital", friction=0.0),
        )
        self._next_satellite_id += 1
        self.satellites[satellite.id] = satellite
        self.satellite_tracker.mark_new(satellite.id)
        self._log("SATELLITE_LAUNCH", {"satelliteId": satellite.id, "factionId": faction.id})
        logger.info(f"Faction {faction.id} launched {satellite.id}")
        return satellite

    def update(self, dt: float):
        for unit in self.units.values():
            if unit.path:
                unit.follow_path(dt)
            else:
                step_physics(unit.physics, dt)
        for satellite in self.satellites.values():
            step_physics(satellite.physics, dt)
            satellite.dirty = True
