"""FastAPI server exposing simulation commands, snapshots and deltas."""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from config import get_settings
from logger import setup_logger
from threats import ThreatDomain, ThreatType

logger = setup_logger("api")


# === Centralized Error Handling ===

class APIError(Exception):
    """Base API error with status code and message."""
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found error."""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ValidationError(APIError):
    """Input validation error."""
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=422)


api = FastAPI(title="Threat Mitigation Simulation API", version="1.0.0")

api.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@api.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Handle all APIError subclasses with consistent JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.message}
    )


@api.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """Handle unexpected errors with consistent JSON response."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )


# === Request models ===

class InitRequest(BaseModel):
    casual_mode: Optional[bool] = None
    seed: Optional[int] = None


class TickRequest(BaseModel):
    dt: Optional[float] = None
    count: int = 1

    @field_validator('count')
    @classmethod
    def validate_count(cls, v: int) -> int:
        if v < 1 or v > 10000:
            raise ValueError('count must be between 1 and 10000')
        return v

    @field_validator('dt')
    @classmethod
    def validate_dt(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError('dt must be positive')
        return v


class ActionRequest(BaseModel):
    action_id: str
    threat_id: Optional[str] = None
    region_id: Optional[str] = None
    agent_id: Optional[str] = None


class UnitMove(BaseModel):
    lat: float
    lon: float

    @field_validator('lat')
    @classmethod
    def validate_lat(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError('lat must be within [-90, 90]')
        return v

    @field_validator('lon')
    @classmethod
    def validate_lon(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError('lon must be within [-180, 180]')
        return v


class DebugThreatCreate(UnitMove):
    domain: str
    type: str = "REAL"
    severity: float = 0.5

    @field_validator('domain')
    @classmethod
    def validate_domain(cls, v: str) -> str:
        if v not in ThreatDomain.__members__:
            raise ValueError(f"domain must be one of {sorted(ThreatDomain.__members__)}")
        return v

    @field_validator('type')
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in ThreatType.__members__:
            raise ValueError(f"type must be one of {sorted(ThreatType.__members__)}")
        return v

    @field_validator('severity')
    @classmethod
    def validate_severity(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError('severity must be within [0, 1]')
        return v


class BuildingCreate(BaseModel):
    region_id: str
    building_type: str

    @field_validator('building_type')
    @classmethod
    def validate_building_type(cls, v: str) -> str:
        from world import BUILDING_COSTS
        if v not in BUILDING_COSTS:
            raise ValueError(f"building_type must be one of {sorted(BUILDING_COSTS)}")
        return v


class AgentRecruit(BaseModel):
    region_id: str


class UnitCreate(BaseModel):
    region_id: str
    unit_type: str

    @field_validator('unit_type')
    @classmethod
    def validate_unit_type(cls, v: str) -> str:
        from units import UNIT_TYPES
        if v not in UNIT_TYPES:
            raise ValueError(f"unit_type must be one of {sorted(UNIT_TYPES)}")
        return v


class ResearchStart(BaseModel):
    project_id: str

    @field_validator('project_id')
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        from world import RESEARCH_PROJECTS
        if v not in RESEARCH_PROJECTS:
            raise ValueError(f"project_id must be one of {sorted(RESEARCH_PROJECTS)}")
        return v


# === Helpers ===

def require_initialized():
    import simulation
    manager = simulation.SimulationManager.get_instance()
    if not manager.initialized:
        raise APIError("Simulation not initialized")
    return manager


def require_region(manager, region_id: str):
    if manager.world.region_manager.get(region_id) is None:
        raise NotFoundError(f"Region '{region_id}' not found")


def queue_command(command_type: str, payload: dict) -> dict:
    import simulation
    result = simulation.submit_command(command_type, payload)
    if result.get("status") != "success":
        raise APIError(result.get("message", "Command rejected"))
    return result


# Routes

@api.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


# Simulation endpoints
@api.post("/simulation/init")
def init_simulation(request: InitRequest = None):
    """Create a fresh world (stops any running worker)."""
    import simulation
    request = request or InitRequest()
    return simulation.init_simulation(request.casual_mode, request.seed)


@api.post("/simulation/start")
def start_simulation():
    """Start the fixed-step worker."""
    import simulation
    require_initialized()
    return simulation.start_simulation()


@api.post("/simulation/stop")
def stop_simulation():
    """Stop the fixed-step worker."""
    import simulation
    require_initialized()
    return simulation.stop_simulation()


@api.get("/simulation/status")
def get_simulation_status():
    """Get current simulation status."""
    import simulation
    return simulation.get_status()


@api.get("/simulation/snapshot")
def get_simulation_snapshot():
    """Latest full world state."""
    import simulation
    require_initialized()
    return {"status": "success", "snapshot": simulation.get_snapshot()}


@api.get("/simulation/deltas")
def get_simulation_deltas(limit: Optional[int] = None):
    """Drain queued snapshot/delta messages, oldest first."""
    import simulation
    require_initialized()
    if limit is not None and limit < 1:
        raise ValidationError("limit must be positive")
    return {"status": "success", "messages": simulation.drain_messages(limit)}


@api.post("/simulation/tick")
def tick_simulation(request: TickRequest = None):
    """Step the world manually while the worker is stopped."""
    import simulation
    require_initialized()
    request = request or TickRequest()
    result = simulation.manual_tick(request.dt, request.count)
    if result.get("status") != "success":
        raise APIError(result.get("message", "Cannot tick"))
    return result


# Action endpoints
@api.get("/actions")
def list_actions():
    """Player and agent action catalogs."""
    import simulation
    return {"status": "success", **simulation.list_actions()}


@api.post("/actions/execute")
def execute_action(request: ActionRequest):
    """Queue an action for the player faction."""
    import actions
    manager = require_initialized()
    if actions.get_action(request.action_id) is None:
        raise NotFoundError(f"Action '{request.action_id}' not found")
    if request.region_id is not None:
        require_region(manager, request.region_id)
    return queue_command("execute_action", request.model_dump())


# Entity endpoints
@api.post("/units/{unit_id}/move")
def move_unit(unit_id: str, move: UnitMove):
    """Queue a move order for a unit."""
    require_initialized()
    return queue_command("move_unit", {"unit_id": unit_id, "lat": move.lat, "lon": move.lon})


@api.post("/units")
def build_unit(request: UnitCreate):
    """Queue construction of a unit for the player faction."""
    manager = require_initialized()
    require_region(manager, request.region_id)
    return queue_command("build_unit", request.model_dump())


@api.post("/debug/threats")
def debug_create_threat(request: DebugThreatCreate):
    """Queue creation of a threat at a position."""
    require_initialized()
    return queue_command("debug_create_threat", request.model_dump())


@api.post("/buildings")
def add_building(request: BuildingCreate):
    """Queue construction of a building for the player faction."""
    manager = require_initialized()
    require_region(manager, request.region_id)
    return queue_command("add_building", request.model_dump())


@api.post("/agents")
def recruit_agent(request: AgentRecruit):
    """Queue recruitment of an agent."""
    manager = require_initialized()
    require_region(manager, request.region_id)
    return queue_command("recruit_agent", request.model_dump())


@api.post("/research")
def start_research(request: ResearchStart):
    """Queue a research project."""
    require_initialized()
    return queue_command("start_research", request.model_dump())


# Narrative endpoints
@api.get("/events")
def get_events(since_id: Optional[str] = None, limit: int = 100, event_type: Optional[str] = None):
    """Narrative event log with optional filters."""
    import simulation
    require_initialized()
    return {"status": "success", "events": simulation.get_events(since_id, limit, event_type)}


@api.get("/chronicles")
def get_chronicles():
    """Chronicles synthesised from the event log."""
    import simulation
    require_initialized()
    return {"status": "success", "chronicles": simulation.get_chronicles()}


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(api, host=settings.api_host, port=settings.api_port)
