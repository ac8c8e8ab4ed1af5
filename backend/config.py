"""Runtime settings loaded from the environment (and a local .env file)."""
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DATA_DIR = Path(__file__).parent.parent / "data"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


@dataclass
class Settings:
    """Simulation and service settings."""
    tick_rate: float = 30.0  # ticks per second
    casual_mode: bool = True
    data_dir: Path = DATA_DIR
    ai_decision_interval: float = 5.0
    spread_interval: float = 30.0
    world_event_interval: float = 60.0
    outbound_queue_size: int = 256
    max_satellites: int = 5
    random_seed: Optional[int] = None
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def tick_dt(self) -> float:
        return 1.0 / self.tick_rate

    def to_dict(self) -> dict:
        result = asdict(self)
        result["data_dir"] = str(self.data_dir)
        return result

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            tick_rate=_env_float("TICK_RATE", 30.0),
            casual_mode=_env_bool("CASUAL_MODE", True),
            data_dir=Path(os.getenv("DATA_DIR", str(DATA_DIR))),
            ai_decision_interval=_env_float("AI_DECISION_INTERVAL", 5.0),
            spread_interval=_env_float("SPREAD_INTERVAL", 30.0),
            world_event_interval=_env_float("WORLD_EVENT_INTERVAL", 60.0),
            outbound_queue_size=_env_int("OUTBOUND_QUEUE_SIZE", 256),
            max_satellites=_env_int("MAX_SATELLITES", 5),
            random_seed=_env_int("RANDOM_SEED", None),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=_env_int("API_PORT", 8000),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
