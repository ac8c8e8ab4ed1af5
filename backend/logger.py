import logging
import os
from datetime import datetime

from config import get_settings

LOGS_DIR = os.getenv("LOG_DIR", os.path.join(os.path.dirname(__file__), "logs"))
ROOT_LOGGER = "threat_sim"


def _configure_root() -> logging.Logger:
    """One daily file and one console handler shared by every module logger."""
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root
    root.setLevel(logging.DEBUG)
    root.propagate = False

    os.makedirs(LOGS_DIR, exist_ok=True)
    log_file = os.path.join(LOGS_DIR, f"simulation_{datetime.now().strftime('%Y%m%d')}.log")
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(get_settings().log_level)

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(console_handler)
    return root


def setup_logger(name: str = "simulation") -> logging.Logger:
    """Module logger named `threat_sim.<name>`."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
