from __future__ import annotations
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DB_PATH = Path(os.getenv("ROMCOACH_DB", "./romcoach.db"))
FPS = float(os.getenv("ROMCOACH_FPS", "30"))
CAMERA_INDEX = int(os.getenv("ROMCOACH_CAMERA_INDEX", "0"))
MIRROR = _env_bool("ROMCOACH_MIRROR", True)
LOG_LEVEL = os.getenv("ROMCOACH_LOG_LEVEL", "INFO")
