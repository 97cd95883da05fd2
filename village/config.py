# village/config.py
from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DATA_DIR = PROJECT_ROOT / "data"

DB_PATH = DATA_DIR / "village.db"
DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH.as_posix()}")

# Accrue resources before serving reads
TICK_ON_READ: bool = os.getenv("TICK_ON_READ", "1") == "1"

# Per-player lock; a timeout surfaces as Busy
LOCK_TIMEOUT_SECONDS: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5"))

SESSION_HOURS: int = int(os.getenv("SESSION_HOURS", "24"))

# Village grid is GRID_SIZE x GRID_SIZE, coords 0..GRID_SIZE-1
GRID_SIZE: int = 15

TOWN_HALL_MAX_LEVEL: int = 4
BUILDING_MAX_LEVEL: int = 4

STARTING_RESOURCES: dict[str, int] = {
    "wood": 1000,
    "stone": 800,
    "food": 600,
    "iron": 400,
    "gold": 0,
    "elixir": 0,
    "gems": 0,
}

BASE_POPULATION_CAP: int = 10


def ensure_data_dir() -> None:
    if DATABASE_URL.startswith("sqlite:///") and not DATABASE_URL.startswith("sqlite:///:memory:"):
        DATA_DIR.mkdir(parents=True, exist_ok=True)
