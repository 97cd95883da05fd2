# village/game/catalog.py
from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Optional

from village.game.errors import UnknownBuildingType, UnknownTroopType

# ----------------------------
# Resource kinds
# ----------------------------

RESOURCE_KINDS: tuple[str, ...] = ("wood", "stone", "food", "iron", "gold", "elixir", "gems")

# Costs and pillage only ever touch these four
BASE_KINDS: tuple[str, ...] = ("wood", "stone", "food", "iron")

# ----------------------------
# Building categories
# ----------------------------

GENERATOR = "resource_generator"
HOUSE = "house"
BARRACKS = "barracks"
DEFENSIVE = "defensive"
SPECIAL = "special"
WALL = "wall"

TOWN_HALL_KEY = "town_hall"

# Troop categories (which training building produces them)
TROOPS_BARRACKS = "barracks"
TROOPS_MAGIC = "magic"


@dataclass(frozen=True)
class BuildingType:
    key: str
    name: str
    category: str
    # construction cost (level 1)
    wood: int
    stone: int
    food: int
    iron: int
    # generators only: resource kind + units per minute at level 1
    produces: Optional[str] = None
    base_rate: int = 0
    required_town_hall: int = 1
    unique: bool = False
    # walls: instances allowed per town-hall level
    per_town_hall_level: Optional[int] = None
    # training buildings: troop category they train
    trains: Optional[str] = None

    @property
    def cost(self) -> Dict[str, int]:
        return {"wood": self.wood, "stone": self.stone, "food": self.food, "iron": self.iron}

    @property
    def is_town_hall(self) -> bool:
        return self.category == SPECIAL


@dataclass(frozen=True)
class TroopType:
    key: str
    name: str
    category: str
    # per-unit cost
    wood: int
    stone: int
    food: int
    iron: int
    population_cost: int
    power: int
    required_building_level: int
    training_minutes: int

    @property
    def cost(self) -> Dict[str, int]:
        return {"wood": self.wood, "stone": self.stone, "food": self.food, "iron": self.iron}


BUILDING_TYPES: dict[str, BuildingType] = {
    # Core
    "town_hall":     BuildingType("town_hall",     "Town Hall",     SPECIAL,     0,   0,   0,   0, unique=True),
    "house":         BuildingType("house",         "House",         HOUSE,     100,  50,   0,   0),

    # Resource generators
    "sawmill":       BuildingType("sawmill",       "Sawmill",       GENERATOR,  50,  30,   0,   0, produces="wood", base_rate=5),
    "quarry":        BuildingType("quarry",        "Quarry",        GENERATOR,  60,  20,   0,   0, produces="stone", base_rate=4),
    "farm":          BuildingType("farm",          "Farm",          GENERATOR,  40,  20,   0,   0, produces="food", base_rate=6),
    "iron_mine":     BuildingType("iron_mine",     "Iron Mine",     GENERATOR,  80,  60,   0,   0, produces="iron", base_rate=3),

    # Military
    "barracks":      BuildingType("barracks",      "Barracks",      BARRACKS,  200, 150,   0,  50, unique=True, trains=TROOPS_BARRACKS),
    "mage_tower":    BuildingType("mage_tower",    "Mage Tower",    BARRACKS,  250, 200,   0, 100, unique=True, trains=TROOPS_MAGIC),
    "defense_tower": BuildingType("defense_tower", "Defense Tower", DEFENSIVE, 150, 200,   0,  80, required_town_hall=2),
    "wall":          BuildingType("wall",          "Wall",          WALL,        0,  50,   0,   0, per_town_hall_level=5),
}


TROOP_TYPES: dict[str, TroopType] = {
    # Barracks
    "soldier":  TroopType("soldier",  "Soldier",  TROOPS_BARRACKS,   0,   0,  50,  10, 1, 10, 1, 1),
    "archer":   TroopType("archer",   "Archer",   TROOPS_BARRACKS,  40,   0,  40,  10, 1, 15, 1, 2),
    "rider":    TroopType("rider",    "Rider",    TROOPS_BARRACKS,  20,   0, 100,  50, 2, 30, 2, 4),
    "cannon":   TroopType("cannon",   "Cannon",   TROOPS_BARRACKS, 150, 100,   0, 150, 4, 60, 3, 8),

    # Mage tower
    "skeleton": TroopType("skeleton", "Skeleton", TROOPS_MAGIC,      0,  20,  30,  10, 1, 12, 1, 1),
    "mage":     TroopType("mage",     "Mage",     TROOPS_MAGIC,     30,   0,  60,  40, 2, 25, 1, 3),
    "ghost":    TroopType("ghost",    "Ghost",    TROOPS_MAGIC,      0,  50,  80,  30, 2, 35, 2, 4),
    "witch":    TroopType("witch",    "Witch",    TROOPS_MAGIC,     60,   0, 100,  60, 3, 40, 2, 5),
}


# ----------------------------
# Per-level tables
# ----------------------------

# level -> (production multiplier, flat bonus per minute)
LEVEL_PRODUCTION: dict[int, tuple[Fraction, int]] = {
    1: (Fraction(1), 0),
    2: (Fraction(3, 2), 1),
    3: (Fraction(2), 2),
    4: (Fraction(5, 2), 4),
}

TOWN_HALL_UPGRADE_COSTS: dict[int, Dict[str, int]] = {
    2: {"wood": 500, "stone": 400, "food": 200, "iron": 100},
    3: {"wood": 1000, "stone": 800, "food": 400, "iron": 300},
    4: {"wood": 2000, "stone": 1600, "food": 800, "iron": 600},
}


def _doubling_costs(defn: BuildingType) -> dict[int, Dict[str, int]]:
    # L2 = 2x base, L3 = 4x, L4 = 8x
    return {
        lvl: {k: v * (2 ** (lvl - 1)) for k, v in defn.cost.items()}
        for lvl in (2, 3, 4)
    }


# (building key, target level) -> cost. A missing row means no upgrade path.
UPGRADE_COSTS: dict[tuple[str, int], Dict[str, int]] = {}
for _key, _defn in BUILDING_TYPES.items():
    _table = TOWN_HALL_UPGRADE_COSTS if _defn.is_town_hall else _doubling_costs(_defn)
    for _lvl, _cost in _table.items():
        UPGRADE_COSTS[(_key, _lvl)] = _cost


# ----------------------------
# Lookups
# ----------------------------

def get_building_type(key: str) -> BuildingType:
    defn = BUILDING_TYPES.get(key)
    if defn is None:
        raise UnknownBuildingType(f"Unknown building type '{key}'", building_type=key)
    return defn


def get_troop_type(key: str) -> TroopType:
    defn = TROOP_TYPES.get(key)
    if defn is None:
        raise UnknownTroopType(f"Unknown troop type '{key}'", troop_type=key)
    return defn


def upgrade_cost(key: str, to_level: int) -> Optional[Dict[str, int]]:
    cost = UPGRADE_COSTS.get((key, to_level))
    return dict(cost) if cost is not None else None


def production_per_minute(defn: BuildingType, level: int) -> Fraction:
    """baseRate * multiplier(level) + bonus(level); zero for non-generators."""
    if defn.category != GENERATOR or not defn.produces:
        return Fraction(0)
    multiplier, bonus = LEVEL_PRODUCTION.get(level, LEVEL_PRODUCTION[max(LEVEL_PRODUCTION)])
    return defn.base_rate * multiplier + bonus


def general_building_cap(town_hall_level: int) -> int:
    # Everything except the town hall and walls
    if town_hall_level <= 1:
        return 5
    if town_hall_level == 2:
        return 10
    if town_hall_level == 3:
        return 15
    return 25


def wall_cap(town_hall_level: int) -> int:
    return town_hall_level * BUILDING_TYPES["wall"].per_town_hall_level


def house_capacity(level: int) -> int:
    return 10 + (level - 1) * 5


def troop_categories() -> Dict[str, list[str]]:
    out: Dict[str, list[str]] = {}
    for t in TROOP_TYPES.values():
        out.setdefault(t.category, []).append(t.key)
    return out
