# village/game/village.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from village.config import GRID_SIZE, TOWN_HALL_MAX_LEVEL
from village.game.catalog import (
    HOUSE,
    SPECIAL,
    TOWN_HALL_KEY,
    WALL,
    get_building_type,
    general_building_cap,
    wall_cap,
)
from village.game.errors import (
    InvalidInput,
    InvalidPosition,
    NotFound,
    PositionOccupied,
    TownHallProtected,
)
from village.game.locks import PlayerLocks
from village.game.population import refresh_population
from village.game.store import VillageStore
from village.models.building import Building

log = logging.getLogger(__name__)

Cell = Tuple[int, int]

CENTER: Cell = (GRID_SIZE // 2, GRID_SIZE // 2)


# ----------------------------
# Grid helpers
# ----------------------------

def in_bounds(x: int, y: int) -> bool:
    return 0 <= x < GRID_SIZE and 0 <= y < GRID_SIZE


def occupied_cells(buildings: Iterable[Building], exclude_id: Optional[int] = None) -> Set[Cell]:
    return {(b.x, b.y) for b in buildings if b.id != exclude_id}


def town_hall_candidates() -> List[Cell]:
    """Center first, then rings of offsets 1..3 around it."""
    cx, cy = CENTER
    cells: List[Cell] = [CENTER]
    for o in range(1, 4):
        for dx, dy in ((o, 0), (-o, 0), (0, o), (0, -o), (o, o), (-o, -o)):
            cell = (cx + dx, cy + dy)
            if in_bounds(*cell):
                cells.append(cell)
    return cells


def grid_by_distance() -> List[Cell]:
    """Every cell on the grid, nearest to the center first."""
    cx, cy = CENTER

    def key(cell: Cell) -> Tuple[int, int, int, int]:
        dx, dy = abs(cell[0] - cx), abs(cell[1] - cy)
        return (max(dx, dy), dx + dy, cell[0], cell[1])

    return sorted(((x, y) for x in range(GRID_SIZE) for y in range(GRID_SIZE)), key=key)


def find_town_hall(buildings: Iterable[Building]) -> Optional[Building]:
    for b in buildings:
        if get_building_type(b.type_key).category == SPECIAL:
            return b
    return None


def building_counts(buildings: Iterable[Building]) -> Dict[str, int]:
    """general: everything except town hall and walls."""
    general = 0
    walls = 0
    for b in buildings:
        category = get_building_type(b.type_key).category
        if category == WALL:
            walls += 1
        elif category != SPECIAL:
            general += 1
    return {"general": general, "walls": walls}


class VillageState:
    """A player's building instances: placement, limits and the town hall."""

    def __init__(
        self,
        store: VillageStore,
        locks: PlayerLocks,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.locks = locks
        self.clock = clock

    def buildings(self, player_id: int) -> List[Building]:
        return self.store.list_buildings(player_id)

    def get_owned(self, player_id: int, building_id: int) -> Building:
        b = self.store.get_building(building_id)
        if b is None or b.player_id != player_id:
            raise NotFound("Building not found", building_id=building_id)
        return b

    def town_hall_level(self, player_id: int) -> int:
        th = find_town_hall(self.buildings(player_id))
        return th.level if th else 0

    def ensure_town_hall(self, player_id: int, avoid: Optional[Cell] = None) -> Building:
        """
        Return the player's town hall, creating one on the first free cell near the
        center if it is missing. `avoid` keeps a cell free for a pending request.
        """
        with self.locks.hold(player_id):
            buildings = self.buildings(player_id)
            th = find_town_hall(buildings)
            if th is not None:
                return th

            taken = occupied_cells(buildings)
            if avoid is not None:
                taken.add(avoid)
            cell = next((c for c in town_hall_candidates() if c not in taken), None)
            if cell is None:
                cell = next((c for c in grid_by_distance() if c not in taken), None)
            if cell is None:
                raise InvalidInput("No free cell left for a town hall", player_id=player_id)

            th = Building(
                player_id=player_id,
                type_key=TOWN_HALL_KEY,
                level=1,
                x=cell[0],
                y=cell[1],
                created_at=self.clock(),
            )
            self.store.add_building(th)
            self.store.commit()
            log.info("Player %d: town hall placed at %s", player_id, cell)
            return th

    def limits(self, player_id: int) -> Dict[str, object]:
        buildings = self.buildings(player_id)
        th = find_town_hall(buildings)
        th_level = th.level if th else 0
        counts = building_counts(buildings)
        return {
            "town_hall_level": th_level,
            "buildings": counts["general"],
            "max_buildings": general_building_cap(th_level),
            "walls": counts["walls"],
            "max_walls": wall_cap(th_level),
        }

    def town_hall_info(self, player_id: int) -> Dict[str, object]:
        th = find_town_hall(self.buildings(player_id))
        if th is None:
            raise NotFound("Town hall not found", player_id=player_id)
        can_upgrade = th.level < TOWN_HALL_MAX_LEVEL
        return {
            "building_id": th.id,
            "level": th.level,
            "max_level": TOWN_HALL_MAX_LEVEL,
            "can_upgrade": can_upgrade,
            "max_buildings": general_building_cap(th.level),
            "next_max_buildings": general_building_cap(th.level + 1) if can_upgrade else None,
            "max_walls": wall_cap(th.level),
        }

    def move(self, player_id: int, building_id: int, x: int, y: int) -> Building:
        with self.locks.hold(player_id):
            b = self.get_owned(player_id, building_id)
            if not in_bounds(x, y):
                raise InvalidPosition(f"Position ({x}, {y}) is outside the village", x=x, y=y)
            if (x, y) in occupied_cells(self.buildings(player_id), exclude_id=b.id):
                raise PositionOccupied(f"Position ({x}, {y}) is occupied", x=x, y=y)

            b.x, b.y = x, y
            self.store.commit()
            log.info("Player %d: building %d moved to (%d, %d)", player_id, building_id, x, y)
            return b

    def demolish(self, player_id: int, building_id: int) -> None:
        with self.locks.hold(player_id):
            b = self.get_owned(player_id, building_id)
            defn = get_building_type(b.type_key)
            if defn.category == SPECIAL:
                raise TownHallProtected("The town hall cannot be demolished", building_id=building_id)

            self.store.delete_building(b)
            if defn.category == HOUSE:
                refresh_population(self.store, player_id)
            self.store.commit()
            log.info("Player %d: building %d (%s) demolished", player_id, building_id, defn.key)
