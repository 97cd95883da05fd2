# village/game/construction.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from village.config import BUILDING_MAX_LEVEL, TOWN_HALL_MAX_LEVEL
from village.game.catalog import (
    HOUSE,
    WALL,
    BuildingType,
    general_building_cap,
    get_building_type,
    upgrade_cost,
    wall_cap,
)
from village.game.errors import (
    BuildingLimitReached,
    DuplicateUniqueBuilding,
    GameError,
    InvalidInput,
    InvalidPosition,
    MaxLevelExceeded,
    NoUpgradeConfig,
    PositionOccupied,
    StoreFailure,
    TownHallLevelTooLow,
)
from village.game.ledger import ResourceLedger, counters_to_dict, missing_resources, negate
from village.game.locks import PlayerLocks
from village.game.population import refresh_population
from village.game.store import VillageStore
from village.game.village import (
    VillageState,
    building_counts,
    find_town_hall,
    in_bounds,
    occupied_cells,
)
from village.models.building import Building

log = logging.getLogger(__name__)


@dataclass
class ConstructionResult:
    building: Building
    cost: Dict[str, int]
    # Non-fatal problems after the building was committed
    warnings: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class UpgradeResult:
    building: Building
    from_level: int
    to_level: int
    cost: Dict[str, int]


class ConstructionPlanner:
    """Admission control for placing and levelling buildings."""

    def __init__(
        self,
        store: VillageStore,
        locks: PlayerLocks,
        ledger: Optional[ResourceLedger] = None,
        village: Optional[VillageState] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.locks = locks
        self.clock = clock
        self.ledger = ledger or ResourceLedger(store, locks, clock)
        self.village = village or VillageState(store, locks, clock)

    # ----- Construct -----

    def construct(self, player_id: int, type_key: str, x: int, y: int) -> ConstructionResult:
        with self.locks.hold(player_id):
            if not in_bounds(x, y):
                raise InvalidPosition(f"Position ({x}, {y}) is outside the village", x=x, y=y)

            buildings = self.store.list_buildings(player_id)
            if (x, y) in occupied_cells(buildings):
                raise PositionOccupied(f"Position ({x}, {y}) is occupied", x=x, y=y)

            defn = get_building_type(type_key)
            cost = defn.cost

            self.ledger.accrue(player_id)
            counters = self.ledger.get(player_id)
            self.ledger.require_affordable(counters, cost, building_type=type_key)

            if not defn.is_town_hall:
                th = find_town_hall(buildings)
                if th is None:
                    th = self.village.ensure_town_hall(player_id, avoid=(x, y))
                    buildings = self.store.list_buildings(player_id)
                if th.level < defn.required_town_hall:
                    raise TownHallLevelTooLow(
                        f"{defn.name} requires town hall level {defn.required_town_hall}",
                        required=defn.required_town_hall,
                        current=th.level,
                    )
                self._check_capacity(defn, th.level, buildings)

            if defn.unique and any(b.type_key == defn.key for b in buildings):
                raise DuplicateUniqueBuilding(f"Only one {defn.name} is allowed", building_type=type_key)

            building = Building(
                player_id=player_id,
                type_key=defn.key,
                level=1,
                x=x,
                y=y,
                created_at=self.clock(),
            )
            self.store.add_building(building)
            self.store.commit()
            log.info("Player %d: built %s at (%d, %d)", player_id, defn.key, x, y)

            building_id = building.id
            result = ConstructionResult(building=building, cost=cost)

            # The building is committed; a failed deduction is reported, not undone.
            try:
                self.ledger.adjust(player_id, negate(cost))
                if defn.category == HOUSE:
                    refresh_population(self.store, player_id)
                self.store.commit()
            except StoreFailure as exc:
                log.error(
                    "Player %d: %s %d created but cost %s was not deducted: %s",
                    player_id, defn.key, building_id, cost, exc.message,
                )
                result.warnings.append({
                    "error": "CostNotDeducted",
                    "building_id": building_id,
                    "cost": cost,
                    "reason": exc.message,
                })
            return result

    def _check_capacity(self, defn: BuildingType, th_level: int, buildings: List[Building]) -> None:
        counts = building_counts(buildings)
        if defn.category == WALL:
            cap = wall_cap(th_level)
            if counts["walls"] >= cap:
                raise BuildingLimitReached(
                    f"Wall limit reached ({counts['walls']}/{cap})",
                    current=counts["walls"],
                    max=cap,
                    town_hall_level=th_level,
                )
            return

        cap = general_building_cap(th_level)
        if counts["general"] >= cap:
            raise BuildingLimitReached(
                f"Building limit reached ({counts['general']}/{cap})",
                current=counts["general"],
                max=cap,
                town_hall_level=th_level,
            )

    # ----- Upgrade -----

    def _check_upgrade(self, player_id: int, building: Building, to_level: int) -> Dict[str, int]:
        defn = get_building_type(building.type_key)

        if to_level != building.level + 1:
            raise InvalidInput(
                "Buildings upgrade one level at a time",
                current_level=building.level,
                target_level=to_level,
            )

        max_level = TOWN_HALL_MAX_LEVEL if defn.is_town_hall else BUILDING_MAX_LEVEL
        if to_level > max_level:
            raise MaxLevelExceeded(
                f"{defn.name} is capped at level {max_level}",
                max_level=max_level,
                target_level=to_level,
            )

        cost = upgrade_cost(defn.key, to_level)
        if cost is None:
            raise NoUpgradeConfig(
                f"No upgrade configured for {defn.name} level {to_level}",
                building_type=defn.key,
                target_level=to_level,
            )

        counters = self.ledger.get(player_id)
        self.ledger.require_affordable(counters, cost, building_id=building.id, target_level=to_level)

        if not defn.is_town_hall:
            th_level = self.village.town_hall_level(player_id)
            # May reach the town-hall level, never pass it
            if building.level >= th_level:
                raise TownHallLevelTooLow(
                    f"Upgrade the town hall before taking {defn.name} past level {th_level}",
                    required=to_level,
                    current=th_level,
                )
        return cost

    def upgrade(self, player_id: int, building_id: int, to_level: Optional[int] = None) -> UpgradeResult:
        with self.locks.hold(player_id):
            building = self.village.get_owned(player_id, building_id)
            from_level = building.level
            target = from_level + 1 if to_level is None else to_level

            self.ledger.accrue(player_id)
            cost = self._check_upgrade(player_id, building, target)

            self.ledger.adjust(player_id, negate(cost))
            building.level = target
            if get_building_type(building.type_key).category == HOUSE:
                refresh_population(self.store, player_id)
            self.store.commit()

            log.info(
                "Player %d: %s %d upgraded %d -> %d",
                player_id, building.type_key, building.id, from_level, target,
            )
            return UpgradeResult(building=building, from_level=from_level, to_level=target, cost=cost)

    def preview_upgrade(self, player_id: int, building_id: int) -> Dict[str, Any]:
        building = self.village.get_owned(player_id, building_id)
        to_level = building.level + 1
        out: Dict[str, Any] = {
            "building_id": building.id,
            "building_type": building.type_key,
            "from_level": building.level,
            "to_level": to_level,
            "cost": upgrade_cost(building.type_key, to_level),
        }
        try:
            self._check_upgrade(player_id, building, to_level)
        except GameError as exc:
            out["allowed"] = False
            out["blocked"] = exc.to_dict()
        else:
            out["allowed"] = True

        insufficient = {}
        if out["cost"] is not None:
            insufficient = missing_resources(counters_to_dict(self.ledger.get(player_id)), out["cost"])
        out["insufficient"] = insufficient
        return out

    def can_upgrade(self, player_id: int, building_id: int) -> bool:
        return bool(self.preview_upgrade(player_id, building_id)["allowed"])
