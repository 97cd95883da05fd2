# village/routes/village.py
from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from village.game.catalog import BUILDING_TYPES, get_building_type, production_per_minute, upgrade_cost
from village.game.construction import ConstructionPlanner
from village.game.ledger import ResourceLedger
from village.game.locks import PlayerLocks
from village.game.population import population_status
from village.game.store import VillageStore
from village.game.village import VillageState
from village.models.building import Building
from village.models.player import Player
from village.routes.auth import get_current_player
from village.routes.deps import get_clock, get_locks, get_store, tick_player_now

router = APIRouter(prefix="/village", tags=["village"])


class ConstructRequest(BaseModel):
    building_type: str = Field(min_length=2, max_length=32)
    x: int
    y: int


class UpgradeRequest(BaseModel):
    # Defaults to current level + 1
    target_level: int | None = None


class MoveRequest(BaseModel):
    x: int
    y: int


def _building_dict(b: Building) -> dict:
    defn = get_building_type(b.type_key)
    return {
        "id": b.id,
        "type": b.type_key,
        "name": defn.name,
        "category": defn.category,
        "level": b.level,
        "x": b.x,
        "y": b.y,
        "production_per_minute": float(production_per_minute(defn, b.level)),
        "produces": defn.produces,
        "created_at": b.created_at.isoformat(),
    }


def _planner(store: VillageStore, locks: PlayerLocks, clock: Callable[[], datetime]) -> ConstructionPlanner:
    ledger = ResourceLedger(store, locks, clock)
    return ConstructionPlanner(store, locks, ledger, VillageState(store, locks, clock), clock)


# ----- Resources -----

@router.get("/resources")
def get_resources(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    ledger = ResourceLedger(store, locks, clock)
    tick_player_now(ledger, current_player.id)
    return {"player_id": current_player.id, "resources": ledger.snapshot(current_player.id)}


@router.post("/resources/accrue")
def accrue_resources(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    ledger = ResourceLedger(store, locks, clock)
    result = ledger.accrue(current_player.id)
    return {
        "minutes": result.minutes,
        "produced": result.produced,
        "last_accrual_at": result.last_accrual_at.isoformat() if result.last_accrual_at else None,
        "resources": ledger.snapshot(current_player.id),
    }


@router.post("/resources/initialize")
def initialize_resources(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    ledger = ResourceLedger(store, locks, clock)
    ledger.initialize(current_player.id)
    VillageState(store, locks, clock).ensure_town_hall(current_player.id)
    return {"player_id": current_player.id, "resources": ledger.snapshot(current_player.id)}


@router.get("/population")
def get_population(
    store: VillageStore = Depends(get_store),
    current_player: Player = Depends(get_current_player),
) -> dict:
    pop = population_status(store, current_player.id)
    return {"used": pop.used, "cap": pop.cap, "available": pop.available, "houses": pop.houses}


# ----- Catalog -----

@router.get("/building-types")
def list_building_types() -> dict:
    return {
        "building_types": [
            {
                "key": d.key,
                "name": d.name,
                "category": d.category,
                "cost": d.cost,
                "produces": d.produces,
                "base_rate": d.base_rate,
                "required_town_hall": d.required_town_hall,
                "unique": d.unique,
                "upgrade_costs": {
                    lvl: upgrade_cost(d.key, lvl) for lvl in (2, 3, 4) if upgrade_cost(d.key, lvl)
                },
            }
            for d in BUILDING_TYPES.values()
        ]
    }


# ----- Buildings -----

@router.get("/buildings")
def list_buildings(
    store: VillageStore = Depends(get_store),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return {
        "player_id": current_player.id,
        "buildings": [_building_dict(b) for b in store.list_buildings(current_player.id)],
    }


@router.post("/buildings", status_code=status.HTTP_201_CREATED)
def construct_building(
    payload: ConstructRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    planner = _planner(store, locks, clock)
    result = planner.construct(current_player.id, payload.building_type, payload.x, payload.y)
    return {
        "status": "built",
        "building": _building_dict(result.building),
        "cost": result.cost,
        "warnings": result.warnings,
    }


@router.post("/buildings/{building_id}/upgrade")
def upgrade_building(
    building_id: int,
    payload: UpgradeRequest | None = None,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    planner = _planner(store, locks, clock)
    target = payload.target_level if payload else None
    result = planner.upgrade(current_player.id, building_id, target)
    return {
        "status": "upgraded",
        "building": _building_dict(result.building),
        "from_level": result.from_level,
        "to_level": result.to_level,
        "cost": result.cost,
    }


@router.get("/buildings/{building_id}/upgrade/preview")
def preview_upgrade(
    building_id: int,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return _planner(store, locks, clock).preview_upgrade(current_player.id, building_id)


@router.put("/buildings/{building_id}/position")
def move_building(
    building_id: int,
    payload: MoveRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    b = VillageState(store, locks, clock).move(current_player.id, building_id, payload.x, payload.y)
    return {"status": "moved", "building": _building_dict(b)}


@router.delete("/buildings/{building_id}")
def demolish_building(
    building_id: int,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    VillageState(store, locks, clock).demolish(current_player.id, building_id)
    return {"status": "demolished", "building_id": building_id}


@router.get("/limits")
def building_limits(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return VillageState(store, locks).limits(current_player.id)


@router.get("/town-hall")
def town_hall_info(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return VillageState(store, locks).town_hall_info(current_player.id)
