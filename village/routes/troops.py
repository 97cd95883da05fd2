# village/routes/troops.py
from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from village.game.catalog import TROOP_TYPES, get_troop_type, troop_categories
from village.game.defense import DefenseManager
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.game.training import TrainingScheduler
from village.models.player import Player
from village.models.training_entry import TrainingQueueEntry
from village.routes.auth import get_current_player
from village.routes.deps import get_clock, get_locks, get_store

router = APIRouter(prefix="/troops", tags=["troops"])


class TrainRequest(BaseModel):
    troop_type: str = Field(min_length=2, max_length=32)
    building_id: int
    quantity: int = Field(ge=1, le=1000)


class DefenseRequest(BaseModel):
    # troop_type -> quantity; replaces the building's current assignment
    troops: Dict[str, int]


def _entry_dict(e: TrainingQueueEntry) -> dict:
    return {
        "id": e.id,
        "troop_type": e.troop_key,
        "building_id": e.building_id,
        "quantity": e.quantity,
        "started_at": e.started_at.isoformat(),
        "ends_at": e.ends_at.isoformat(),
        "status": e.status,
    }


@router.get("/types")
def list_troop_types() -> dict:
    return {
        "troop_types": [
            {
                "key": t.key,
                "name": t.name,
                "category": t.category,
                "cost": t.cost,
                "population_cost": t.population_cost,
                "power": t.power,
                "required_building_level": t.required_building_level,
                "training_minutes": t.training_minutes,
            }
            for t in TROOP_TYPES.values()
        ],
        "categories": troop_categories(),
    }


@router.get("")
def list_troops(
    store: VillageStore = Depends(get_store),
    current_player: Player = Depends(get_current_player),
) -> dict:
    troops = store.list_troops(current_player.id)
    return {
        "player_id": current_player.id,
        "troops": [
            {
                "troop_type": t.troop_key,
                "quantity": t.quantity,
                "power": t.quantity * get_troop_type(t.troop_key).power,
            }
            for t in troops
        ],
    }


@router.post("/train", status_code=status.HTTP_201_CREATED)
def train_troops(
    payload: TrainRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    scheduler = TrainingScheduler(store, locks, clock=clock)
    entry = scheduler.enqueue(current_player.id, payload.troop_type, payload.building_id, payload.quantity)
    return {"status": "training", "entry": _entry_dict(entry)}


@router.get("/train/preview")
def preview_training(
    troop_type: str = Query(..., min_length=2, max_length=32),
    quantity: int = Query(1, ge=1, le=1000),
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return TrainingScheduler(store, locks, clock=clock).preview(current_player.id, troop_type, quantity)


@router.get("/queue")
def training_queue(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    scheduler = TrainingScheduler(store, locks, clock=clock)
    return {"player_id": current_player.id, "queue": scheduler.queue(current_player.id, status_filter)}


@router.post("/queue/{entry_id}/complete")
def complete_training(
    entry_id: int,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    entry = TrainingScheduler(store, locks, clock=clock).resolve(entry_id, current_player.id)
    return {"status": "completed", "entry": _entry_dict(entry)}


@router.delete("/{troop_type}")
def disband_troops(
    troop_type: str,
    quantity: int = Query(1, ge=1, le=1000),
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    remaining = DefenseManager(store, locks).disband(current_player.id, troop_type, quantity)
    return {"status": "disbanded", "troop_type": troop_type, "disbanded": quantity, "remaining": remaining}


# ----- Defense -----

@router.put("/defense/{building_id}")
def assign_defense(
    building_id: int,
    payload: DefenseRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    manager = DefenseManager(store, locks)
    manager.assign(current_player.id, building_id, payload.troops)
    return {"status": "assigned", "assignments": manager.assignments(current_player.id)}


@router.get("/defense")
def list_defense(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    manager = DefenseManager(store, locks)
    return {
        "assignments": manager.assignments(current_player.id),
        "defense": manager.defense_report(current_player.id),
    }


@router.get("/available")
def available_for_attack(
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return {"available": DefenseManager(store, locks).available_for_attack(current_player.id)}
