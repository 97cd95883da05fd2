# village/routes/battles.py
from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from village.game.battle import BattleResolver
from village.game.defense import DefenseManager
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.models.player import Player
from village.routes.auth import get_current_player
from village.routes.deps import get_clock, get_locks, get_store

router = APIRouter(prefix="/battles", tags=["battles"])


class AttackRequest(BaseModel):
    defender_id: int
    troops: Dict[str, int]


class AttackPreviewRequest(BaseModel):
    troops: Dict[str, int]


@router.post("/attack")
def attack(
    payload: AttackRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    outcome = BattleResolver(store, locks, clock=clock).execute(
        current_player.id, payload.defender_id, payload.troops
    )
    return outcome.to_dict()


@router.post("/attack/preview")
def attack_preview(
    payload: AttackPreviewRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return {"attack_power": BattleResolver(store, locks).attack_power(payload.troops)}


@router.get("/targets/{player_id}/defense")
def target_defense(
    player_id: int,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return DefenseManager(store, locks).defense_report(player_id)


@router.get("")
def battle_history(
    limit: int = Query(default=20, ge=1, le=100),
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return {"battles": BattleResolver(store, locks).history(current_player.id, limit=limit)}


@router.get("/{battle_id}")
def battle_record(
    battle_id: int,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    return BattleResolver(store, locks).get_record(current_player.id, battle_id)
