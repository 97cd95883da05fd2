# village/routes/donations.py
from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from village.game.donations import DonationDesk, donation_to_dict
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.models.player import Player
from village.routes.auth import get_current_player
from village.routes.deps import get_clock, get_locks, get_store

router = APIRouter(prefix="/donations", tags=["donations"])


class DonationRequest(BaseModel):
    recipient_id: int
    wood: int = Field(default=0, ge=0)
    stone: int = Field(default=0, ge=0)
    iron: int = Field(default=0, ge=0)
    food: int = Field(default=0, ge=0)


@router.post("", status_code=status.HTTP_201_CREATED)
def donate(
    payload: DonationRequest,
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    clock: Callable[[], datetime] = Depends(get_clock),
    current_player: Player = Depends(get_current_player),
) -> dict:
    amounts = payload.model_dump(exclude={"recipient_id"})
    records = DonationDesk(store, locks, clock=clock).donate(current_player.id, payload.recipient_id, amounts)
    return {
        "status": "donated",
        "recipient_id": payload.recipient_id,
        "donated": {r.resource_type: r.amount for r in records},
        "records": [donation_to_dict(r) for r in records],
    }


@router.get("")
def donation_history(
    direction: str = Query(default="all", alias="type"),
    limit: int = Query(default=50, ge=1, le=100),
    store: VillageStore = Depends(get_store),
    locks: PlayerLocks = Depends(get_locks),
    current_player: Player = Depends(get_current_player),
) -> dict:
    donations = DonationDesk(store, locks).history(current_player.id, direction, limit=limit)
    return {"type": direction, "donations": donations}
