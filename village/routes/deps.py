# village/routes/deps.py
from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from village.config import TICK_ON_READ
from village.database import get_db
from village.game.ledger import ResourceLedger
from village.game.locks import PlayerLocks
from village.game.store import VillageStore


def get_store(db: Session = Depends(get_db)) -> VillageStore:
    return VillageStore(db)


def get_locks(request: Request) -> PlayerLocks:
    # One registry per application, created in create_app()
    return request.app.state.player_locks


def get_clock() -> Callable[[], datetime]:
    # Naive UTC, overridable in tests
    return datetime.utcnow


def tick_player_now(ledger: ResourceLedger, player_id: int) -> datetime:
    """
    Tick-on-read for one player.
    Returns 'now' used for the tick (helpful for time remaining).
    """
    now = ledger.clock()
    if TICK_ON_READ:
        ledger.accrue(player_id, now)
    return now
