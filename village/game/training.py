# village/game/training.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from village.game.catalog import get_building_type, get_troop_type
from village.game.errors import (
    AlreadyResolved,
    BuildingLevelTooLow,
    InvalidInput,
    NotFound,
    PopulationLimitReached,
    StoreFailure,
    TrainingInProgress,
    WrongTrainingBuilding,
)
from village.game.ledger import ResourceLedger, counters_to_dict, missing_resources, negate
from village.game.locks import PlayerLocks
from village.game.population import population_status, refresh_population
from village.game.store import VillageStore
from village.models.training_entry import STATUS_TRAINING, TrainingQueueEntry

log = logging.getLogger(__name__)


def training_cost(troop_key: str, quantity: int) -> Dict[str, int]:
    troop = get_troop_type(troop_key)
    return {k: v * quantity for k, v in troop.cost.items()}


class TrainingScheduler:
    """Delayed-completion troop training, bounded by population capacity."""

    def __init__(
        self,
        store: VillageStore,
        locks: PlayerLocks,
        ledger: Optional[ResourceLedger] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.locks = locks
        self.clock = clock
        self.ledger = ledger or ResourceLedger(store, locks, clock)

    def enqueue(self, player_id: int, troop_key: str, building_id: int, quantity: int) -> TrainingQueueEntry:
        if quantity < 1:
            raise InvalidInput("Quantity must be at least 1", quantity=quantity)

        troop = get_troop_type(troop_key)

        with self.locks.hold(player_id):
            building = self.store.get_building(building_id)
            if building is None or building.player_id != player_id:
                raise NotFound("Building not found", building_id=building_id)

            defn = get_building_type(building.type_key)
            if defn.trains != troop.category:
                raise WrongTrainingBuilding(
                    f"{troop.name} cannot be trained in {defn.name}",
                    troop_type=troop.key,
                    building_type=defn.key,
                )
            if building.level < troop.required_building_level:
                raise BuildingLevelTooLow(
                    f"{troop.name} requires {defn.name} level {troop.required_building_level}",
                    required=troop.required_building_level,
                    current=building.level,
                )

            cost = training_cost(troop.key, quantity)
            self.ledger.accrue(player_id)
            counters = self.ledger.get(player_id)
            self.ledger.require_affordable(counters, cost, troop_type=troop.key, quantity=quantity)

            pop = population_status(self.store, player_id)
            required = troop.population_cost * quantity
            if pop.used + required > pop.cap:
                raise PopulationLimitReached(current=pop.used, required=required, cap=pop.cap)

            # Step 1: take the payment
            self.ledger.adjust(player_id, negate(cost))
            self.store.commit()

            # Step 2: queue the entry, refunding if it cannot be stored
            now = self.clock()
            try:
                entry = TrainingQueueEntry(
                    player_id=player_id,
                    troop_key=troop.key,
                    building_id=building_id,
                    quantity=quantity,
                    started_at=now,
                    ends_at=now + timedelta(minutes=troop.training_minutes * quantity),
                    status=STATUS_TRAINING,
                )
                self.store.add_training(entry)
                refresh_population(self.store, player_id)
                self.store.commit()
            except StoreFailure as exc:
                log.warning("Player %d: training entry not stored, refunding %s (%s)", player_id, cost, exc.message)
                self._refund(player_id, cost)
                raise

            log.info(
                "Player %d: training %d x %s until %s",
                player_id, quantity, troop.key, entry.ends_at.isoformat(),
            )
            return entry

    def _refund(self, player_id: int, cost: Dict[str, int]) -> None:
        try:
            self.ledger.adjust(player_id, cost)
            self.store.commit()
        except StoreFailure:
            log.error("Player %d: refund of %s failed, resources lost", player_id, cost)
            raise

    def resolve(self, entry_id: int, player_id: int, now: Optional[datetime] = None) -> TrainingQueueEntry:
        """Move a finished entry into troop inventory. Each entry resolves once."""
        now = now or self.clock()
        with self.locks.hold(player_id):
            entry = self.store.get_training(entry_id)
            if entry is None or entry.player_id != player_id:
                raise NotFound("Training entry not found", entry_id=entry_id)
            if entry.status != STATUS_TRAINING:
                raise AlreadyResolved("Training entry already completed", entry_id=entry_id)
            if now < entry.ends_at:
                raise TrainingInProgress(
                    "Training still in progress",
                    entry_id=entry_id,
                    ends_at=entry.ends_at.isoformat(),
                    remaining_seconds=int((entry.ends_at - now).total_seconds()),
                )

            if not self.store.mark_training_completed(entry_id, now):
                raise AlreadyResolved("Training entry already completed", entry_id=entry_id)

            self.store.add_troops(player_id, entry.troop_key, entry.quantity)
            refresh_population(self.store, player_id)
            self.store.commit()

            log.info("Player %d: %d x %s joined the army", player_id, entry.quantity, entry.troop_key)
            return entry

    def queue(self, player_id: int, status: Optional[str] = None) -> List[Dict[str, Any]]:
        now = self.clock()
        out: List[Dict[str, Any]] = []
        for e in self.store.list_training(player_id, status=status):
            remaining = max(0, int((e.ends_at - now).total_seconds()))
            out.append({
                "id": e.id,
                "troop_type": e.troop_key,
                "building_id": e.building_id,
                "quantity": e.quantity,
                "started_at": e.started_at.isoformat(),
                "ends_at": e.ends_at.isoformat(),
                "status": e.status,
                "remaining_seconds": remaining if e.status == STATUS_TRAINING else 0,
                "ready": e.status == STATUS_TRAINING and remaining == 0,
            })
        return out

    def preview(self, player_id: int, troop_key: str, quantity: int) -> Dict[str, Any]:
        troop = get_troop_type(troop_key)
        cost = training_cost(troop.key, quantity)
        insufficient = missing_resources(counters_to_dict(self.ledger.get(player_id)), cost)
        pop = population_status(self.store, player_id)
        required = troop.population_cost * quantity
        return {
            "troop_type": troop.key,
            "quantity": quantity,
            "cost": cost,
            "insufficient": insufficient,
            "population": {"used": pop.used, "required": required, "cap": pop.cap},
            "allowed": not insufficient and pop.used + required <= pop.cap,
            "duration_minutes": troop.training_minutes * quantity,
        }
