# village/game/population.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from village.config import BASE_POPULATION_CAP
from village.game.catalog import HOUSE, get_building_type, get_troop_type, house_capacity
from village.game.store import VillageStore
from village.models.training_entry import STATUS_TRAINING


@dataclass(frozen=True)
class PopulationStatus:
    used: int
    cap: int
    houses: int

    @property
    def available(self) -> int:
        return max(0, self.cap - self.used)


def population_cap(buildings: Iterable) -> tuple[int, int]:
    """(cap, house count). Base cap plus 10 per house, +5 per house level above 1."""
    cap = BASE_POPULATION_CAP
    houses = 0
    for b in buildings:
        if get_building_type(b.type_key).category == HOUSE:
            houses += 1
            cap += house_capacity(b.level)
    return cap, houses


def population_used(troops: Iterable, in_training: Iterable) -> int:
    # Queued units already hold their population slot
    used = 0
    for t in troops:
        used += t.quantity * get_troop_type(t.troop_key).population_cost
    for e in in_training:
        used += e.quantity * get_troop_type(e.troop_key).population_cost
    return used


def population_status(store: VillageStore, player_id: int) -> PopulationStatus:
    cap, houses = population_cap(store.list_buildings(player_id))
    used = population_used(
        store.list_troops(player_id),
        store.list_training(player_id, status=STATUS_TRAINING),
    )
    return PopulationStatus(used=used, cap=cap, houses=houses)


def refresh_population(store: VillageStore, player_id: int) -> PopulationStatus:
    """Recompute and copy onto the counters row. Does not commit."""
    status = population_status(store, player_id)
    counters = store.get_counters(player_id)
    if counters is not None:
        counters.population_used = status.used
        counters.population_cap = status.cap
    return status
