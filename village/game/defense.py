# village/game/defense.py
from __future__ import annotations

import logging
from typing import Dict, List, Mapping

from village.game.catalog import DEFENSIVE, get_building_type, get_troop_type
from village.game.errors import InsufficientTroops, InvalidInput, NotFound
from village.game.locks import PlayerLocks
from village.game.population import refresh_population
from village.game.store import DefenseSnapshot, VillageStore
from village.models.defense_assignment import DefenseAssignment

log = logging.getLogger(__name__)

WALL_POWER_PER_LEVEL = 10


def troop_power(troops: Mapping[str, int]) -> int:
    return sum(qty * get_troop_type(key).power for key, qty in troops.items())


def defense_power(snapshot: DefenseSnapshot) -> Dict[str, int]:
    troops = troop_power(snapshot.assigned)
    walls = sum(level * WALL_POWER_PER_LEVEL for level in snapshot.wall_levels)
    return {"troops": troops, "walls": walls, "total": troops + walls}


def assigned_totals(rows: List[DefenseAssignment]) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for r in rows:
        out[r.troop_key] = out.get(r.troop_key, 0) + r.quantity
    return out


class DefenseManager:
    """
    Assigns owned troops to defensive buildings.

    Across all of a player's buildings, the assigned quantity of a troop type
    never exceeds the owned quantity.
    """

    def __init__(self, store: VillageStore, locks: PlayerLocks) -> None:
        self.store = store
        self.locks = locks

    def owned(self, player_id: int) -> Dict[str, int]:
        return {t.troop_key: t.quantity for t in self.store.list_troops(player_id)}

    def assign(self, player_id: int, building_id: int, troops: Mapping[str, int]) -> List[DefenseAssignment]:
        """Replace the assignment set of one defensive building."""
        for key, qty in troops.items():
            get_troop_type(key)
            if qty < 0:
                raise InvalidInput("Quantities must not be negative", troop_type=key, quantity=qty)

        with self.locks.hold(player_id):
            building = self.store.get_building(building_id)
            if building is None or building.player_id != player_id:
                raise NotFound("Building not found", building_id=building_id)
            if get_building_type(building.type_key).category != DEFENSIVE:
                raise InvalidInput("Troops can only be assigned to defensive buildings", building_id=building_id)

            owned = self.owned(player_id)
            elsewhere = assigned_totals(
                [r for r in self.store.list_assignments(player_id) if r.building_id != building_id]
            )

            short: Dict[str, Dict[str, int]] = {}
            for key, qty in troops.items():
                available = owned.get(key, 0) - elsewhere.get(key, 0)
                if qty > available:
                    short[key] = {"requested": qty, "available": max(0, available)}
            if short:
                raise InsufficientTroops("Not enough free troops to assign", troops=short)

            rows = self.store.replace_assignments(player_id, building_id, dict(troops))
            self.store.commit()
            log.info("Player %d: defense of building %d set to %s", player_id, building_id, dict(troops))
            return rows

    def assignments(self, player_id: int) -> List[Dict[str, int]]:
        return [
            {"building_id": r.building_id, "troop_type": r.troop_key, "quantity": r.quantity}
            for r in self.store.list_assignments(player_id)
        ]

    def available_for_attack(self, player_id: int) -> Dict[str, int]:
        assigned = assigned_totals(self.store.list_assignments(player_id))
        return {key: max(0, qty - assigned.get(key, 0)) for key, qty in self.owned(player_id).items()}

    def defense_report(self, player_id: int) -> Dict[str, object]:
        if self.store.get_player(player_id) is None:
            raise NotFound("Player not found", player_id=player_id)
        snapshot = self.store.read_defense_for(player_id)
        report: Dict[str, object] = dict(defense_power(snapshot))
        report["player_id"] = player_id
        report["assigned"] = dict(snapshot.assigned)
        report["wall_levels"] = list(snapshot.wall_levels)
        return report

    def trim_to_owned(self, player_id: int) -> None:
        """
        After troop losses, shrink assignments so none exceed what is owned.
        Latest buildings give troops back first. Caller commits.
        """
        owned = self.owned(player_id)
        rows = self.store.list_assignments(player_id)
        excess = {k: q - owned.get(k, 0) for k, q in assigned_totals(rows).items()}

        for row in sorted(rows, key=lambda r: r.building_id, reverse=True):
            over = excess.get(row.troop_key, 0)
            if over <= 0:
                continue
            take = min(over, row.quantity)
            row.quantity -= take
            excess[row.troop_key] = over - take
            if row.quantity == 0:
                self.store.delete_assignment(row)
        self.store.flush()

    def disband(self, player_id: int, troop_key: str, quantity: int = 1) -> int:
        """Dismiss owned units for good. Returns what is left of that type."""
        troop = get_troop_type(troop_key)
        if quantity < 1:
            raise InvalidInput("Quantity must be at least 1", quantity=quantity)

        with self.locks.hold(player_id):
            row = self.store.get_troop(player_id, troop.key)
            owned = row.quantity if row is not None else 0
            if owned < quantity:
                raise InsufficientTroops(
                    f"Not enough {troop.name} to disband",
                    troop_type=troop.key,
                    requested=quantity,
                    owned=owned,
                )

            row.quantity -= quantity
            remaining = row.quantity
            if remaining == 0:
                self.store.delete_troop(row)
            self.store.flush()
            self.trim_to_owned(player_id)
            refresh_population(self.store, player_id)
            self.store.commit()

            log.info("Player %d: disbanded %d %s, %d left", player_id, quantity, troop.key, remaining)
            return remaining
