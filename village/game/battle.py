# village/game/battle.py
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from fractions import Fraction
from typing import Any, Callable, Dict, List, Mapping, Optional

from village.game.catalog import get_troop_type
from village.game.defense import DefenseManager, defense_power, troop_power
from village.game.errors import InsufficientTroops, InvalidInput, NotFound, SelfAttack, StoreFailure
from village.game.ledger import ResourceLedger, counters_to_dict
from village.game.locks import PlayerLocks
from village.game.population import refresh_population
from village.game.store import VillageStore
from village.models.battle_record import BattleRecord

log = logging.getLogger(__name__)

PILLAGE_KINDS: tuple[str, ...] = ("wood", "stone", "iron", "food")


# ----------------------------
# Battle math (exact fractions)
# ----------------------------

def power_ratio(attack: int, defense: int) -> Fraction:
    total = attack + defense
    if total <= 0:
        return Fraction(0)
    return Fraction(abs(attack - defense), total)


def loss_fraction(attack: int, defense: int) -> Fraction:
    ratio = power_ratio(attack, defense)
    if attack >= defense:
        return max(Fraction(1, 10), Fraction(1, 2) - ratio)
    return min(Fraction(1), max(Fraction(1, 2), Fraction(4, 5) + ratio))


def steal_fraction(attack: int, defense: int) -> Fraction:
    return Fraction(1, 20) + power_ratio(attack, defense) / 10


def troop_losses(troops: Mapping[str, int], fraction: Fraction) -> Dict[str, int]:
    return {key: math.floor(qty * fraction) for key, qty in troops.items()}


def pillage(defender: Mapping[str, int], fraction: Fraction) -> Dict[str, int]:
    return {kind: math.floor(int(defender.get(kind, 0)) * fraction) for kind in PILLAGE_KINDS}


@dataclass
class BattleOutcome:
    attacker_id: int
    defender_id: int
    attack_power: int
    defense_power: int
    victory: bool
    loss_fraction: Fraction
    attacking_troops: Dict[str, int]
    attacker_losses: Dict[str, int]
    stolen: Dict[str, int]
    record_id: Optional[int] = None
    # Non-fatal problems after the outcome was committed
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "attack_power": self.attack_power,
            "defense_power": self.defense_power,
            "result": "victory" if self.victory else "defeat",
            "loss_fraction": float(self.loss_fraction),
            "attacking_troops": self.attacking_troops,
            "attacker_losses": self.attacker_losses,
            "defender_losses": {},
            "stolen": self.stolen,
            "battle_id": self.record_id,
            "warnings": self.warnings,
        }


def record_to_dict(r: BattleRecord) -> Dict[str, Any]:
    return {
        "id": r.id,
        "attacker_id": r.attacker_id,
        "defender_id": r.defender_id,
        "attack_power": r.attack_power,
        "defense_power": r.defense_power,
        "result": "victory" if r.attacker_won else "defeat",
        "stolen": {
            "wood": r.stolen_wood,
            "stone": r.stolen_stone,
            "food": r.stolen_food,
            "iron": r.stolen_iron,
        },
        "attacking_troops": json.loads(r.attacking_troops_json or "{}"),
        "attacker_losses": json.loads(r.attacker_losses_json or "{}"),
        "defender_losses": json.loads(r.defender_losses_json or "{}"),
        "created_at": r.created_at.isoformat(),
    }


class BattleResolver:
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
        self.defense = DefenseManager(store, locks)

    def attack_power(self, troops: Mapping[str, int]) -> int:
        return troop_power(troops)

    def _validate_troops(self, troops: Mapping[str, int]) -> Dict[str, int]:
        if not troops:
            raise InvalidInput("Select at least one troop to attack")
        clean: Dict[str, int] = {}
        for key, qty in troops.items():
            get_troop_type(key)
            if qty < 0:
                raise InvalidInput("Quantities must not be negative", troop_type=key, quantity=qty)
            if qty > 0:
                clean[key] = int(qty)
        if not clean:
            raise InvalidInput("Select at least one troop to attack")
        return clean

    def execute(self, attacker_id: int, defender_id: int, troops: Mapping[str, int]) -> BattleOutcome:
        if attacker_id == defender_id:
            raise SelfAttack("Players cannot attack themselves", player_id=attacker_id)
        attacking = self._validate_troops(troops)

        with self.locks.hold(attacker_id, defender_id):
            if self.store.get_player(defender_id) is None:
                raise NotFound("Defender not found", player_id=defender_id)
            # Pillage and affordability see production up to now
            self.ledger.accrue(attacker_id)
            self.ledger.accrue(defender_id)
            defender_counters = self.ledger.get(defender_id)

            owned = self.defense.owned(attacker_id)
            short = {
                key: {"requested": qty, "owned": owned.get(key, 0)}
                for key, qty in attacking.items()
                if owned.get(key, 0) < qty
            }
            if short:
                raise InsufficientTroops("Not enough troops for this attack", troops=short)

            attack = troop_power(attacking)
            defense = defense_power(self.store.read_defense_for(defender_id))["total"]
            victory = attack >= defense
            fraction = loss_fraction(attack, defense)
            losses = troop_losses(attacking, fraction)

            # Attacker casualties
            for key, lost in losses.items():
                if lost <= 0:
                    continue
                row = self.store.get_troop(attacker_id, key)
                row.quantity -= lost
                if row.quantity <= 0:
                    self.store.delete_troop(row)
            self.store.flush()
            self.defense.trim_to_owned(attacker_id)
            refresh_population(self.store, attacker_id)

            stolen = {kind: 0 for kind in PILLAGE_KINDS}
            if victory:
                stolen = pillage(counters_to_dict(defender_counters), steal_fraction(attack, defense))
                self.ledger.adjust(defender_id, {k: -v for k, v in stolen.items()})
                self.ledger.adjust(attacker_id, stolen)

            self.store.commit()

            outcome = BattleOutcome(
                attacker_id=attacker_id,
                defender_id=defender_id,
                attack_power=attack,
                defense_power=defense,
                victory=victory,
                loss_fraction=fraction,
                attacking_troops=attacking,
                attacker_losses=losses,
                stolen=stolen,
            )
            log.info(
                "Battle %d -> %d: %s (atk %d vs def %d), losses %s, stolen %s",
                attacker_id, defender_id, "victory" if victory else "defeat",
                attack, defense, losses, stolen,
            )

            self._record(outcome)
            return outcome

    def _record(self, outcome: BattleOutcome) -> None:
        """History is best-effort: a failed write becomes a warning on the outcome."""
        record = BattleRecord(
            attacker_id=outcome.attacker_id,
            defender_id=outcome.defender_id,
            attack_power=outcome.attack_power,
            defense_power=outcome.defense_power,
            attacker_won=outcome.victory,
            stolen_wood=outcome.stolen.get("wood", 0),
            stolen_stone=outcome.stolen.get("stone", 0),
            stolen_food=outcome.stolen.get("food", 0),
            stolen_iron=outcome.stolen.get("iron", 0),
            attacking_troops_json=json.dumps(outcome.attacking_troops, sort_keys=True),
            attacker_losses_json=json.dumps(outcome.attacker_losses, sort_keys=True),
            defender_losses_json=json.dumps({}),
            created_at=self.clock(),
        )
        try:
            self.store.add_battle(record)
            self.store.commit()
            outcome.record_id = record.id
        except StoreFailure as exc:
            log.warning(
                "Battle %d -> %d resolved but not recorded: %s",
                outcome.attacker_id, outcome.defender_id, exc.message,
            )
            outcome.warnings.append({"error": "BattleNotRecorded", "reason": exc.message})

    def history(self, player_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        return [record_to_dict(r) for r in self.store.list_battles(player_id, limit=limit)]

    def get_record(self, player_id: int, battle_id: int) -> Dict[str, Any]:
        r = self.store.get_battle(battle_id)
        if r is None or player_id not in (r.attacker_id, r.defender_id):
            raise NotFound("Battle not found", battle_id=battle_id)
        return record_to_dict(r)
