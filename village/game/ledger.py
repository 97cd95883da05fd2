# village/game/ledger.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fractions import Fraction
from typing import Callable, Dict, Iterable, Mapping, Optional

from village.config import BASE_POPULATION_CAP, STARTING_RESOURCES
from village.game.catalog import RESOURCE_KINDS, get_building_type, production_per_minute
from village.game.errors import InsufficientResources, NotFound
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.models.resource_counters import ResourceCounters

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accrual:
    minutes: int
    produced: Dict[str, int] = field(default_factory=dict)
    # Accrual clock after applying; unchanged when minutes == 0
    last_accrual_at: Optional[datetime] = None


# ----------------------------
# Pure helpers
# ----------------------------

def elapsed_minutes(last: datetime, now: datetime) -> int:
    return max(0, int((now - last).total_seconds() // 60))


def compute_accrual(last: datetime, buildings: Iterable, now: datetime) -> Accrual:
    """
    Resources produced between `last` and `now` by the given building instances.

    Each generator contributes floor(rate * minutes), summed per resource kind.
    The returned clock advances by whole minutes only, so a sub-minute
    remainder stays available for the next call.
    """
    minutes = elapsed_minutes(last, now)
    if minutes < 1:
        return Accrual(minutes=0, produced={}, last_accrual_at=last)

    produced: Dict[str, int] = {}
    for b in buildings:
        defn = get_building_type(b.type_key)
        rate: Fraction = production_per_minute(defn, b.level)
        if rate <= 0:
            continue
        amount = math.floor(rate * minutes)
        produced[defn.produces] = produced.get(defn.produces, 0) + amount

    return Accrual(
        minutes=minutes,
        produced=produced,
        last_accrual_at=last + timedelta(minutes=minutes),
    )


def apply_delta(values: Mapping[str, int], delta: Mapping[str, int]) -> Dict[str, int]:
    """Signed delta per kind; every result is clamped at zero."""
    out = {k: int(values.get(k, 0)) for k in RESOURCE_KINDS}
    for kind, amount in delta.items():
        if kind not in out:
            raise ValueError(f"Unknown resource kind '{kind}'")
        out[kind] = max(0, out[kind] + int(amount))
    return out


def missing_resources(values: Mapping[str, int], cost: Mapping[str, int]) -> Dict[str, Dict[str, int]]:
    missing: Dict[str, Dict[str, int]] = {}
    for kind, need in cost.items():
        have = int(values.get(kind, 0))
        if need > have:
            missing[kind] = {"need": int(need), "have": have, "missing": int(need) - have}
    return missing


def counters_to_dict(counters: ResourceCounters) -> Dict[str, int]:
    return {k: getattr(counters, k) for k in RESOURCE_KINDS}


def negate(cost: Mapping[str, int]) -> Dict[str, int]:
    return {k: -int(v) for k, v in cost.items()}


# ----------------------------
# Ledger
# ----------------------------

class ResourceLedger:
    """Owns a player's resource counters and the accrual clock."""

    def __init__(
        self,
        store: VillageStore,
        locks: PlayerLocks,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.locks = locks
        self.clock = clock

    def initialize(self, player_id: int, now: Optional[datetime] = None) -> ResourceCounters:
        with self.locks.hold(player_id):
            existing = self.store.get_counters(player_id)
            if existing is not None:
                return existing

            now = now or self.clock()
            counters = ResourceCounters(
                player_id=player_id,
                population_used=0,
                population_cap=BASE_POPULATION_CAP,
                last_accrual_at=now,
                updated_at=now,
                **STARTING_RESOURCES,
            )
            self.store.add_counters(counters)
            self.store.commit()
            log.info("Player %d: resource counters initialized", player_id)
            return counters

    def get(self, player_id: int) -> ResourceCounters:
        counters = self.store.get_counters(player_id)
        if counters is None:
            raise NotFound(f"No resources for player {player_id}", player_id=player_id)
        return counters

    def accrue(self, player_id: int, now: Optional[datetime] = None) -> Accrual:
        """
        Apply production since the last accrual. The new counters and the new clock
        go out in one commit; if that commit fails nothing moves and the same
        window is picked up on the next call.
        """
        now = now or self.clock()
        with self.locks.hold(player_id):
            counters = self.get(player_id)
            buildings = self.store.list_buildings(player_id)

            result = compute_accrual(counters.last_accrual_at, buildings, now)
            if result.minutes < 1:
                return result

            values = apply_delta(counters_to_dict(counters), result.produced)
            for kind, amount in values.items():
                setattr(counters, kind, amount)
            counters.last_accrual_at = result.last_accrual_at
            counters.updated_at = now
            self.store.commit()

            if result.produced:
                log.info("Player %d: accrued %d min %s", player_id, result.minutes, result.produced)
            return result

    def adjust(self, player_id: int, delta: Mapping[str, int]) -> ResourceCounters:
        """
        Apply a signed delta, clamping at zero. Leaves `last_accrual_at` alone.
        Caller holds the player's lock and decides when to commit.
        """
        counters = self.get(player_id)
        values = apply_delta(counters_to_dict(counters), delta)
        for kind, amount in values.items():
            setattr(counters, kind, amount)
        counters.updated_at = self.clock()
        return counters

    def require_affordable(self, counters: ResourceCounters, cost: Mapping[str, int], **context) -> None:
        missing = missing_resources(counters_to_dict(counters), cost)
        if missing:
            raise InsufficientResources(missing, cost=dict(cost), **context)

    def snapshot(self, player_id: int) -> Dict[str, object]:
        counters = self.get(player_id)
        out: Dict[str, object] = dict(counters_to_dict(counters))
        out["population_used"] = counters.population_used
        out["population_cap"] = counters.population_cap
        out["last_accrual_at"] = counters.last_accrual_at.isoformat()
        return out
