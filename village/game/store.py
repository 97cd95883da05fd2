# village/game/store.py
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from village.game.catalog import BUILDING_TYPES, WALL
from village.game.errors import Busy, StoreFailure
from village.models.battle_record import BattleRecord
from village.models.building import Building
from village.models.defense_assignment import DefenseAssignment
from village.models.donation_record import DonationRecord
from village.models.player import Player
from village.models.player_troop import PlayerTroop
from village.models.resource_counters import ResourceCounters
from village.models.session import SessionToken
from village.models.training_entry import STATUS_COMPLETED, STATUS_TRAINING, TrainingQueueEntry

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DefenseSnapshot:
    """What an attacker is allowed to see of a defender."""

    player_id: int
    # troop_key -> total assigned across every defensive building
    assigned: Dict[str, int] = field(default_factory=dict)
    wall_levels: List[int] = field(default_factory=list)


def _guarded(fn: Callable[..., T]) -> Callable[..., T]:
    """Translate SQLAlchemy failures into game errors, leaving the session usable."""

    @functools.wraps(fn)
    def wrapper(self: "VillageStore", *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except StaleDataError as exc:
            self.db.rollback()
            log.info("Concurrent write detected in %s: %s", fn.__name__, exc)
            raise Busy("Player state changed concurrently, retry", operation=fn.__name__) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.exception("Store operation %s failed", fn.__name__)
            raise StoreFailure(f"Store operation '{fn.__name__}' failed", cause=exc, operation=fn.__name__) from exc

    return wrapper


class VillageStore:
    """
    Durable store for every game entity, backed by one SQLAlchemy session.

    Components receive a store instance explicitly and decide their own commit
    points. Reads are scoped by player id; the single cross-player read is
    `read_defense_for`.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # ----- Transactions -----

    @_guarded
    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    @_guarded
    def flush(self) -> None:
        self.db.flush()

    # ----- Players / sessions -----

    @_guarded
    def get_player(self, player_id: int) -> Optional[Player]:
        return self.db.get(Player, player_id)

    @_guarded
    def find_player_by_username(self, username: str) -> Optional[Player]:
        return self.db.query(Player).filter(Player.username == username).first()

    @_guarded
    def add_player(self, player: Player) -> Player:
        self.db.add(player)
        self.db.flush()
        return player

    @_guarded
    def add_session(self, sess: SessionToken) -> SessionToken:
        self.db.add(sess)
        self.db.flush()
        return sess

    @_guarded
    def find_session(self, token: str) -> Optional[SessionToken]:
        return self.db.query(SessionToken).filter(SessionToken.token == token).first()

    # ----- Resource counters -----

    @_guarded
    def get_counters(self, player_id: int) -> Optional[ResourceCounters]:
        return self.db.get(ResourceCounters, player_id)

    @_guarded
    def add_counters(self, counters: ResourceCounters) -> ResourceCounters:
        self.db.add(counters)
        self.db.flush()
        return counters

    # ----- Buildings -----

    @_guarded
    def list_buildings(self, player_id: int) -> List[Building]:
        return (
            self.db.query(Building)
            .filter(Building.player_id == player_id)
            .order_by(Building.id)
            .all()
        )

    @_guarded
    def get_building(self, building_id: int) -> Optional[Building]:
        return self.db.get(Building, building_id)

    @_guarded
    def add_building(self, building: Building) -> Building:
        self.db.add(building)
        self.db.flush()
        return building

    @_guarded
    def delete_building(self, building: Building) -> None:
        (
            self.db.query(DefenseAssignment)
            .filter(DefenseAssignment.building_id == building.id)
            .delete(synchronize_session=False)
        )
        self.db.delete(building)
        self.db.flush()

    # ----- Troop inventory -----

    @_guarded
    def list_troops(self, player_id: int) -> List[PlayerTroop]:
        return (
            self.db.query(PlayerTroop)
            .filter(PlayerTroop.player_id == player_id)
            .order_by(PlayerTroop.troop_key)
            .all()
        )

    @_guarded
    def get_troop(self, player_id: int, troop_key: str) -> Optional[PlayerTroop]:
        return (
            self.db.query(PlayerTroop)
            .filter(PlayerTroop.player_id == player_id, PlayerTroop.troop_key == troop_key)
            .first()
        )

    @_guarded
    def add_troops(self, player_id: int, troop_key: str, quantity: int) -> PlayerTroop:
        row = self.get_troop(player_id, troop_key)
        if row is None:
            row = PlayerTroop(player_id=player_id, troop_key=troop_key, quantity=0)
            self.db.add(row)
        row.quantity += quantity
        self.db.flush()
        return row

    @_guarded
    def delete_troop(self, row: PlayerTroop) -> None:
        self.db.delete(row)
        self.db.flush()

    # ----- Training queue -----

    @_guarded
    def add_training(self, entry: TrainingQueueEntry) -> TrainingQueueEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    @_guarded
    def get_training(self, entry_id: int) -> Optional[TrainingQueueEntry]:
        return self.db.get(TrainingQueueEntry, entry_id)

    @_guarded
    def list_training(self, player_id: int, status: Optional[str] = None) -> List[TrainingQueueEntry]:
        q = self.db.query(TrainingQueueEntry).filter(TrainingQueueEntry.player_id == player_id)
        if status:
            q = q.filter(TrainingQueueEntry.status == status)
        return q.order_by(TrainingQueueEntry.ends_at, TrainingQueueEntry.id).all()

    @_guarded
    def mark_training_completed(self, entry_id: int, now: datetime) -> bool:
        """Compare-and-set training -> completed. False if someone else got there first."""
        result = self.db.execute(
            update(TrainingQueueEntry)
            .where(
                TrainingQueueEntry.id == entry_id,
                TrainingQueueEntry.status == STATUS_TRAINING,
            )
            .values(status=STATUS_COMPLETED, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ----- Defense -----

    @_guarded
    def list_assignments(self, player_id: int, building_id: Optional[int] = None) -> List[DefenseAssignment]:
        q = self.db.query(DefenseAssignment).filter(DefenseAssignment.player_id == player_id)
        if building_id is not None:
            q = q.filter(DefenseAssignment.building_id == building_id)
        return q.order_by(DefenseAssignment.building_id, DefenseAssignment.troop_key).all()

    @_guarded
    def replace_assignments(self, player_id: int, building_id: int, troops: Dict[str, int]) -> List[DefenseAssignment]:
        (
            self.db.query(DefenseAssignment)
            .filter(DefenseAssignment.building_id == building_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        rows = [
            DefenseAssignment(player_id=player_id, building_id=building_id, troop_key=k, quantity=q)
            for k, q in sorted(troops.items())
            if q > 0
        ]
        self.db.add_all(rows)
        self.db.flush()
        return rows

    @_guarded
    def delete_assignment(self, row: DefenseAssignment) -> None:
        self.db.delete(row)
        self.db.flush()

    @_guarded
    def read_defense_for(self, player_id: int) -> DefenseSnapshot:
        """
        Cross-player read of a defender's assignments and walls.

        This is the only store call that returns another player's state; whether a
        caller may use it is decided outside the game core.
        """
        assigned: Dict[str, int] = {}
        for row in self.db.query(DefenseAssignment).filter(DefenseAssignment.player_id == player_id).all():
            assigned[row.troop_key] = assigned.get(row.troop_key, 0) + row.quantity

        wall_keys = [k for k, d in BUILDING_TYPES.items() if d.category == WALL]
        walls = (
            self.db.query(Building)
            .filter(Building.player_id == player_id, Building.type_key.in_(wall_keys))
            .order_by(Building.id)
            .all()
        )
        return DefenseSnapshot(player_id=player_id, assigned=assigned, wall_levels=[w.level for w in walls])

    # ----- Battles -----

    @_guarded
    def add_battle(self, record: BattleRecord) -> BattleRecord:
        self.db.add(record)
        self.db.flush()
        return record

    @_guarded
    def get_battle(self, battle_id: int) -> Optional[BattleRecord]:
        return self.db.get(BattleRecord, battle_id)

    @_guarded
    def list_battles(self, player_id: int, limit: int = 50) -> List[BattleRecord]:
        return (
            self.db.query(BattleRecord)
            .filter((BattleRecord.attacker_id == player_id) | (BattleRecord.defender_id == player_id))
            .order_by(BattleRecord.created_at.desc(), BattleRecord.id.desc())
            .limit(limit)
            .all()
        )

    # ----- Donations -----

    @_guarded
    def add_donations(self, records: List[DonationRecord]) -> List[DonationRecord]:
        self.db.add_all(records)
        self.db.flush()
        return records

    @_guarded
    def list_donations(self, player_id: int, direction: Optional[str] = None, limit: int = 100) -> List[DonationRecord]:
        """direction: "sent", "received" or None for both."""
        q = self.db.query(DonationRecord)
        if direction == "sent":
            q = q.filter(DonationRecord.donor_id == player_id)
        elif direction == "received":
            q = q.filter(DonationRecord.recipient_id == player_id)
        else:
            q = q.filter((DonationRecord.donor_id == player_id) | (DonationRecord.recipient_id == player_id))
        return q.order_by(DonationRecord.created_at.desc(), DonationRecord.id.desc()).limit(limit).all()
