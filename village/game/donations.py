# village/game/donations.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from village.game.errors import InvalidInput, NotFound, SelfDonation
from village.game.ledger import ResourceLedger, negate
from village.game.locks import PlayerLocks
from village.game.store import VillageStore
from village.models.donation_record import DonationRecord

log = logging.getLogger(__name__)

DONATABLE_KINDS = ("wood", "stone", "iron", "food")
DIRECTIONS = ("sent", "received", "all")


def donation_to_dict(r: DonationRecord) -> Dict[str, Any]:
    return {
        "id": r.id,
        "donor_id": r.donor_id,
        "recipient_id": r.recipient_id,
        "resource_type": r.resource_type,
        "amount": r.amount,
        "created_at": r.created_at.isoformat(),
    }


class DonationDesk:
    """Moves base resources between two villages and keeps the history."""

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

    @staticmethod
    def _validate(amounts: Mapping[str, int]) -> Dict[str, int]:
        gift: Dict[str, int] = {}
        for kind, amount in amounts.items():
            if kind not in DONATABLE_KINDS:
                raise InvalidInput(f"{kind} cannot be donated", resource_type=kind)
            if amount < 0:
                raise InvalidInput("Amounts must not be negative", resource_type=kind, amount=amount)
            if amount > 0:
                gift[kind] = amount
        if not gift:
            raise InvalidInput("Donate at least one resource")
        return gift

    def donate(self, donor_id: int, recipient_id: int, amounts: Mapping[str, int]) -> List[DonationRecord]:
        if donor_id == recipient_id:
            raise SelfDonation("Players cannot donate to themselves", player_id=donor_id)
        gift = self._validate(amounts)

        with self.locks.hold(donor_id, recipient_id):
            if self.store.get_player(recipient_id) is None:
                raise NotFound("Recipient not found", player_id=recipient_id)
            self.ledger.initialize(recipient_id)

            self.ledger.accrue(donor_id)
            self.ledger.accrue(recipient_id)
            self.ledger.require_affordable(self.ledger.get(donor_id), gift, recipient_id=recipient_id)

            self.ledger.adjust(donor_id, negate(gift))
            self.ledger.adjust(recipient_id, gift)

            now = self.clock()
            records = [
                DonationRecord(
                    donor_id=donor_id,
                    recipient_id=recipient_id,
                    resource_type=kind,
                    amount=amount,
                    created_at=now,
                )
                for kind, amount in gift.items()
            ]
            self.store.add_donations(records)
            self.store.commit()

            log.info("Player %d donated %s to player %d", donor_id, gift, recipient_id)
            return records

    def history(self, player_id: int, direction: str = "all", limit: int = 100) -> List[Dict[str, Any]]:
        if direction not in DIRECTIONS:
            raise InvalidInput(f"Unknown donation filter {direction}", type=direction)
        rows = self.store.list_donations(player_id, None if direction == "all" else direction, limit=limit)
        return [donation_to_dict(r) for r in rows]
