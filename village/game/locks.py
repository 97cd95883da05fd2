# village/game/locks.py
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple

from village.config import LOCK_TIMEOUT_SECONDS
from village.game.errors import Busy

log = logging.getLogger(__name__)


@dataclass
class _Slot:
    lock: threading.RLock = field(default_factory=threading.RLock)
    # holders + waiters; the slot is dropped when this reaches zero
    users: int = 0


class PlayerLocks:
    """
    Per-player mutual exclusion for read-modify-write sequences.

    Locks are re-entrant so an operation may call another operation on the same
    player. Multi-player scopes are always taken in ascending id order.
    """

    def __init__(self, timeout: float = LOCK_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._slots: Dict[int, _Slot] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    def _checkout(self, player_id: int) -> threading.RLock:
        with self._guard:
            slot = self._slots.get(player_id)
            if slot is None:
                slot = _Slot()
                self._slots[player_id] = slot
            slot.users += 1
            return slot.lock

    def _checkin(self, player_id: int) -> None:
        with self._guard:
            slot = self._slots[player_id]
            slot.users -= 1
            if slot.users == 0:
                del self._slots[player_id]

    @contextmanager
    def hold(self, *player_ids: int) -> Iterator[None]:
        acquired: List[Tuple[int, threading.RLock]] = []
        try:
            for pid in sorted(set(player_ids)):
                lock = self._checkout(pid)
                if not lock.acquire(timeout=self.timeout):
                    self._checkin(pid)
                    log.warning("Lock timeout for player %d after %.1fs", pid, self.timeout)
                    raise Busy(f"Player {pid} is busy, retry", player_id=pid)
                acquired.append((pid, lock))
            yield
        finally:
            for pid, lock in reversed(acquired):
                lock.release()
                self._checkin(pid)
