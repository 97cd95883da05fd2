# village/models/training_entry.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base

STATUS_TRAINING = "training"
STATUS_COMPLETED = "completed"


class TrainingQueueEntry(Base):
    __tablename__ = "training_queue"

    id: Mapped[int] = mapped_column(primary_key=True)

    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)
    troop_key: Mapped[str] = mapped_column(String(32), nullable=False)
    # Source building; kept as a plain id so history survives demolition
    building_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # "training" | "completed"
    status: Mapped[str] = mapped_column(String(16), default=STATUS_TRAINING, index=True, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
