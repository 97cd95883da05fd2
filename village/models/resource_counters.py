# village/models/resource_counters.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base


class ResourceCounters(Base):
    __tablename__ = "resource_counters"

    # One row per player
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), primary_key=True)

    wood: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stone: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    food: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    iron: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    elixir: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    gems: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Cached population figures, refreshed whenever troops or houses change
    population_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    population_cap: Mapped[int] = mapped_column(Integer, default=10, nullable=False)

    # Accrual clock (naive UTC). Only moves forward, by whole minutes.
    last_accrual_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Optimistic concurrency token. SQLAlchemy adds "AND version = :old" to every
    # UPDATE and raises StaleDataError when another writer got there first.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}
