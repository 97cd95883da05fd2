# village/models/building.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base


class Building(Base):
    __tablename__ = "buildings"
    __table_args__ = (
        UniqueConstraint("player_id", "x", "y", name="uq_buildings_player_cell"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)

    # Catalog key, e.g. "town_hall", "sawmill"
    type_key: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Grid cell inside the village
    x: Mapped[int] = mapped_column(Integer, nullable=False)
    y: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
