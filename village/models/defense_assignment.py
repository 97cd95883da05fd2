# village/models/defense_assignment.py
from __future__ import annotations

from sqlalchemy import String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base


class DefenseAssignment(Base):
    __tablename__ = "defense_assignments"
    __table_args__ = (
        UniqueConstraint("building_id", "troop_key", name="uq_defense_building_troop"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)
    building_id: Mapped[int] = mapped_column(ForeignKey("buildings.id"), index=True, nullable=False)
    troop_key: Mapped[str] = mapped_column(String(32), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
