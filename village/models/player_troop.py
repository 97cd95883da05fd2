# village/models/player_troop.py
from __future__ import annotations

from sqlalchemy import String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base


class PlayerTroop(Base):
    __tablename__ = "player_troops"
    __table_args__ = (
        UniqueConstraint("player_id", "troop_key", name="uq_player_troops_player_troop"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)
    troop_key: Mapped[str] = mapped_column(String(32), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
