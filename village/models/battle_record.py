# village/models/battle_record.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base


class BattleRecord(Base):
    """Immutable outcome of one battle. Written once, never updated."""

    __tablename__ = "battle_records"

    id: Mapped[int] = mapped_column(primary_key=True)

    attacker_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)
    defender_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)

    attack_power: Mapped[int] = mapped_column(Integer, nullable=False)
    defense_power: Mapped[int] = mapped_column(Integer, nullable=False)
    attacker_won: Mapped[bool] = mapped_column(Boolean, nullable=False)

    stolen_wood: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stolen_stone: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stolen_food: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stolen_iron: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # JSON payloads: {troop_key: qty}
    attacking_troops_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
    attacker_losses_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)
    defender_losses_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
