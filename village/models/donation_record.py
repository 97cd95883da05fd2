# village/models/donation_record.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from village.database import Base


class DonationRecord(Base):
    """One resource kind moved from one player to another."""

    __tablename__ = "resource_donations"

    id: Mapped[int] = mapped_column(primary_key=True)

    donor_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)
    recipient_id: Mapped[int] = mapped_column(ForeignKey("players.id"), index=True, nullable=False)

    resource_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
