"""
Credit reservations (tentative holds) and the committed transaction log.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase
from ..core.enums import ReservationStatus


class CreditReservation(RecordBase):
    __tablename__ = "credit_reservations"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=ReservationStatus.PENDING.value, index=True
    )  # PENDING, COMMITTED, RELEASED
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class CreditTransaction(RecordBase):
    __tablename__ = "credit_transactions"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # negative = usage
    transaction_type: Mapped[str] = mapped_column(String, nullable=False)  # USAGE, GRANT
    description: Mapped[str] = mapped_column(Text, nullable=True)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_id: Mapped[str] = mapped_column(String, nullable=True)  # reservation id for USAGE
