"""
Users with their subscription tier and credit balance.
"""

from datetime import datetime

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase, utcnow
from ..core.enums import Tier


class User(RecordBase):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String, unique=True, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=True)
    tier: Mapped[str] = mapped_column(String, nullable=False, default=Tier.FREE.value)
    # Committed balance. Pending reservations are subtracted on read, never here.
    credit_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    decks_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billing_cycle_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
