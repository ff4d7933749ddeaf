"""
Feedback log: reviewer violations, user corrections, and codified rules.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class FeedbackEntry(RecordBase):
    __tablename__ = "feedback_entries"

    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    presentation_id: Mapped[str] = mapped_column(String, nullable=True, index=True)
    slide_id: Mapped[str] = mapped_column(String, nullable=True)
    feedback_type: Mapped[str] = mapped_column(String, nullable=False)  # VIOLATION, CORRECTION, RULE
    category: Mapped[str] = mapped_column(String, nullable=False)  # density, typography, concept, style, tone
    original_content: Mapped[str] = mapped_column(Text, nullable=True)
    corrected_content: Mapped[str] = mapped_column(Text, nullable=True)
    rule_text: Mapped[str] = mapped_column(Text, nullable=True)
