"""
Presentation (one generation session) and its ordered slides.
"""

from sqlalchemy import String, Text, Integer, JSON, ForeignKey
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import RecordBase
from ..core.enums import PresentationStatus


class Presentation(RecordBase):
    __tablename__ = "presentations"

    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=True)
    topic: Mapped[str] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=PresentationStatus.DRAFT.value
    )  # DRAFT, PROCESSING, COMPLETED, FAILED
    theme_id: Mapped[str] = mapped_column(String, nullable=True)
    presentation_type: Mapped[str] = mapped_column(String, nullable=True)
    archetype: Mapped[str] = mapped_column(String, nullable=True)
    # Structural toggles + last quality summary
    presentation_metadata: Mapped[dict] = mapped_column(
        MutableDict.as_mutable(JSON), nullable=True, default=dict
    )
    # Example:
    # {
    #   "require_section_labels": true,
    #   "require_agenda": false,
    #   "quality": {"passed": true, "avg_style_score": 0.86, ...}
    # }

    slides: Mapped[list["Slide"]] = relationship(
        back_populates="presentation",
        cascade="all, delete-orphan",
        order_by="Slide.slide_number",
    )


class Slide(RecordBase):
    __tablename__ = "slides"

    presentation_id: Mapped[str] = mapped_column(
        String, ForeignKey("presentations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slide_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    speaker_notes: Mapped[str] = mapped_column(Text, nullable=True)
    slide_type: Mapped[str] = mapped_column(String, nullable=False)
    image_prompt: Mapped[str] = mapped_column(Text, nullable=True)
    section_label: Mapped[str] = mapped_column(String, nullable=True)

    presentation: Mapped["Presentation"] = relationship(back_populates="slides")
