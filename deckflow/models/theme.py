"""
Slide themes. Only the name and id matter to the pipeline; palettes are
consumed by the export renderer.
"""

from sqlalchemy import String, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class Theme(RecordBase):
    __tablename__ = "themes"

    name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=True)  # dark, light, consulting, creative
    is_builtin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    palette: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
