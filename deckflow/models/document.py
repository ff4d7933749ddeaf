"""
Knowledge base documents — full text stored directly. No chunks, no embeddings.
Searched by the default context retriever.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class Document(RecordBase):
    __tablename__ = "documents"

    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=True)
    filename: Mapped[str] = mapped_column(String, nullable=True)
    full_text: Mapped[str] = mapped_column(Text, nullable=True)
