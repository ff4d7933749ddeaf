"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .user import User
from .credit import CreditReservation, CreditTransaction
from .presentation import Presentation, Slide
from .document import Document
from .theme import Theme
from .feedback import FeedbackEntry

__all__ = [
    "RecordBase",
    "User",
    "CreditReservation", "CreditTransaction",
    "Presentation", "Slide",
    "Document",
    "Theme",
    "FeedbackEntry",
]
