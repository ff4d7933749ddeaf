"""
Subscription tier limits and preflight enforcement.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.enums import Tier
from ..models.base import utcnow
from ..models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierLimits:
    max_decks_per_month: Optional[int]   # None = unlimited
    max_slides_per_deck: Optional[int]   # None = unlimited
    credits_per_month: int
    can_generate_images: bool


TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(2, 4, 0, False),
    Tier.STARTER: TierLimits(10, 15, 40, True),
    Tier.PRO: TierLimits(None, None, 100, True),
    Tier.ENTERPRISE: TierLimits(None, None, 300, True),
}


@dataclass
class TierCheck:
    allowed: bool
    reason: Optional[str] = None


def limits_for(tier: str) -> TierLimits:
    try:
        return TIER_LIMITS[Tier(tier)]
    except ValueError:
        logger.warning("Unknown tier %r, applying FREE limits", tier)
        return TIER_LIMITS[Tier.FREE]


def _cycle_rolled_over(cycle_start: datetime, now: datetime) -> bool:
    if cycle_start.tzinfo is None:
        cycle_start = cycle_start.replace(tzinfo=timezone.utc)
    return (now.year, now.month) != (cycle_start.year, cycle_start.month)


async def can_create_deck(db: AsyncSession, user: User, now: Optional[datetime] = None) -> TierCheck:
    """
    Check the monthly deck allowance. Resets the counter first when a new
    calendar month has started since billing_cycle_start.
    """
    now = now or utcnow()
    if _cycle_rolled_over(user.billing_cycle_start, now):
        user.decks_this_month = 0
        user.billing_cycle_start = now
        await db.flush()
        logger.info("Monthly deck counter reset for user=%s", user.id)

    limits = limits_for(user.tier)
    if limits.max_decks_per_month is not None and user.decks_this_month >= limits.max_decks_per_month:
        return TierCheck(
            allowed=False,
            reason=(
                f"You've used {user.decks_this_month}/{limits.max_decks_per_month} decks "
                f"this month on the {user.tier} plan. Upgrade to create more."
            ),
        )
    return TierCheck(allowed=True)


async def increment_deck_count(db: AsyncSession, user: User) -> None:
    user.decks_this_month = (user.decks_this_month or 0) + 1
    await db.flush()


async def decrement_deck_count(db: AsyncSession, user: User) -> None:
    user.decks_this_month = max((user.decks_this_month or 0) - 1, 0)
    await db.flush()


def max_slides_per_deck(user: User) -> Optional[int]:
    return limits_for(user.tier).max_slides_per_deck
