"""
Feedback log — what reviewers flagged and what users changed.

Corrections accumulate per category; once a user has corrected the same
category three times, a "User prefers: ..." rule is written (at most one
per category per week) and later injected into generation prompts.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.enums import FeedbackCategory, FeedbackType
from ..core.flags import get_flags
from ..models.base import utcnow
from ..models.feedback import FeedbackEntry

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.6
CORRECTIONS_PER_RULE = 3
RULE_COOLDOWN = timedelta(days=7)


async def log_feedback(
    db: AsyncSession,
    user_id: str,
    feedback_type: FeedbackType,
    category: FeedbackCategory,
    presentation_id: Optional[str] = None,
    slide_id: Optional[str] = None,
    original: Optional[str] = None,
    corrected: Optional[str] = None,
    rule_text: Optional[str] = None,
) -> FeedbackEntry:
    entry = FeedbackEntry(
        user_id=user_id,
        presentation_id=presentation_id,
        slide_id=slide_id,
        feedback_type=feedback_type.value,
        category=category.value,
        original_content=original,
        corrected_content=corrected,
        rule_text=rule_text,
        created_at=utcnow(),
    )
    db.add(entry)
    await db.flush()
    logger.debug("Logged %s feedback [%s] for user %s", feedback_type.value, category.value, user_id)
    return entry


async def log_violation(
    db: AsyncSession,
    user_id: str,
    presentation_id: str,
    slide_id: str,
    category: FeedbackCategory,
    description: str,
) -> None:
    await log_feedback(
        db, user_id, FeedbackType.VIOLATION, category,
        presentation_id=presentation_id, slide_id=slide_id, original=description,
    )


def is_similar(a: str, b: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """True when the smaller word set overlaps the other by at least threshold."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    if not words_a or not words_b:
        return False
    overlap = len(words_a & words_b)
    return overlap / min(len(words_a), len(words_b)) >= threshold


async def log_correction(
    db: AsyncSession,
    user_id: str,
    presentation_id: str,
    slide_id: Optional[str],
    category: FeedbackCategory,
    original: str,
    corrected: str,
) -> None:
    """
    Record an original → corrected pair. A near-duplicate of the latest
    correction in the same category replaces it instead of stacking up.
    """
    latest = await db.scalar(
        select(FeedbackEntry)
        .where(
            FeedbackEntry.user_id == user_id,
            FeedbackEntry.feedback_type == FeedbackType.CORRECTION.value,
            FeedbackEntry.category == category.value,
        )
        .order_by(FeedbackEntry.created_at.desc())
        .limit(1)
    )

    if latest is not None and is_similar(latest.original_content or "", original):
        latest.presentation_id = presentation_id
        latest.slide_id = slide_id
        latest.original_content = original
        latest.corrected_content = corrected
        latest.created_at = utcnow()
        await db.flush()
        logger.debug("Updated existing %s correction for user %s (dedup)", category.value, user_id)
    else:
        await log_feedback(
            db, user_id, FeedbackType.CORRECTION, category,
            presentation_id=presentation_id, slide_id=slide_id,
            original=original, corrected=corrected,
        )

    if get_flags().enable_rule_codification:
        await check_and_codify_rules(db, user_id, category)


async def check_and_codify_rules(
    db: AsyncSession,
    user_id: str,
    category: FeedbackCategory,
) -> Optional[str]:
    """Write a RULE from the latest corrections if enough have piled up. Returns the rule text."""
    result = await db.execute(
        select(FeedbackEntry.corrected_content)
        .where(
            FeedbackEntry.user_id == user_id,
            FeedbackEntry.feedback_type == FeedbackType.CORRECTION.value,
            FeedbackEntry.category == category.value,
        )
        .order_by(FeedbackEntry.created_at.desc())
        .limit(5)
    )
    recent = list(result.scalars().all())
    if len(recent) < CORRECTIONS_PER_RULE:
        return None

    recent_rule = await db.scalar(
        select(FeedbackEntry.id)
        .where(
            FeedbackEntry.user_id == user_id,
            FeedbackEntry.feedback_type == FeedbackType.RULE.value,
            FeedbackEntry.category == category.value,
            FeedbackEntry.created_at >= utcnow() - RULE_COOLDOWN,
        )
        .limit(1)
    )
    if recent_rule:
        return None

    patterns = [c for c in recent if c][:3]
    rule_text = (
        f"User prefers: {'; '.join(patterns)} "
        f"(auto-codified from {len(recent)} corrections in {category.value})"
    )
    await log_feedback(db, user_id, FeedbackType.RULE, category, rule_text=rule_text)
    logger.info("Auto-codified rule for user %s in category %s", user_id, category.value)
    return rule_text


async def get_rules(db: AsyncSession, user_id: str) -> list[dict]:
    result = await db.execute(
        select(FeedbackEntry.category, FeedbackEntry.rule_text)
        .where(
            FeedbackEntry.user_id == user_id,
            FeedbackEntry.feedback_type == FeedbackType.RULE.value,
        )
        .order_by(FeedbackEntry.created_at.desc())
    )
    return [{"category": c, "rule": r} for c, r in result.all() if r]


def rules_block(rules: list[dict]) -> str:
    """Prompt section listing learned preferences. Empty when there are none."""
    if not rules:
        return ""
    lines = "\n".join(f"- [{r['category']}] {r['rule']}" for r in rules[:10])
    return f"\n\nLearned preferences for this user (follow them):\n{lines}"
