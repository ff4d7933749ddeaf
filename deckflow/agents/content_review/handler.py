"""
Content-density reviewer — judges one freshly generated slide and may
suggest splitting it in two. Runs inside the slide loop, before the
slide is persisted.
"""

import logging

from ...core.enums import FeedbackCategory
from ...orchestrator.base_agent import ReviewAgent
from ...services import prompts
from ...services.llm import ModelTier
from ...services.shapes import CONTENT_REVIEW, ContentReviewShape

logger = logging.getLogger(__name__)

MAX_SPLIT_PARTS = 2

_RULE_CATEGORIES = {
    "density": FeedbackCategory.DENSITY,
    "concept": FeedbackCategory.CONCEPT,
}


def issue_category(rule: str) -> FeedbackCategory:
    """Feedback category for a reviewer rule name. Anything unrecognised counts as style."""
    return _RULE_CATEGORIES.get(rule.strip().lower(), FeedbackCategory.STYLE)


class ContentReviewAgent(ReviewAgent):
    name = "content_review"
    display_name = "Content Density Reviewer"
    description = "One idea per slide: flags dense slides and proposes a two-way split."
    tier = ModelTier.DEEP
    max_retries = 2

    async def review(self, title: str, body: str, speaker_notes: str, slide_type: str) -> ContentReviewShape:
        messages = prompts.content_review_messages(title, body, speaker_notes, slide_type)
        result = await self._generate(messages, CONTENT_REVIEW)
        logger.debug("Content review %r: %s (%.2f)", title[:60], result.verdict, result.score)
        return result

    def neutral(self) -> ContentReviewShape:
        return ContentReviewShape(verdict="PASS", score=1.0)
