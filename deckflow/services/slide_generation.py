"""
Slide generation loop — realizes a slide plan one slide at a time.

Slides are generated strictly in plan order. Each prompt carries a
rolling window of the last few realized slides so the model does not
repeat itself; per-slide knowledge-base context is fetched for all
data-bearing slides concurrently before the loop starts.

Per iteration:
  1. generate content (GenerationExhausted propagates)
  2. density review, which may split the slide in two (within budget)
  3. programmatic density clamp, overflow moved to speaker notes
  4. persist, numbering stays contiguous
  5. push onto the rolling window
  6. queue at the validation gate

The loop commits after every slide, so slides realized before a failure
are kept.
"""

import asyncio
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from . import feedback_log, prompts, realtime
from ..agents.content_review.handler import MAX_SPLIT_PARTS, ContentReviewAgent, issue_category
from ..core.enums import DATA_BEARING_SLIDE_TYPES, MINIMAL_SLIDE_TYPES
from ..models.presentation import Slide
from ..orchestrator import state
from .context import ContextRetriever, NullRetriever, slide_query
from .density import DensityLimits, truncate_to_limits
from .llm import ModelTier
from .outline import SlidePlanItem
from .shapes import SLIDE_CONTENT, ContentReviewShape, SlideContentShape
from .structured import StepExecutor
from .validation_gate import PendingValidation, ValidationGate

logger = logging.getLogger(__name__)

SPLIT_HEADROOM = 1.25

_DATA_BEARING = {t.value for t in DATA_BEARING_SLIDE_TYPES}
_MINIMAL = {t.value for t in MINIMAL_SLIDE_TYPES}


@dataclass
class SlideDraft:
    title: str
    body: str
    speaker_notes: str
    image_prompt: str


def split_budget(planned: int, max_slides: int) -> int:
    """Most slides a deck may grow to through splits."""
    return min(max_slides, math.ceil(planned * SPLIT_HEADROOM))


def draft_from_content(content: SlideContentShape, item: SlidePlanItem) -> SlideDraft:
    """Fill anything the model left blank from the plan entry."""
    title = content.title.strip() or item.title
    body = content.body.strip() or "\n".join(f"- {b}" for b in item.bullet_points)
    return SlideDraft(
        title=title,
        body=body,
        speaker_notes=content.speaker_notes.strip() or f"Key topic: {title}.",
        image_prompt=content.image_prompt_hint.strip() or f"Professional slide about {title}",
    )


class SlideGenerationLoop:
    def __init__(
        self,
        executor: StepExecutor,
        gate: ValidationGate,
        retriever: Optional[ContextRetriever] = None,
        content_reviewer: Optional[ContentReviewAgent] = None,
        limits: DensityLimits = DensityLimits(),
        window_size: int = 5,
        max_retries: int = 2,
    ):
        self.executor = executor
        self.gate = gate
        self.retriever = retriever or NullRetriever()
        self.content_reviewer = content_reviewer
        self.limits = limits
        self.window_size = window_size
        self.max_retries = max_retries

    async def run(
        self,
        db: AsyncSession,
        user_id: str,
        presentation_id: str,
        plan: list[SlidePlanItem],
        max_slides: int,
        rules: str = "",
    ) -> list[Slide]:
        contexts = await asyncio.gather(*(self._prefetch(user_id, item) for item in plan))
        budget = split_budget(len(plan), max_slides)
        window: deque = deque(maxlen=self.window_size)
        created: list[Slide] = []
        extra = 0

        for index, item in enumerate(plan):
            total = len(plan) + extra
            await realtime.generation_progress(
                user_id, presentation_id,
                step=f"slide-{item.slide_number}",
                progress=(index + 1) / len(plan),
                message=f"Generating slide {item.slide_number}/{len(plan)}: {item.title}",
            )

            draft = await self._generate(item, len(created), total, window, contexts[index], rules)

            review = await self._review(draft, item)
            parts = [draft]
            if review is not None and review.verdict == "NEEDS_SPLIT":
                splits = review.suggested_splits[:MAX_SPLIT_PARTS]
                if len(splits) >= 2 and total + len(splits) - 1 <= budget:
                    logger.info(
                        "Slide %d split into %d (budget %d/%d)",
                        len(created) + 1, len(splits), total + len(splits) - 1, budget,
                    )
                    parts = [
                        SlideDraft(s.title, s.body, draft.speaker_notes, draft.image_prompt)
                        for s in splits
                    ]
                    extra += len(splits) - 1
                elif len(splits) >= 2:
                    logger.info("Slide %d split skipped, budget exhausted (%d/%d)", len(created) + 1, total, budget)

            if review is not None:
                review_passed = review.verdict == "PASS"
            else:
                # a skipped review counts as passed, a failed one does not
                review_passed = self.content_reviewer is None or item.slide_type in _MINIMAL

            for position, part in enumerate(parts):
                self._clamp(part)
                slide = await state.create_slide(
                    db,
                    presentation_id=presentation_id,
                    slide_number=len(created) + 1,
                    title=part.title,
                    body=part.body,
                    slide_type=item.slide_type,
                    speaker_notes=part.speaker_notes,
                    image_prompt=part.image_prompt,
                    section_label=item.section_label,
                )
                created.append(slide)
                window.append({"title": part.title, "body": part.body})

                if position == 0 and review is not None and review.issues:
                    await self._log_violations(db, user_id, presentation_id, slide.id, review)
                await db.commit()

                queued = self.gate.queue_validation(PendingValidation(
                    presentation_id=presentation_id,
                    slide_id=slide.id,
                    slide_number=slide.slide_number,
                    title=slide.title,
                    body=slide.body,
                    speaker_notes=slide.speaker_notes or "",
                    slide_type=slide.slide_type,
                    review_passed=review_passed,
                ))

                payload = state.slide_payload(slide)
                await realtime.slide_added(user_id, presentation_id, payload)
                if queued:
                    await realtime.validation_requested(
                        user_id, presentation_id, {"slide_id": slide.id, "slide_number": slide.slide_number},
                    )

        logger.info("Generated %d slide(s) for %s (%d from splits)", len(created), presentation_id, extra)
        return created

    # ── Steps ────────────────────────────────────────────────────────

    async def _prefetch(self, user_id: str, item: SlidePlanItem) -> str:
        if item.slide_type not in _DATA_BEARING:
            return ""
        try:
            return await self.retriever.retrieve(user_id, slide_query(item.title, item.bullet_points), k=2)
        except Exception as e:
            logger.warning("Context prefetch failed for %r: %s", item.title[:60], e)
            return ""

    async def _generate(
        self,
        item: SlidePlanItem,
        realized: int,
        total: int,
        window: deque,
        kb_context: str,
        rules: str,
    ) -> SlideDraft:
        if item.body is not None:
            return SlideDraft(
                title=item.title,
                body=item.body,
                speaker_notes=item.speaker_notes or f"Key topic: {item.title}.",
                image_prompt=f"Professional slide about {item.title}",
            )
        messages = prompts.slide_messages(
            slide_number=realized + 1,
            total_slides=total,
            title=item.title,
            bullet_points=item.bullet_points,
            slide_type=item.slide_type,
            prior=window,
            total_before=realized,
            kb_context=kb_context,
            rules=rules,
        )
        content = await self.executor.run(messages, ModelTier.STANDARD, SLIDE_CONTENT, max_retries=self.max_retries)
        return draft_from_content(content, item)

    async def _review(self, draft: SlideDraft, item: SlidePlanItem) -> Optional[ContentReviewShape]:
        if self.content_reviewer is None or item.slide_type in _MINIMAL:
            return None
        try:
            return await self.content_reviewer.review(
                draft.title, draft.body, draft.speaker_notes, item.slide_type,
            )
        except Exception as e:
            logger.warning("Content review failed for %r, keeping original: %s", draft.title[:60], e)
            return None

    def _clamp(self, draft: SlideDraft) -> None:
        result = truncate_to_limits(draft.body, self.limits)
        if not result.was_truncated:
            return
        draft.body = result.body
        if result.overflow:
            draft.speaker_notes = f"{draft.speaker_notes}\n\n{result.overflow}".strip()

    async def _log_violations(
        self,
        db: AsyncSession,
        user_id: str,
        presentation_id: str,
        slide_id: str,
        review: ContentReviewShape,
    ) -> None:
        for issue in review.issues:
            try:
                await feedback_log.log_violation(
                    db, user_id, presentation_id, slide_id, issue_category(issue.rule), issue.message,
                )
            except Exception as e:
                logger.warning("Failed to log violation for slide %s: %s", slide_id, e)
