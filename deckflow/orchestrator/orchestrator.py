"""
Generation orchestrator.

preflight → reserve → outline → slide loop → quality → finalize → commit

Preflight problems (unknown user, blank topic, tier limit, no theme) are
rejected before any credits are held. Once a reservation exists it is
resolved exactly once: committed as the very last step of a successful
run, or released when anything after the reserve raises, cancellation
included. In the failure path the presentation is marked FAILED and the
original error re-raised.

The pipeline session commits as it goes (slides are kept one by one) and
always before the ledger is touched, because the ledger runs its own
transactions.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.enums import PresentationStatus
from ..core.errors import InsufficientBalanceError, PreflightRejected
from ..core.flags import get_flags
from ..models.presentation import Presentation
from ..models.theme import Theme
from ..models.user import User
from ..services import feedback_log, realtime
from ..services.context import ThemeResolver
from ..services.ledger import CreditLedger, InsufficientBalance, Reservation
from ..services.outline import GenerationConfig, OutlineStage, PendingOutline, SlidePlan, post_process
from ..services.quality_review import QualityReviewPipeline, apply_fixes
from ..services.slide_generation import SlideGenerationLoop
from ..services.tiers import can_create_deck, decrement_deck_count, increment_deck_count, max_slides_per_deck
from ..services.validation_gate import ValidationGate
from . import state

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    presentation_id: str
    title: str
    status: str
    slide_count: int
    reservation_id: str
    sample_preview: bool = False
    quality: Optional[dict] = None


@dataclass
class OutlineResult:
    presentation_id: str
    plan: SlidePlan
    reservation_id: str
    metadata: dict = field(default_factory=dict)


class GenerationOrchestrator:
    def __init__(
        self,
        ledger: CreditLedger,
        outline_stage: OutlineStage,
        slide_loop: SlideGenerationLoop,
        theme_resolver: ThemeResolver,
        gate: ValidationGate,
        quality: Optional[QualityReviewPipeline] = None,
        deck_cost: int = 1,
        outline_cost: int = 1,
    ):
        self.ledger = ledger
        self.outline_stage = outline_stage
        self.slide_loop = slide_loop
        self.theme_resolver = theme_resolver
        self.gate = gate
        self.quality = quality
        self.deck_cost = deck_cost
        self.outline_cost = outline_cost

    # ── Outline for approval ─────────────────────────────────────────

    async def create_outline(
        self,
        db: AsyncSession,
        user_id: str,
        topic: str,
        config: GenerationConfig,
        presentation_id: Optional[str] = None,
    ) -> OutlineResult:
        """Generate an outline, park it for approval and charge the outline cost."""
        await self._require_user(db, user_id, topic)
        presentation = await self._load_presentation(db, user_id, presentation_id) if presentation_id else None
        await db.commit()

        reservation = await self._reserve(user_id, self.outline_cost, "outline_generation")
        try:
            kb_context, rules = await self._context_and_rules(db, user_id, topic)
            plan = await self.outline_stage.generate(topic, config, kb_context=kb_context, rules=rules)
            if presentation is None:
                presentation = await state.create_presentation(
                    db, user_id, topic, title=plan.title,
                    theme_id=config.theme_id,
                    presentation_type=config.presentation_type,
                    archetype=config.archetype,
                )
            presentation_id = presentation.id
            await db.commit()
        except BaseException:
            await db.rollback()
            await self._release(reservation)
            raise

        self.outline_stage.store_pending(
            presentation_id, PendingOutline(user_id=user_id, topic=topic, plan=plan, config=config),
        )
        await self.ledger.commit(reservation.id)
        await self._notify_credits(user_id)
        return OutlineResult(presentation_id=presentation_id, plan=plan, reservation_id=reservation.id)

    async def execute_outline(self, db: AsyncSession, user_id: str, presentation_id: str) -> GenerationResult:
        """Run the full pipeline on an approved pending outline."""
        pending = self.outline_stage.get_pending(presentation_id)
        if pending is None or pending.user_id != user_id:
            raise PreflightRejected("No pending outline to approve.")
        self.outline_stage.pop_pending(presentation_id)
        return await self.generate(
            db, user_id, pending.topic, pending.config,
            presentation_id=presentation_id, plan=pending.plan,
        )

    # ── Full pipeline ────────────────────────────────────────────────

    async def generate(
        self,
        db: AsyncSession,
        user_id: str,
        topic: str,
        config: GenerationConfig,
        presentation_id: Optional[str] = None,
        plan: Optional[SlidePlan] = None,
    ) -> GenerationResult:
        user = await self._require_user(db, user_id, topic)
        check = await can_create_deck(db, user)
        if not check.allowed:
            raise PreflightRejected(check.reason or "Monthly deck limit reached.")
        tier_cap = max_slides_per_deck(user)
        existing = await self._load_presentation(db, user_id, presentation_id) if presentation_id else None
        theme_id = await self.theme_resolver.resolve(config.theme_id or (existing.theme_id if existing else None))
        await db.commit()

        reservation = await self._reserve(user_id, self.deck_cost, "deck_generation")
        logger.info("Reserved %d credit(s) for user %s (%s)", self.deck_cost, user_id, reservation.id)

        current_id: Optional[str] = existing.id if existing else None
        try:
            if existing is None:
                presentation = await state.create_presentation(
                    db, user_id, topic,
                    theme_id=theme_id,
                    presentation_type=config.presentation_type,
                    archetype=config.archetype,
                )
                current_id = presentation.id
                await db.commit()
            return await self._run(db, user_id, topic, config, current_id, theme_id, tier_cap, plan, reservation)
        except BaseException as e:
            await self._fail(db, user_id, current_id, reservation, e)
            raise

    async def _run(
        self,
        db: AsyncSession,
        user_id: str,
        topic: str,
        config: GenerationConfig,
        presentation_id: str,
        theme_id: str,
        tier_cap: Optional[int],
        plan: Optional[SlidePlan],
        reservation: Reservation,
    ) -> GenerationResult:
        if plan is None:
            kb_context, rules = await self._context_and_rules(db, user_id, topic)
            plan = await self.outline_stage.generate(topic, config, kb_context=kb_context, rules=rules)
        else:
            rules = feedback_log.rules_block(await feedback_log.get_rules(db, user_id))

        planned = len(plan.slides)
        plan = post_process(plan, tier_cap, config)
        sample_preview = tier_cap is not None and planned > tier_cap

        presentation = await state.get_presentation(db, presentation_id)
        presentation.title = plan.title
        presentation.theme_id = theme_id
        await state.set_status(db, presentation, PresentationStatus.PROCESSING)
        await state.delete_all_slides(db, presentation_id)
        await state.update_metadata(db, presentation, {"sample_preview": sample_preview, "planned_slides": planned})
        await db.commit()
        self.gate.clear_pending_validations(presentation_id)
        await realtime.generation_started(user_id, presentation_id, {"title": plan.title, "slides": len(plan.slides)})

        max_slides = min(tier_cap, config.slide_range()[1]) if tier_cap else config.slide_range()[1]
        slides = await self.slide_loop.run(
            db, user_id, presentation_id, plan.slides,
            max_slides=max(max_slides, len(plan.slides)),
            rules=rules,
        )

        quality = await self._quality(db, user_id, presentation_id, theme_id, config)

        presentation = await state.get_presentation(db, presentation_id)
        await state.set_status(db, presentation, PresentationStatus.COMPLETED)
        user = await db.get(User, user_id)
        await increment_deck_count(db, user)
        await db.commit()

        try:
            await self.ledger.commit(reservation.id)
        except BaseException:
            # an unpaid deck does not count toward the monthly limit
            await decrement_deck_count(db, user)
            await db.commit()
            raise
        logger.info("Generation complete for %s: %d slides", presentation_id, len(slides))
        await realtime.generation_completed(user_id, presentation_id, {"slides": len(slides), "quality": quality})
        await self._notify_credits(user_id)

        return GenerationResult(
            presentation_id=presentation_id,
            title=plan.title,
            status=PresentationStatus.COMPLETED.value,
            slide_count=len(slides),
            reservation_id=reservation.id,
            sample_preview=sample_preview,
            quality=quality,
        )

    async def _quality(
        self,
        db: AsyncSession,
        user_id: str,
        presentation_id: str,
        theme_id: str,
        config: GenerationConfig,
    ) -> Optional[dict]:
        """Review, apply fixes and store the summary. Never raises."""
        if self.quality is None or not get_flags().enable_quality_review:
            return None
        try:
            theme = await db.get(Theme, theme_id)
            slides = [state.slide_payload(s) for s in await state.list_slides(db, presentation_id)]
            report = await self.quality.review(
                slides, user_id,
                theme_name=theme.name if theme else "default",
                presentation_type=config.presentation_type,
                archetype=config.archetype,
            )
            applied = await apply_fixes(db, user_id, presentation_id, report.fixes)
            summary = report.summary()
            summary["fixes_applied"] = applied
            presentation = await state.get_presentation(db, presentation_id)
            await state.update_metadata(db, presentation, {"quality": summary})
            await db.commit()
            return summary
        except Exception as e:
            logger.warning("Quality review failed for %s (non-fatal): %s", presentation_id, e, exc_info=True)
            await db.rollback()
            return None

    # ── Helpers ──────────────────────────────────────────────────────

    async def _require_user(self, db: AsyncSession, user_id: str, topic: str) -> User:
        if not topic or not topic.strip():
            raise PreflightRejected("A topic is required.")
        user = await db.get(User, user_id)
        if user is None:
            raise PreflightRejected("Unknown user.")
        return user

    async def _load_presentation(self, db: AsyncSession, user_id: str, presentation_id: str) -> Presentation:
        presentation = await state.get_presentation(db, presentation_id, user_id=user_id)
        if presentation is None:
            raise PreflightRejected("Presentation not found.")
        return presentation

    async def _context_and_rules(self, db: AsyncSession, user_id: str, topic: str) -> tuple[str, str]:
        kb_context, rules = await asyncio.gather(
            self.outline_stage.retrieve_context(user_id, topic),
            feedback_log.get_rules(db, user_id),
        )
        return kb_context, feedback_log.rules_block(rules)

    async def _reserve(self, user_id: str, amount: int, reason: str) -> Reservation:
        result = await self.ledger.reserve(user_id, amount, reason)
        if isinstance(result, InsufficientBalance):
            raise InsufficientBalanceError(result.requested, result.available)
        return result

    async def _release(self, reservation: Reservation) -> None:
        try:
            await self.ledger.release(reservation.id)
        except Exception:
            logger.error("Failed to release reservation %s", reservation.id, exc_info=True)

    async def _fail(
        self,
        db: AsyncSession,
        user_id: str,
        presentation_id: Optional[str],
        reservation: Reservation,
        error: BaseException,
    ) -> None:
        reason = str(error) or type(error).__name__
        logger.error("Generation failed for user %s: %s", user_id, reason)
        try:
            await db.rollback()
        except Exception:
            logger.warning("Rollback failed", exc_info=True)

        await self._release(reservation)

        if presentation_id is None:
            return
        try:
            presentation = await state.get_presentation(db, presentation_id)
            if presentation is not None:
                await state.set_status(db, presentation, PresentationStatus.FAILED)
                await state.update_metadata(db, presentation, {"error": reason[:500]})
                await db.commit()
        except Exception:
            logger.error("Failed to mark %s as FAILED", presentation_id, exc_info=True)
            await db.rollback()
        await realtime.generation_failed(user_id, presentation_id, reason)

    async def _notify_credits(self, user_id: str) -> None:
        try:
            available = await self.ledger.get_available_balance(user_id)
        except Exception as e:
            logger.warning("Could not read balance for user %s: %s", user_id, e)
            return
        await realtime.credits_changed(user_id, available)
