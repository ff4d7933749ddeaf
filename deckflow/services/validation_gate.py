"""
Validation gate — per-slide accept / edit / reject by the user.

Each generated slide is queued here unless auto-approve is on for the
presentation and the slide already passed the density review. A queued
entry is resolved exactly once: it is removed from the store before any
mutation, so a second response finds nothing pending.

Edits and rejections are logged as CORRECTION feedback, which feeds
rule codification.
"""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from . import feedback_log, realtime
from ..core.enums import FeedbackCategory, FeedbackType
from ..core.ttl_store import TtlStore
from ..orchestrator import state

logger = logging.getLogger(__name__)

DENSITY_SHRINK_RATIO = 0.7


class ValidationAction(str, Enum):
    ACCEPT = "accept"
    EDIT = "edit"
    REJECT = "reject"


@dataclass
class PendingValidation:
    presentation_id: str
    slide_id: str
    slide_number: int
    title: str
    body: str
    speaker_notes: str
    slide_type: str
    review_passed: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SlideEdit:
    """Fields the user changed. None means unchanged."""
    title: Optional[str] = None
    body: Optional[str] = None
    speaker_notes: Optional[str] = None

    def changes(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ValidationOutcome:
    success: bool
    message: str
    slide_updated: bool = False


def infer_category(original: PendingValidation, edit: SlideEdit) -> FeedbackCategory:
    """
    Guess what kind of correction an edit was:
    title changed → style; body shrank below 70% of its words → density;
    only the notes changed → tone; anything else → style.
    """
    if edit.title is not None and edit.title != original.title:
        return FeedbackCategory.STYLE
    if edit.body is not None:
        if len(edit.body.split()) < len(original.body.split()) * DENSITY_SHRINK_RATIO:
            return FeedbackCategory.DENSITY
    if edit.speaker_notes is not None and edit.title is None and edit.body is None:
        return FeedbackCategory.TONE
    return FeedbackCategory.STYLE


def _key(presentation_id: str, slide_id: str) -> str:
    return f"{presentation_id}:{slide_id}"


class ValidationGate:
    def __init__(self, pending: TtlStore[PendingValidation], auto_approve: TtlStore[bool]):
        self._pending = pending
        self._auto_approve = auto_approve

    # ── Queueing ─────────────────────────────────────────────────────

    def queue_validation(self, request: PendingValidation) -> bool:
        """Queue a slide for review. Returns False when it was auto-approved instead."""
        if self.is_auto_approve_enabled(request.presentation_id) and request.review_passed:
            logger.debug("Auto-approved slide %d (review passed)", request.slide_number)
            return False
        self._pending.set(_key(request.presentation_id, request.slide_id), request)
        return True

    def has_pending_validation(self, presentation_id: str) -> bool:
        return self._pending.has_prefix(f"{presentation_id}:")

    def get_next_validation(self, presentation_id: str) -> Optional[PendingValidation]:
        """Pending entry with the lowest slide number, or None."""
        found = self._pending.find_by_prefix(f"{presentation_id}:")
        if not found:
            return None
        return min((value for _key, value in found), key=lambda v: v.slide_number)

    def clear_pending_validations(self, presentation_id: str) -> int:
        return self._pending.delete_by_prefix(f"{presentation_id}:")

    # ── Auto-approve ─────────────────────────────────────────────────

    def set_auto_approve(self, presentation_id: str, enabled: bool) -> None:
        self._auto_approve.set(presentation_id, enabled)
        logger.debug("Auto-approve %s for %s", "enabled" if enabled else "disabled", presentation_id)

    def is_auto_approve_enabled(self, presentation_id: str) -> bool:
        return bool(self._auto_approve.get(presentation_id, False))

    # ── Responses ────────────────────────────────────────────────────

    async def process_validation(
        self,
        db: AsyncSession,
        user_id: str,
        presentation_id: str,
        slide_id: str,
        action: ValidationAction,
        edited: Optional[SlideEdit] = None,
    ) -> ValidationOutcome:
        key = _key(presentation_id, slide_id)
        request = self._pending.pop(key)
        if request is None:
            return ValidationOutcome(success=False, message="No pending validation for this slide.")

        action = ValidationAction(action)

        if action == ValidationAction.ACCEPT:
            logger.debug("Slide %d accepted", request.slide_number)
            return ValidationOutcome(success=True, message=f"Slide {request.slide_number} accepted.")

        if action == ValidationAction.EDIT:
            return await self._apply_edit(db, user_id, request, edited)

        return await self._apply_reject(db, user_id, request)

    async def _apply_edit(
        self,
        db: AsyncSession,
        user_id: str,
        request: PendingValidation,
        edited: Optional[SlideEdit],
    ) -> ValidationOutcome:
        changes = edited.changes() if edited else {}
        if not changes:
            return ValidationOutcome(success=False, message="Edit action requires edited content.")

        slide = await state.get_slide(db, request.presentation_id, request.slide_id)
        if slide is None:
            return ValidationOutcome(success=False, message="This slide no longer exists.")

        applied = await state.update_slide(db, slide, **changes)

        original = f"{request.title}\n{request.body}"
        corrected = f"{changes.get('title', request.title)}\n{changes.get('body', request.body)}"
        category = infer_category(request, edited)
        await feedback_log.log_correction(
            db, user_id, request.presentation_id, request.slide_id, category, original, corrected,
        )
        logger.debug("Slide %d edited, correction logged [%s]", request.slide_number, category.value)

        if applied:
            await realtime.slide_updated(user_id, request.presentation_id, request.slide_id, applied)
        return ValidationOutcome(
            success=True,
            message=f"Slide {request.slide_number} updated with your edits.",
            slide_updated=True,
        )

    async def _apply_reject(self, db: AsyncSession, user_id: str, request: PendingValidation) -> ValidationOutcome:
        deleted = await state.reject_and_renumber(db, request.presentation_id, request.slide_id)
        if deleted is None:
            return ValidationOutcome(success=False, message="This slide no longer exists.")

        # queued slides after the removed one moved up a place
        for _key, queued in self._pending.find_by_prefix(f"{request.presentation_id}:"):
            if queued.slide_number > request.slide_number:
                queued.slide_number -= 1

        await feedback_log.log_feedback(
            db, user_id, FeedbackType.CORRECTION, FeedbackCategory.CONCEPT,
            presentation_id=request.presentation_id,
            slide_id=request.slide_id,
            original=f"[{request.slide_type}] {request.title}\n{request.body}",
            corrected=f"[REJECTED] Slide {request.slide_number}: {request.title}",
        )
        logger.debug("Slide %d rejected and removed", request.slide_number)
        return ValidationOutcome(
            success=True,
            message=f"Slide {request.slide_number} removed. Remaining slides renumbered.",
            slide_updated=True,
        )
