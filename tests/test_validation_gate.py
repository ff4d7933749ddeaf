import pytest
from sqlalchemy import select

from deckflow.core.enums import FeedbackCategory, FeedbackType
from deckflow.core.ttl_store import TtlStore
from deckflow.models.feedback import FeedbackEntry
from deckflow.orchestrator import state
from deckflow.services.validation_gate import (
    PendingValidation,
    SlideEdit,
    ValidationAction,
    ValidationGate,
    infer_category,
)

from tests.conftest import USER_ID


@pytest.fixture
def gate():
    return ValidationGate(TtlStore(900), TtlStore(3600))


def pending_for(slide, review_passed=False):
    return PendingValidation(
        presentation_id=slide.presentation_id,
        slide_id=slide.id,
        slide_number=slide.slide_number,
        title=slide.title,
        body=slide.body,
        speaker_notes=slide.speaker_notes or "",
        slide_type=slide.slide_type,
        review_passed=review_passed,
    )


@pytest.fixture
async def deck(db):
    presentation = await state.create_presentation(db, USER_ID, "topic")
    slides = [
        await state.create_slide(
            db, presentation.id, n, f"Slide {n}",
            "- one two three four five six seven eight nine ten", "CONTENT",
        )
        for n in (1, 2, 3)
    ]
    await db.commit()
    return presentation, slides


async def feedback_rows(db):
    return (await db.execute(select(FeedbackEntry).order_by(FeedbackEntry.created_at))).scalars().all()


def test_auto_approve_only_skips_reviewed_slides(gate):
    passed = PendingValidation("p", "s1", 1, "t", "b", "", "CONTENT", review_passed=True)
    failed = PendingValidation("p", "s2", 2, "t", "b", "", "CONTENT", review_passed=False)

    assert gate.queue_validation(passed)
    gate.clear_pending_validations("p")

    gate.set_auto_approve("p", True)
    assert gate.is_auto_approve_enabled("p")
    assert not gate.queue_validation(passed)
    assert gate.queue_validation(failed)
    assert gate.get_next_validation("p").slide_id == "s2"
    assert not gate.is_auto_approve_enabled("other")


def test_next_validation_is_lowest_slide_number(gate):
    for number in (3, 1, 2):
        gate.queue_validation(PendingValidation("p", f"s{number}", number, "t", "b", "", "CONTENT", False))
    assert gate.get_next_validation("p").slide_number == 1
    assert gate.has_pending_validation("p")
    assert gate.clear_pending_validations("p") == 3
    assert gate.get_next_validation("p") is None


async def test_accept_resolves_exactly_once(gate, db, deck):
    _, slides = deck
    gate.queue_validation(pending_for(slides[0]))

    first = await gate.process_validation(db, USER_ID, slides[0].presentation_id, slides[0].id, ValidationAction.ACCEPT)
    second = await gate.process_validation(db, USER_ID, slides[0].presentation_id, slides[0].id, ValidationAction.ACCEPT)

    assert first.success and first.message == "Slide 1 accepted."
    assert not second.success
    assert second.message == "No pending validation for this slide."


async def test_edit_updates_slide_and_logs_correction(gate, db, deck):
    presentation, slides = deck
    gate.queue_validation(pending_for(slides[1]))

    outcome = await gate.process_validation(
        db, USER_ID, presentation.id, slides[1].id, ValidationAction.EDIT, SlideEdit(body="- one idea"),
    )
    await db.commit()

    assert outcome.success and outcome.slide_updated
    assert outcome.message == "Slide 2 updated with your edits."
    assert (await state.get_slide(db, presentation.id, slides[1].id)).body == "- one idea"
    (entry,) = await feedback_rows(db)
    assert entry.feedback_type == FeedbackType.CORRECTION.value
    assert entry.category == FeedbackCategory.DENSITY.value
    assert entry.corrected_content == "Slide 2\n- one idea"


async def test_edit_without_content_is_refused(gate, db, deck):
    presentation, slides = deck
    gate.queue_validation(pending_for(slides[0]))
    outcome = await gate.process_validation(db, USER_ID, presentation.id, slides[0].id, ValidationAction.EDIT)
    assert not outcome.success
    assert outcome.message == "Edit action requires edited content."


async def test_reject_deletes_and_renumbers(gate, db, deck):
    presentation, slides = deck
    gate.queue_validation(pending_for(slides[0]))

    outcome = await gate.process_validation(db, USER_ID, presentation.id, slides[0].id, "reject")
    await db.commit()

    assert outcome.message == "Slide 1 removed. Remaining slides renumbered."
    remaining = await state.list_slides(db, presentation.id)
    assert [(s.slide_number, s.title) for s in remaining] == [(1, "Slide 2"), (2, "Slide 3")]
    (entry,) = await feedback_rows(db)
    assert entry.category == FeedbackCategory.CONCEPT.value
    assert entry.corrected_content == "[REJECTED] Slide 1: Slide 1"
    assert entry.original_content.startswith("[CONTENT] Slide 1\n")


async def test_missing_slide_is_reported(gate, db, deck):
    presentation, slides = deck
    gate.queue_validation(pending_for(slides[2]))
    await state.delete_all_slides(db, presentation.id)
    await db.commit()

    outcome = await gate.process_validation(
        db, USER_ID, presentation.id, slides[2].id, ValidationAction.EDIT, SlideEdit(title="New"),
    )
    assert not outcome.success
    assert outcome.message == "This slide no longer exists."


def test_infer_category():
    original = PendingValidation("p", "s", 1, "Title", "one two three four five six seven eight nine ten", "", "CONTENT", False)
    assert infer_category(original, SlideEdit(title="Other")) == FeedbackCategory.STYLE
    assert infer_category(original, SlideEdit(body="one two")) == FeedbackCategory.DENSITY
    assert infer_category(original, SlideEdit(speaker_notes="warmer")) == FeedbackCategory.TONE
    assert infer_category(original, SlideEdit(body="one two three four five six seven eight nine")) == FeedbackCategory.STYLE


async def test_reject_shifts_queued_slide_numbers(gate, db, deck):
    presentation, slides = deck
    for slide in slides:
        gate.queue_validation(pending_for(slide))

    await gate.process_validation(db, USER_ID, presentation.id, slides[0].id, ValidationAction.REJECT)

    following = gate.get_next_validation(presentation.id)
    assert (following.slide_id, following.slide_number) == (slides[1].id, 1)
