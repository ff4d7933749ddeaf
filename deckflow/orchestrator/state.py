"""
Presentation and slide persistence.

The pipeline, the validation gate and the API all mutate slides through
these helpers so the numbering rule holds everywhere: after any insert,
delete or truncate, slide_number == position + 1.

Helpers flush but never commit; the caller owns the transaction.
"""

import logging
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from ..core.enums import PresentationStatus
from ..models.presentation import Presentation, Slide

logger = logging.getLogger(__name__)

SLIDE_FIELDS = ("title", "body", "speaker_notes", "slide_type", "image_prompt", "section_label")


# ── Presentations ────────────────────────────────────────────────────

async def create_presentation(
    db: AsyncSession,
    user_id: str,
    topic: str,
    title: Optional[str] = None,
    theme_id: Optional[str] = None,
    presentation_type: Optional[str] = None,
    archetype: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Presentation:
    presentation = Presentation(
        user_id=user_id,
        topic=topic,
        title=title or topic[:120],
        theme_id=theme_id,
        presentation_type=presentation_type,
        archetype=archetype,
        status=PresentationStatus.DRAFT.value,
        presentation_metadata=metadata or {},
    )
    db.add(presentation)
    await db.flush()
    logger.info("Created presentation %s for user %s", presentation.id, user_id)
    return presentation


async def get_presentation(
    db: AsyncSession,
    presentation_id: str,
    user_id: Optional[str] = None,
) -> Optional[Presentation]:
    query = select(Presentation).where(Presentation.id == presentation_id)
    if user_id is not None:
        query = query.where(Presentation.user_id == user_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def set_status(db: AsyncSession, presentation: Presentation, status: PresentationStatus) -> None:
    presentation.status = status.value
    await db.flush()


async def update_metadata(db: AsyncSession, presentation: Presentation, updates: dict) -> dict:
    """Merge updates into presentation_metadata. Returns the new dict."""
    current = dict(presentation.presentation_metadata or {})
    current.update(updates)
    presentation.presentation_metadata = current
    flag_modified(presentation, "presentation_metadata")
    await db.flush()
    return current


# ── Slides ───────────────────────────────────────────────────────────

async def list_slides(db: AsyncSession, presentation_id: str) -> list[Slide]:
    result = await db.execute(
        select(Slide)
        .where(Slide.presentation_id == presentation_id)
        .order_by(Slide.slide_number)
    )
    return list(result.scalars().all())


async def get_slide(db: AsyncSession, presentation_id: str, slide_id: str) -> Optional[Slide]:
    result = await db.execute(
        select(Slide).where(Slide.id == slide_id, Slide.presentation_id == presentation_id)
    )
    return result.scalar_one_or_none()


async def create_slide(
    db: AsyncSession,
    presentation_id: str,
    slide_number: int,
    title: str,
    body: str,
    slide_type: str,
    speaker_notes: Optional[str] = None,
    image_prompt: Optional[str] = None,
    section_label: Optional[str] = None,
) -> Slide:
    slide = Slide(
        presentation_id=presentation_id,
        slide_number=slide_number,
        title=title,
        body=body,
        slide_type=slide_type,
        speaker_notes=speaker_notes,
        image_prompt=image_prompt,
        section_label=section_label,
    )
    db.add(slide)
    await db.flush()
    return slide


async def update_slide(db: AsyncSession, slide: Slide, **changes) -> dict:
    """Apply field changes. Unknown fields are rejected. Returns what actually changed."""
    unknown = set(changes) - set(SLIDE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown slide field(s): {', '.join(sorted(unknown))}")

    applied = {}
    for name, value in changes.items():
        if value is not None and getattr(slide, name) != value:
            setattr(slide, name, value)
            applied[name] = value
    if applied:
        await db.flush()
    return applied


async def delete_all_slides(db: AsyncSession, presentation_id: str) -> int:
    result = await db.execute(delete(Slide).where(Slide.presentation_id == presentation_id))
    await db.flush()
    return result.rowcount or 0


async def renumber_slides(db: AsyncSession, presentation_id: str) -> list[Slide]:
    """Close gaps so numbers run 1..N in current order."""
    slides = await list_slides(db, presentation_id)
    for index, slide in enumerate(slides, start=1):
        if slide.slide_number != index:
            slide.slide_number = index
    await db.flush()
    return slides


async def reject_and_renumber(db: AsyncSession, presentation_id: str, slide_id: str) -> Optional[Slide]:
    """
    Delete one slide and renumber the rest, inside the caller's transaction.
    Returns the deleted slide (detached), or None if it did not exist.
    """
    slide = await get_slide(db, presentation_id, slide_id)
    if slide is None:
        return None
    await db.delete(slide)
    await db.flush()
    await renumber_slides(db, presentation_id)
    logger.info("Rejected slide %s (was #%d) in %s", slide_id, slide.slide_number, presentation_id)
    return slide


def slide_payload(slide: Slide) -> dict:
    """Serializable view of a slide for events and API responses."""
    return {
        "id": slide.id,
        "slide_number": slide.slide_number,
        "title": slide.title,
        "body": slide.body,
        "speaker_notes": slide.speaker_notes or "",
        "slide_type": slide.slide_type,
        "image_prompt": slide.image_prompt,
        "section_label": slide.section_label,
    }
