"""
Outline stage — topic + retrieved context → ordered slide plan.

The plan is generated in one executor call, then post-processed in a
fixed order:
  1. tier cap: truncate to the plan's slide allowance, renumber
  2. section labels (toggle): backfill missing labels from the slide type
  3. agenda (toggle): splice an OUTLINE slide in at position 2, renumber

Plans awaiting user approval are parked in a TtlStore keyed by
presentation id.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Optional

from ..core.enums import DEFAULT_SLIDE_RANGES, PresentationType, SlideType
from ..core.ttl_store import TtlStore
from . import prompts
from .context import ContextRetriever, NullRetriever
from .llm import ModelTier
from .shapes import OUTLINE, OutlineShape
from .structured import StepExecutor

logger = logging.getLogger(__name__)

AGENDA_TITLE = "Agenda"
AGENDA_BULLET = "Overview of topics covered in this presentation"
AGENDA_LABEL = "AGENDA"
AGENDA_NOTES = "This slide provides an overview of the topics we will cover."

APPROVAL_PHRASES = (
    "approve", "approved", "yes", "go ahead", "looks good",
    "generate", "do it", "ok", "okay", "perfect", "let's go",
    "ship it", "proceed", "confirm", "build it", "create it",
)


# ── Plan types ───────────────────────────────────────────────────────

@dataclass
class SlidePlanItem:
    slide_number: int
    title: str
    bullet_points: list[str]
    slide_type: str
    section_label: Optional[str] = None
    # Preset content. Set for slides the pipeline writes itself (the agenda).
    body: Optional[str] = None
    speaker_notes: Optional[str] = None


@dataclass
class SlidePlan:
    title: str
    slides: list[SlidePlanItem] = field(default_factory=list)

    @classmethod
    def from_shape(cls, shape: OutlineShape) -> "SlidePlan":
        return cls(
            title=shape.title,
            slides=[
                SlidePlanItem(
                    slide_number=s.slide_number,
                    title=s.title,
                    bullet_points=list(s.bullet_points),
                    slide_type=s.slide_type.value,
                    section_label=s.section_label or None,
                )
                for s in shape.slides
            ],
        )

    def to_markdown(self) -> str:
        parts = [f"## {self.title}", ""]
        for s in self.slides:
            parts.append(f"**Slide {s.slide_number}: {s.title}** _({s.slide_type})_")
            parts.extend(f"- {b}" for b in s.bullet_points)
            parts.append("")
        parts.append(
            f"---\n_{len(self.slides)} slides. Type **approve** to generate the full deck, "
            "or tell me what to change._"
        )
        return "\n".join(parts)


@dataclass
class GenerationConfig:
    """Per-request knobs for outline and deck generation."""
    presentation_type: str = PresentationType.STANDARD.value
    theme_id: Optional[str] = None
    archetype: Optional[str] = None
    min_slides: Optional[int] = None
    max_slides: Optional[int] = None
    show_section_labels: bool = False
    show_agenda: bool = False

    def slide_range(self) -> tuple[int, int]:
        try:
            low, high = DEFAULT_SLIDE_RANGES[PresentationType(self.presentation_type)]
        except ValueError:
            low, high = DEFAULT_SLIDE_RANGES[PresentationType.STANDARD]
        return (self.min_slides or low, self.max_slides or high)


@dataclass
class PendingOutline:
    user_id: str
    topic: str
    plan: SlidePlan
    config: GenerationConfig


# ── Post-processing ──────────────────────────────────────────────────

def renumber(items: list[SlidePlanItem]) -> list[SlidePlanItem]:
    for index, item in enumerate(items, start=1):
        item.slide_number = index
    return items


def truncate_plan(items: list[SlidePlanItem], max_slides: Optional[int]) -> list[SlidePlanItem]:
    if max_slides is None or len(items) <= max_slides:
        return renumber(items)
    logger.info("Outline truncated from %d to %d slides (tier cap)", len(items), max_slides)
    return renumber(items[:max_slides])


def apply_section_labels(items: list[SlidePlanItem]) -> list[SlidePlanItem]:
    for item in items:
        if not (item.section_label or "").strip():
            item.section_label = item.slide_type.replace("_", " ")
    return items


def inject_agenda(items: list[SlidePlanItem], with_label: bool = False) -> list[SlidePlanItem]:
    """Insert an agenda after the first slide unless the plan already has one."""
    if any(item.slide_type == SlideType.OUTLINE.value for item in items):
        return items

    skip = {SlideType.TITLE.value, SlideType.CTA.value}
    content_titles = [item.title for item in items if item.slide_type not in skip]
    agenda = SlidePlanItem(
        slide_number=2,
        title=AGENDA_TITLE,
        bullet_points=[AGENDA_BULLET],
        slide_type=SlideType.OUTLINE.value,
        section_label=AGENDA_LABEL if with_label else None,
        body="\n".join(f"{i}. {title}" for i, title in enumerate(content_titles, start=1)),
        speaker_notes=AGENDA_NOTES,
    )
    items = items[:1] + [agenda] + items[1:]
    return renumber(items)


def post_process(plan: SlidePlan, max_slides: Optional[int], config: GenerationConfig) -> SlidePlan:
    """Apply tier cap, section labels and agenda, in that order. Returns a new plan."""
    items = [replace(item) for item in plan.slides]
    items = truncate_plan(items, max_slides)
    if config.show_section_labels:
        items = apply_section_labels(items)
    if config.show_agenda:
        items = inject_agenda(items, with_label=config.show_section_labels)
    return SlidePlan(title=plan.title, slides=items)


def is_approval(message: str) -> bool:
    normalized = message.strip().lower()
    return any(normalized == p or normalized.startswith(p) for p in APPROVAL_PHRASES)


# ── Stage ────────────────────────────────────────────────────────────

class OutlineStage:
    def __init__(
        self,
        executor: StepExecutor,
        retriever: Optional[ContextRetriever] = None,
        pending: Optional[TtlStore[PendingOutline]] = None,
        max_retries: int = 2,
    ):
        self.executor = executor
        self.retriever = retriever or NullRetriever()
        self.pending = pending
        self.max_retries = max_retries

    async def retrieve_context(self, user_id: str, topic: str) -> str:
        return await self.retriever.retrieve(user_id, topic, k=5)

    async def generate(
        self,
        topic: str,
        config: GenerationConfig,
        kb_context: str = "",
        rules: str = "",
    ) -> SlidePlan:
        """One outline call. GenerationExhausted propagates."""
        low, high = config.slide_range()
        messages = prompts.outline_messages(topic, low, high, kb_context=kb_context, rules=rules)
        shape = await self.executor.run(messages, ModelTier.STANDARD, OUTLINE, max_retries=self.max_retries)
        plan = SlidePlan.from_shape(shape)
        renumber(plan.slides)
        logger.info("Outline generated: %r, %d slides", plan.title, len(plan.slides))
        return plan

    # ── Pending approval ─────────────────────────────────────────────

    def store_pending(self, presentation_id: str, pending: PendingOutline) -> None:
        self._require_store().set(presentation_id, pending)

    def has_pending_outline(self, presentation_id: str) -> bool:
        return self.pending is not None and self.pending.has(presentation_id)

    def get_pending(self, presentation_id: str) -> Optional[PendingOutline]:
        return self.pending.get(presentation_id) if self.pending is not None else None

    def pop_pending(self, presentation_id: str) -> Optional[PendingOutline]:
        return self.pending.pop(presentation_id) if self.pending is not None else None

    def _require_store(self) -> TtlStore[PendingOutline]:
        if self.pending is None:
            raise RuntimeError("OutlineStage has no pending-outline store")
        return self.pending
