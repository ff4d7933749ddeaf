"""
Quality review pipeline — four agents over the realized deck.

Stages:
  1. style + fact check, concurrently (each batched, batches fanned out)
  2. narrative coherence, over per-slide summaries
  3. structural integrity, programmatic

A failing generative agent is replaced by its neutral result; the review
as a whole never fails a generation. The report carries pass/fail against
per-archetype thresholds and an ordered list of fixes (style, then fact
check, then structural) which apply_fixes() writes back by slide number.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from . import realtime
from ..agents.fact_check.handler import FactCheckAgent
from ..agents.narrative.handler import NarrativeAgent
from ..agents.structural.handler import StructuralAgent, StructuralResult
from ..agents.style.handler import StyleAgent
from ..core.enums import FACT_CHECKED_SLIDE_TYPES, DeckArchetype
from ..orchestrator import state
from ..orchestrator.base_agent import Fix
from .shapes import FactCheckShape, NarrativeShape, StyleResultShape

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FACT_CHECKED = {t.value for t in FACT_CHECKED_SLIDE_TYPES}


# ── Thresholds ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class QualityThresholds:
    style: float = 0.7
    narrative: float = 0.6
    fact_check: float = 0.7


ARCHETYPE_THRESHOLDS: dict[DeckArchetype, dict[str, float]] = {
    DeckArchetype.INVESTOR_PITCH: {"narrative": 0.75, "fact_check": 0.8},
    DeckArchetype.STRATEGY_BRIEF: {"style": 0.8, "narrative": 0.75},
    DeckArchetype.KEYNOTE: {"narrative": 0.7},
    DeckArchetype.BOARD_UPDATE: {"narrative": 0.7, "fact_check": 0.8},
    DeckArchetype.CASE_STUDY: {"fact_check": 0.85},
}


# Extra reviewer instructions per archetype, keyed by agent name.
ARCHETYPE_RULES: dict[DeckArchetype, dict[str, list[str]]] = {
    DeckArchetype.INVESTOR_PITCH: {
        "narrative": [
            "Verify TAM/SAM/SOM slide exists with specific dollar figures.",
            "Verify The Ask slide specifies exact funding amount and use of funds.",
            "Flag if any slide title is a topic label instead of a claim.",
        ],
    },
    DeckArchetype.SALES_DECK: {
        "style": [
            'Flag any slide that uses "we" or "our" more than "you" or "your".',
            "Flag feature lists that lack customer outcome mapping.",
        ],
        "narrative": [
            "Verify the Problem -> Agitate -> Solve arc is intact.",
            "Verify at least one proof/testimonial slide exists.",
            "Flag if the deck opens with company history instead of customer pain.",
        ],
    },
    DeckArchetype.STRATEGY_BRIEF: {
        "style": [
            "Every title MUST be an action sentence with a verb. Flag topic labels as errors.",
            "Bold ONLY numbers and company names. No decorative emphasis.",
            'Every data slide must end with "Source: [Name], [Year]".',
        ],
        "narrative": [
            "Verify the recommendation appears by slide 3.",
            "Verify supporting arguments are grouped in threes.",
            "Flag if Situation + Complication exceed 2 slides.",
        ],
    },
    DeckArchetype.KEYNOTE: {
        "style": [
            "Image prompts must be vivid and emotional, not corporate stock.",
            "Flag slides with more than 3 bullets; keynotes need minimal text.",
        ],
        "narrative": [
            'Verify the "what is" / "what could be" oscillation pattern.',
            "Verify at least one jaw-dropping moment slide exists.",
            "Flag if any slide exceeds 30 words.",
            "Verify the deck opens with a story, not a fact dump.",
        ],
    },
    DeckArchetype.PRODUCT_LAUNCH: {
        "style": [
            "Flag slides with more than 35 words; launch decks demand minimal text.",
            "Image prompts should specify product-focused, dark/clean aesthetic.",
        ],
        "narrative": [
            "Verify the antagonist -> hero arc structure.",
            "Verify features are grouped in threes.",
            "Verify a demo/how-it-works section exists.",
        ],
    },
    DeckArchetype.BOARD_UPDATE: {
        "narrative": [
            "Verify executive summary slide exists by slide 2.",
            "Verify What/So What/Now What structure with ~30/30/40 balance.",
            "Verify Now What section contains specific decision requests.",
        ],
    },
    DeckArchetype.TECHNICAL_DEEP_DIVE: {
        "style": [
            "Technical jargon is expected and welcome. Do not flag acronyms.",
            "Architecture slides should have an image prompt hint for system diagrams.",
        ],
        "narrative": [
            "Verify at least one ARCHITECTURE slide exists.",
            "Verify benchmark/performance data is present.",
            "Verify adoption/getting-started section exists in closing slides.",
        ],
    },
    DeckArchetype.CULTURE_DECK: {
        "style": [
            "At least 50% of slides must have a non-empty image prompt hint.",
            "Image prompts should evoke warm, human, team-oriented scenes.",
            'Flag corporate stock photo language ("business team meeting in conference room").',
        ],
        "narrative": [
            "Verify each value is paired with a specific illustrative story.",
            'Verify the "what we expect" section exists.',
            "Flag generic value statements without backing stories.",
        ],
    },
    DeckArchetype.TRAINING_WORKSHOP: {
        "narrative": [
            "Verify learning objectives slide exists in the first 2 slides.",
            "Verify at least 2 checkpoint/recap slides exist.",
            "Verify closing includes practical exercise or next steps.",
        ],
    },
    DeckArchetype.CASE_STUDY: {
        "narrative": [
            "Verify Before metrics are mirrored in After metrics (same units).",
            'Verify a "Results at a Glance" summary exists.',
            "Verify at least one customer quote is present.",
        ],
    },
}


def _archetype(value: Optional[str]) -> Optional[DeckArchetype]:
    if not value:
        return None
    try:
        return DeckArchetype(value)
    except ValueError:
        logger.warning("Unknown archetype %r, using defaults", value)
        return None


def rules_for(archetype: Optional[str], agent: str) -> list[str]:
    known = _archetype(archetype)
    if known is None:
        return []
    return list(ARCHETYPE_RULES.get(known, {}).get(agent, []))


def thresholds_for(archetype: Optional[str], defaults: QualityThresholds = QualityThresholds()) -> QualityThresholds:
    known = _archetype(archetype)
    if known is None:
        return defaults
    overrides = ARCHETYPE_THRESHOLDS.get(known, {})
    return QualityThresholds(
        style=overrides.get("style", defaults.style),
        narrative=overrides.get("narrative", defaults.narrative),
        fact_check=overrides.get("fact_check", defaults.fact_check),
    )


# ── Report ───────────────────────────────────────────────────────────

@dataclass
class QualityMetrics:
    avg_style_score: float = 1.0
    narrative_score: float = 1.0
    avg_fact_score: float = 1.0
    slides_fixed: int = 0
    errors_found: int = 0


@dataclass
class QualityReport:
    passed: bool
    style_results: list[tuple[int, StyleResultShape]] = field(default_factory=list)
    narrative_result: Optional[NarrativeShape] = None
    fact_check_results: list[tuple[int, FactCheckShape]] = field(default_factory=list)
    structural_result: StructuralResult = field(default_factory=StructuralResult)
    fixes: list[Fix] = field(default_factory=list)
    metrics: QualityMetrics = field(default_factory=QualityMetrics)

    def summary(self) -> dict:
        """Compact form stored in the presentation's metadata."""
        m = self.metrics
        return {
            "passed": self.passed,
            "style": round(m.avg_style_score, 3),
            "narrative": round(m.narrative_score, 3),
            "facts": round(m.avg_fact_score, 3),
            "slides_fixed": m.slides_fixed,
            "errors_found": m.errors_found,
            "structural_issues": [i.check for i in self.structural_result.issues],
        }


def _average(scores: list[float]) -> float:
    return sum(scores) / len(scores) if scores else 1.0


async def _in_batches(items: list[T], size: int, run: Callable[[T], Awaitable]) -> list:
    """Run `run` over items, `size` at a time, preserving order."""
    results = []
    for start in range(0, len(items), max(size, 1)):
        batch = items[start:start + size]
        results.extend(await asyncio.gather(*(run(item) for item in batch)))
    return results


# ── Pipeline ─────────────────────────────────────────────────────────

class QualityReviewPipeline:
    def __init__(
        self,
        style: StyleAgent,
        narrative: NarrativeAgent,
        structural: StructuralAgent,
        fact_check: Optional[FactCheckAgent] = None,
        thresholds: QualityThresholds = QualityThresholds(),
        style_batch_size: int = 3,
        fact_check_batch_size: int = 2,
    ):
        self.style = style
        self.narrative = narrative
        self.structural = structural
        self.fact_check = fact_check
        self.thresholds = thresholds
        self.style_batch_size = style_batch_size
        self.fact_check_batch_size = fact_check_batch_size

    async def review(
        self,
        slides: list[dict],
        user_id: str,
        theme_name: str,
        presentation_type: str,
        archetype: Optional[str] = None,
    ) -> QualityReport:
        logger.info(
            "Quality review: %d slides, theme=%r, type=%s, archetype=%s",
            len(slides), theme_name, presentation_type, archetype,
        )
        thresholds = thresholds_for(archetype, self.thresholds)

        style_results, fact_results = await asyncio.gather(
            self._run_style(slides, theme_name, rules_for(archetype, "style")),
            self._run_fact_check(slides, user_id),
        )
        narrative = await self._run_narrative(slides, presentation_type, rules_for(archetype, "narrative"))
        structural = self.structural.review(slides)

        by_number = {s["slide_number"]: s for s in slides}
        fixes = self._style_fixes(style_results, by_number)
        fixes += self._fact_fixes(fact_results, by_number)
        fixes += structural.fixes

        metrics = QualityMetrics(
            avg_style_score=_average([r.score for _, r in style_results]),
            narrative_score=narrative.overall_score if narrative is not None else 1.0,
            avg_fact_score=_average([r.score for _, r in fact_results]),
            slides_fixed=len(fixes),
            errors_found=(
                sum(1 for _, r in style_results for i in r.issues if i.severity == "error")
                + (sum(1 for i in narrative.issues if i.severity == "error") if narrative else 0)
                + sum(1 for _, r in fact_results for c in r.claims if c.status == "contradicted")
                + structural.error_count
            ),
        )
        passed = (
            metrics.avg_style_score >= thresholds.style
            and metrics.narrative_score >= thresholds.narrative
            and metrics.avg_fact_score >= thresholds.fact_check
        )
        logger.info(
            "Quality review complete: style=%.2f narrative=%.2f facts=%.2f fixes=%d passed=%s",
            metrics.avg_style_score, metrics.narrative_score, metrics.avg_fact_score, len(fixes), passed,
        )
        return QualityReport(
            passed=passed,
            style_results=style_results,
            narrative_result=narrative,
            fact_check_results=fact_results,
            structural_result=structural,
            fixes=fixes,
            metrics=metrics,
        )

    # ── Agents ───────────────────────────────────────────────────────

    async def _run_style(
        self, slides: list[dict], theme_name: str, rules: list[str],
    ) -> list[tuple[int, StyleResultShape]]:
        async def one(slide: dict) -> tuple[int, StyleResultShape]:
            try:
                return slide["slide_number"], await self.style.review(slide, theme_name, rules)
            except Exception as e:
                logger.warning("Style review failed for slide %d: %s", slide["slide_number"], e)
                return slide["slide_number"], self.style.neutral()

        return await _in_batches(slides, self.style_batch_size, one)

    async def _run_fact_check(self, slides: list[dict], user_id: str) -> list[tuple[int, FactCheckShape]]:
        if self.fact_check is None:
            return []
        to_check = [s for s in slides if s["slide_type"] in _FACT_CHECKED]

        async def one(slide: dict) -> tuple[int, FactCheckShape]:
            try:
                return slide["slide_number"], await self.fact_check.review(slide, user_id)
            except Exception as e:
                logger.warning("Fact check failed for slide %d: %s", slide["slide_number"], e)
                return slide["slide_number"], self.fact_check.neutral()

        return await _in_batches(to_check, self.fact_check_batch_size, one)

    async def _run_narrative(
        self, slides: list[dict], presentation_type: str, rules: list[str],
    ) -> Optional[NarrativeShape]:
        try:
            return await self.narrative.review(slides, presentation_type, rules)
        except Exception as e:
            logger.warning("Narrative review failed: %s", e)
            return None

    # ── Fixes ────────────────────────────────────────────────────────

    def _style_fixes(self, results: list[tuple[int, StyleResultShape]], by_number: dict[int, dict]) -> list[Fix]:
        fixes = []
        for number, result in results:
            if result.verdict != "NEEDS_FIX" or not (result.rewritten_title or result.rewritten_body):
                continue
            original = by_number.get(number)
            if original is None:
                continue
            fixes.append(Fix(
                slide_number=number,
                agent=self.style.name,
                original_title=original["title"],
                original_body=original["body"],
                fixed_title=result.rewritten_title or original["title"],
                fixed_body=result.rewritten_body or original["body"],
            ))
        return fixes

    def _fact_fixes(self, results: list[tuple[int, FactCheckShape]], by_number: dict[int, dict]) -> list[Fix]:
        fixes = []
        for number, result in results:
            original = by_number.get(number)
            if original is None:
                continue
            fixed_body = FactCheckAgent.corrected_body(original["body"], result)
            if fixed_body is None:
                continue
            fixes.append(Fix(
                slide_number=number,
                agent="fact_check",
                original_title=original["title"],
                original_body=original["body"],
                fixed_title=original["title"],
                fixed_body=fixed_body,
            ))
        return fixes


async def apply_fixes(db: AsyncSession, user_id: str, presentation_id: str, fixes: list[Fix]) -> int:
    """
    Write fixes back to the persisted slides by slide number. Only the
    fields a fix actually changed are written, so a later fix for the same
    slide does not undo an earlier one. Returns how many fixes were applied.
    """
    if not fixes:
        return 0
    slides = {s.slide_number: s for s in await state.list_slides(db, presentation_id)}
    applied = 0
    for fix in fixes:
        slide = slides.get(fix.slide_number)
        if slide is None:
            logger.debug("Fix for missing slide %d skipped", fix.slide_number)
            continue
        changes = {}
        if fix.fixed_title != fix.original_title:
            changes["title"] = fix.fixed_title
        if fix.fixed_body != fix.original_body:
            changes["body"] = fix.fixed_body
        try:
            updated = await state.update_slide(db, slide, **changes)
        except Exception as e:
            logger.warning("Failed to apply %s fix to slide %d: %s", fix.agent, fix.slide_number, e)
            continue
        if updated:
            applied += 1
            await realtime.slide_updated(user_id, presentation_id, slide.id, updated)
            logger.debug("Applied %s fix to slide %d", fix.agent, fix.slide_number)
    return applied
