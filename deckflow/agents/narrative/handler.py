"""
Narrative coherence — one pass over the whole deck's story arc.
"""

import logging
from typing import Optional

from ...orchestrator.base_agent import ReviewAgent
from ...services import prompts
from ...services.llm import ModelTier
from ...services.shapes import NARRATIVE, NarrativeShape

logger = logging.getLogger(__name__)


class NarrativeAgent(ReviewAgent):
    name = "narrative"
    display_name = "Narrative Coherence"
    description = "Assesses deck-level story flow from per-slide summaries."
    tier = ModelTier.STANDARD
    max_retries = 1

    def __init__(self, executor=None, min_slides: int = 3):
        super().__init__(executor)
        self.min_slides = min_slides

    async def review(
        self,
        slides: list[dict],
        presentation_type: str,
        extra_rules: Optional[list[str]] = None,
    ) -> Optional[NarrativeShape]:
        if len(slides) < self.min_slides:
            return None
        messages = prompts.narrative_messages(slides, presentation_type, extra_rules)
        result = await self._generate(messages, NARRATIVE)
        logger.debug("Narrative: %.2f, %d issue(s)", result.overall_score, len(result.issues))
        return result
