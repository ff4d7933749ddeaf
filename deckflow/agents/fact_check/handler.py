"""
Fact checker — verifies the claims on a data-bearing slide against the
user's knowledge base, and applies corrections for contradicted claims.
"""

import logging
import re
from typing import Optional

from ...orchestrator.base_agent import ReviewAgent
from ...services import prompts
from ...services.context import ContextRetriever, NullRetriever, slide_query
from ...services.llm import ModelTier
from ...services.shapes import FACT_CHECK, FactCheckShape

logger = logging.getLogger(__name__)


def apply_correction(body: str, claim: str, correction: str) -> Optional[str]:
    """
    Replace the first occurrence of `claim` in `body`.

    Exact match first; otherwise a match that ignores case and collapses
    runs of whitespace. Returns None when the claim cannot be located.
    """
    if not claim.strip():
        return None
    if claim in body:
        return body.replace(claim, correction, 1)

    pattern = r"\s+".join(re.escape(word) for word in claim.split())
    match = re.search(pattern, body, flags=re.IGNORECASE)
    if match is None:
        return None
    return body[:match.start()] + correction + body[match.end():]


class FactCheckAgent(ReviewAgent):
    name = "fact_check"
    display_name = "Fact Checker"
    description = "Verifies numeric and factual claims against the knowledge base."
    tier = ModelTier.STANDARD
    max_retries = 1

    def __init__(self, executor=None, retriever: Optional[ContextRetriever] = None):
        super().__init__(executor)
        self.retriever = retriever or NullRetriever()

    async def review(self, slide: dict, user_id: str) -> FactCheckShape:
        query = slide_query(slide["title"], (slide["body"] or "").split("\n"))
        kb_context = await self.retriever.retrieve(user_id, query, k=5)
        result = await self._generate(prompts.fact_check_messages(slide, kb_context), FACT_CHECK)
        logger.debug(
            "Fact check slide %d: %s (%.2f, %d claim(s))",
            slide["slide_number"], result.verdict, result.score, len(result.claims),
        )
        return result

    def neutral(self) -> FactCheckShape:
        return FactCheckShape(verdict="VERIFIED", score=0.8, claims=[])

    @staticmethod
    def corrected_body(body: str, result: FactCheckShape) -> Optional[str]:
        """Body with every locatable contradicted claim corrected, or None if nothing changed."""
        if result.verdict != "HAS_ERRORS":
            return None
        fixed = body
        changed = False
        for claim in result.claims:
            if claim.status != "contradicted" or not claim.correction:
                continue
            replaced = apply_correction(fixed, claim.claim, claim.correction)
            if replaced is None:
                logger.debug("Contradicted claim not found in body, skipping: %r", claim.claim[:80])
                continue
            fixed = replaced
            changed = True
        return fixed if changed else None
