"""
Style enforcer — checks one slide against the theme's writing rules and
may propose a rewritten title/body.
"""

import logging
from typing import Optional

from ...orchestrator.base_agent import ReviewAgent
from ...services import prompts
from ...services.llm import ModelTier
from ...services.shapes import STYLE_RESULT, StyleIssueShape, StyleResultShape

logger = logging.getLogger(__name__)


class StyleAgent(ReviewAgent):
    name = "style"
    display_name = "Style Enforcer"
    description = "Per-slide theme and writing-style compliance, with optional rewrites."
    tier = ModelTier.FAST
    max_retries = 1

    async def review(
        self,
        slide: dict,
        theme_name: str,
        extra_rules: Optional[list[str]] = None,
    ) -> StyleResultShape:
        messages = prompts.style_messages(slide, theme_name, extra_rules)
        result = await self._generate(messages, STYLE_RESULT)
        logger.debug(
            "Style slide %d: %s (%.2f, %d issue(s))",
            slide["slide_number"], result.verdict, result.score, len(result.issues),
        )
        return result

    def neutral(self) -> StyleResultShape:
        return StyleResultShape(
            verdict="PASS",
            score=0.8,
            issues=[StyleIssueShape(
                rule="agent_error", severity="warning", message="Style review unavailable",
            )],
        )
