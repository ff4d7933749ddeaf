"""
Agent registry. Register agents, look them up, list them.
"""

import logging
from typing import Optional, Union

from .base_agent import BaseAgent, ReviewAgent
from ..core.config import Settings
from ..core.flags import FeatureFlags
from ..services.context import ContextRetriever
from ..services.structured import StepExecutor

logger = logging.getLogger(__name__)

Agent = Union[BaseAgent, ReviewAgent]


class AgentRegistry:
    """Holds every chat and review agent by name."""

    def __init__(self):
        self._agents: dict[str, Agent] = {}

    def register(self, agent: Agent) -> None:
        if agent.name in self._agents:
            logger.warning("Agent '%s' already registered, overwriting", agent.name)
        self._agents[agent.name] = agent
        logger.info("Registered agent: %s (%s)", agent.name, agent.display_name)

    def get(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def get_agent_names(self) -> list[str]:
        return list(self._agents.keys())


def build_review_registry(
    executor: StepExecutor,
    retriever: ContextRetriever,
    settings: Settings,
    flags: FeatureFlags,
) -> AgentRegistry:
    """Register the review agents enabled by feature flags."""
    from ..agents.content_review.handler import ContentReviewAgent
    from ..agents.fact_check.handler import FactCheckAgent
    from ..agents.narrative.handler import NarrativeAgent
    from ..agents.structural.handler import StructuralAgent
    from ..agents.style.handler import StyleAgent

    registry = AgentRegistry()
    registry.register(StyleAgent(executor))
    registry.register(NarrativeAgent(executor, min_slides=settings.narrative_min_slides))
    registry.register(StructuralAgent())

    if flags.enable_fact_check:
        registry.register(FactCheckAgent(executor, retriever=retriever))

    if flags.enable_content_review:
        registry.register(ContentReviewAgent(executor))

    logger.info(
        "Review agents ready: %d [%s]",
        len(registry.get_agent_names()),
        ", ".join(registry.get_agent_names()),
    )
    return registry
