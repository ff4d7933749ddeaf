"""
Agent base classes.

Two kinds of agent live here:
  - BaseAgent: a chat agent driven one message at a time. It keeps no
    state of its own; where it is in the conversation travels in the
    state dict the client sends back (`_step` and `_status`).
  - ReviewAgent: a quality agent that inspects slides and returns a
    typed verdict. Generative reviewers share the step executor; a
    failure surfaces as ReviewerDegraded so the caller can substitute
    the agent's neutral result.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ReviewerDegraded
from ..services.llm import ModelTier
from ..services.shapes import Validator
from ..services.structured import StepExecutor

T = TypeVar("T")

STEP_KEY = "_step"
STATUS_KEY = "_status"


class AgentStatus(str, Enum):
    IDLE = "idle"
    COLLECTING_INPUT = "collecting_input"            # waiting for a topic
    AWAITING_CONFIRMATION = "awaiting_confirmation"  # outline shown, not yet approved
    PROCESSING = "processing"
    AWAITING_VALIDATION = "awaiting_validation"      # slides queued at the gate
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class AgentResponse:
    content: str = ""
    state_update: dict = field(default_factory=dict)
    is_complete: bool = False
    needs_input: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    status: AgentStatus = AgentStatus.IDLE


class BaseAgent:
    """Chat agent. Subclasses implement handle()."""

    name: str = ""
    display_name: str = ""

    async def handle(
        self,
        message: str,
        state: dict,
        db: AsyncSession,
        user_id: str,
        **kwargs,
    ) -> AgentResponse:
        raise NotImplementedError(f"Agent '{self.name}' must implement handle()")

    def get_status(self, state: dict) -> AgentStatus:
        return AgentStatus(state.get(STATUS_KEY, AgentStatus.IDLE))

    def get_step(self, state: dict) -> str:
        return state.get(STEP_KEY, "start")

    def _set_step(self, state: dict, step: str, status: AgentStatus = AgentStatus.PROCESSING) -> dict:
        """Copy of state moved to step. The caller's dict is left alone."""
        return {**state, STEP_KEY: step, STATUS_KEY: status.value}

    def _complete(self, state: dict) -> dict:
        """Copy of state marked finished. The presentation id is kept for follow-up toggles."""
        return self._set_step(state, "done", AgentStatus.COMPLETE)


@dataclass
class Fix:
    """An automatic rewrite proposed by a quality agent, keyed by slide number."""

    slide_number: int
    agent: str
    original_title: str
    original_body: str
    fixed_title: str
    fixed_body: str


class ReviewAgent:
    """
    Base class for quality agents.

    Subclasses set `tier` and `max_retries` for their generative step and
    implement neutral() for the result used when they are unavailable.
    """

    name: str = ""
    display_name: str = ""
    description: str = ""
    tier: ModelTier = ModelTier.STANDARD
    max_retries: int = 1

    def __init__(self, executor: Optional[StepExecutor] = None):
        self.executor = executor

    async def _generate(self, messages: list[dict], validator: Validator[T]) -> T:
        """Run one generative step; any failure becomes ReviewerDegraded."""
        if self.executor is None:
            raise ReviewerDegraded(self.name, RuntimeError("no generator configured"))
        try:
            return await self.executor.run(messages, self.tier, validator, max_retries=self.max_retries)
        except Exception as e:
            raise ReviewerDegraded(self.name, e) from e

    def neutral(self) -> Any:
        """Result substituted when this agent cannot produce one."""
        return None
