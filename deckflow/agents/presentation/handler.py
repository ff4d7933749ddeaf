"""
Deck agent — chat front end for the generation pipeline.

Workflow:
  1. collect a topic, generate an outline and present it for approval
  2. "approve" (or any approval phrase) runs the full pipeline;
     anything else regenerates the outline with the request as a change
  3. while slides await validation: "accept", "reject" or "edit: <text>"
  4. "auto-approve on|off" toggles the gate for the current deck

The agent keeps no conversation state of its own; the presentation id
travels in the state dict the caller sends back on the next turn.
"""

import logging
import re
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ...core.errors import DeckflowError
from ...orchestrator.base_agent import AgentResponse, AgentStatus, BaseAgent
from ...orchestrator.orchestrator import GenerationOrchestrator
from ...services.outline import GenerationConfig, OutlineStage, is_approval
from ...services.validation_gate import PendingValidation, SlideEdit, ValidationAction, ValidationGate

logger = logging.getLogger(__name__)

_AUTO_APPROVE = re.compile(r"^/?auto-?approve\s+(on|off)\s*$", re.IGNORECASE)
_EDIT = re.compile(r"^edit\s*:\s*(.+)$", re.IGNORECASE | re.DOTALL)
_ACCEPT_WORDS = {"accept", "accepted", "approve", "ok", "okay", "yes", "looks good", "keep"}
_REJECT_WORDS = {"reject", "rejected", "remove", "delete", "drop"}

ASK_TOPIC = (
    "What would you like the presentation to be about? "
    "Give me a topic and I'll draft an outline for you to approve."
)


def _validation_prompt(pending: PendingValidation) -> str:
    return (
        f"**Review slide {pending.slide_number}: {pending.title}** _({pending.slide_type})_\n\n"
        f"{pending.body}\n\n"
        "Reply **accept**, **reject**, or **edit: <new body>**."
    )


class PresentationAgent(BaseAgent):
    name = "presentation"
    display_name = "Deck Builder"
    description = (
        "Builds slide decks from a topic: drafts an outline for approval, "
        "generates slides with automated quality review and lets you "
        "accept, edit or reject each slide."
    )

    def __init__(self, orchestrator: GenerationOrchestrator, outline_stage: OutlineStage, gate: ValidationGate):
        self.orchestrator = orchestrator
        self.outline_stage = outline_stage
        self.gate = gate

    async def handle(
        self,
        message: str,
        state: dict,
        db: AsyncSession,
        user_id: str,
        **kwargs,
    ) -> AgentResponse:
        text = message.strip()
        presentation_id: Optional[str] = state.get("presentation_id")
        logger.info("Deck agent: step=%s presentation=%s msg=%s", self.get_step(state), presentation_id, text[:80])

        toggle = _AUTO_APPROVE.match(text)
        if toggle:
            return self._toggle_auto_approve(state, presentation_id, toggle.group(1).lower() == "on")

        try:
            if presentation_id and self.gate.has_pending_validation(presentation_id):
                return await self._validate(text, state, db, user_id, presentation_id)

            if presentation_id and self.outline_stage.has_pending_outline(presentation_id):
                if is_approval(text):
                    return await self._execute(state, db, user_id, presentation_id)
                return await self._revise_outline(text, state, db, user_id, presentation_id)

            if len(text) < 3:
                return AgentResponse(
                    content=ASK_TOPIC,
                    state_update=self._set_step(state, "collect_topic", AgentStatus.COLLECTING_INPUT),
                    needs_input="Presentation topic",
                    status=AgentStatus.COLLECTING_INPUT,
                )
            return await self._outline(text, self._config(state), state, db, user_id)

        except DeckflowError as e:
            logger.warning("Deck agent request failed: %s", e.message)
            return AgentResponse(
                content=f"Sorry, I couldn't do that: {e.message}",
                state_update=self._set_step(state, self.get_step(state), AgentStatus.ERROR),
                status=AgentStatus.ERROR,
                metadata={"error": type(e).__name__},
            )

    # ── Steps ────────────────────────────────────────────────────────

    def _config(self, state: dict) -> GenerationConfig:
        raw = state.get("config") or {}
        known = GenerationConfig.__dataclass_fields__
        return GenerationConfig(**{k: v for k, v in raw.items() if k in known})

    async def _outline(
        self,
        topic: str,
        config: GenerationConfig,
        state: dict,
        db: AsyncSession,
        user_id: str,
        presentation_id: Optional[str] = None,
    ) -> AgentResponse:
        result = await self.orchestrator.create_outline(db, user_id, topic, config, presentation_id=presentation_id)
        new_state = self._set_step(state, "approve_outline", AgentStatus.AWAITING_CONFIRMATION)
        new_state["presentation_id"] = result.presentation_id
        new_state["topic"] = topic
        return AgentResponse(
            content=result.plan.to_markdown(),
            state_update=new_state,
            needs_input="Outline approval",
            status=AgentStatus.AWAITING_CONFIRMATION,
            metadata={"presentation_id": result.presentation_id, "slides": len(result.plan.slides)},
        )

    async def _revise_outline(
        self, text: str, state: dict, db: AsyncSession, user_id: str, presentation_id: str,
    ) -> AgentResponse:
        pending = self.outline_stage.get_pending(presentation_id)
        base_topic = pending.topic if pending else state.get("topic", "")
        config = pending.config if pending else self._config(state)
        topic = f"{base_topic}\n\nRequested changes: {text}" if base_topic else text
        return await self._outline(topic, config, state, db, user_id, presentation_id=presentation_id)

    async def _execute(self, state: dict, db: AsyncSession, user_id: str, presentation_id: str) -> AgentResponse:
        result = await self.orchestrator.execute_outline(db, user_id, presentation_id)

        parts = [f"**Done!** Generated {result.slide_count} slides for \"{result.title}\"."]
        if result.sample_preview:
            parts.append("_Sample preview: upgrade your plan to generate the full deck._")
        if result.quality:
            q = result.quality
            parts.append(
                f"**Quality:** style {q['style']:.0%} | narrative {q['narrative']:.0%} | facts {q['facts']:.0%}"
                + (f" | fixes applied: {q.get('fixes_applied', 0)}" if q.get("fixes_applied") else "")
            )

        pending = self.gate.get_next_validation(presentation_id)
        if pending is not None:
            parts.append(_validation_prompt(pending))
            new_state = self._set_step(state, "validate", AgentStatus.AWAITING_VALIDATION)
            status = AgentStatus.AWAITING_VALIDATION
        else:
            new_state = self._complete(state)
            status = AgentStatus.COMPLETE

        return AgentResponse(
            content="\n\n".join(parts),
            state_update=new_state,
            is_complete=pending is None,
            status=status,
            metadata={"presentation_id": presentation_id, "slide_count": result.slide_count},
        )

    async def _validate(
        self, text: str, state: dict, db: AsyncSession, user_id: str, presentation_id: str,
    ) -> AgentResponse:
        pending = self.gate.get_next_validation(presentation_id)
        lowered = text.lower().rstrip(".!")
        edit = _EDIT.match(text)

        if edit:
            outcome = await self.gate.process_validation(
                db, user_id, presentation_id, pending.slide_id, ValidationAction.EDIT,
                SlideEdit(body=edit.group(1).strip()),
            )
        elif lowered in _ACCEPT_WORDS:
            outcome = await self.gate.process_validation(
                db, user_id, presentation_id, pending.slide_id, ValidationAction.ACCEPT,
            )
        elif lowered in _REJECT_WORDS:
            outcome = await self.gate.process_validation(
                db, user_id, presentation_id, pending.slide_id, ValidationAction.REJECT,
            )
        else:
            return AgentResponse(
                content=_validation_prompt(pending),
                state_update=self._set_step(state, "validate", AgentStatus.AWAITING_VALIDATION),
                needs_input="accept / reject / edit",
                status=AgentStatus.AWAITING_VALIDATION,
            )

        following = self.gate.get_next_validation(presentation_id)
        if following is None:
            return AgentResponse(
                content=f"{outcome.message}\n\nAll slides reviewed. Your deck is ready.",
                state_update=self._complete(state),
                is_complete=True,
                status=AgentStatus.COMPLETE,
                metadata={"slide_updated": outcome.slide_updated},
            )
        return AgentResponse(
            content=f"{outcome.message}\n\n{_validation_prompt(following)}",
            state_update=self._set_step(state, "validate", AgentStatus.AWAITING_VALIDATION),
            needs_input="accept / reject / edit",
            status=AgentStatus.AWAITING_VALIDATION,
            metadata={"slide_updated": outcome.slide_updated},
        )

    def _toggle_auto_approve(self, state: dict, presentation_id: Optional[str], enabled: bool) -> AgentResponse:
        if not presentation_id:
            return AgentResponse(
                content="Start a deck first, then toggle auto-approve for it.",
                state_update=dict(state),
                status=self.get_status(state),
            )
        self.gate.set_auto_approve(presentation_id, enabled)
        content = (
            "Auto-approve **enabled**. Slides that pass content review will be accepted automatically."
            if enabled else
            "Auto-approve **disabled**. Each slide will need manual approval."
        )
        return AgentResponse(content=content, state_update=dict(state), status=self.get_status(state))
