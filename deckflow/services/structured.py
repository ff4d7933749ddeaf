"""
Generative step executor — one generator call, parsed as JSON, checked
against a shape, retried a bounded number of times.

Used unchanged for the outline, per-slide content, the density reviewer
and every generative quality agent. Only the prompt and validator differ.
"""

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from . import llm
from .llm import ModelTier, model_for_tier
from .shapes import ShapeError, Validator
from ..core.errors import GenerationExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

INVALID_JSON_NUDGE = "Your previous response was not valid JSON. Please respond with valid JSON only."
INVALID_SHAPE_NUDGE = (
    "Your previous JSON response had missing or incorrect fields ({problems}). "
    "Please respond with the complete JSON structure."
)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class Generator(Protocol):
    """Upstream content generator. Returns raw model text."""

    async def generate(self, messages: list[dict], model: str, purpose: str = "") -> str:
        ...


class LLMGenerator:
    """Generator backed by the shared chat-completions client in JSON mode."""

    def __init__(self, temperature: Optional[float] = None, max_tokens: Optional[int] = None):
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, messages: list[dict], model: str, purpose: str = "") -> str:
        completion = await llm.complete(
            messages,
            model=model,
            purpose=purpose,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            json_mode=True,
        )
        return completion.text


def parse_json(raw: str) -> Any:
    """Parse model output, tolerating markdown code fences."""
    return json.loads(_FENCE.sub("", raw.strip()))


class StepExecutor:
    """
    Runs a generative step with retry + validation.

    Attempts = max_retries + 1. A JSON or shape failure feeds the bad
    output back with a corrective nudge; a transport failure backs off
    retry_delay * (attempt + 1) seconds and retries the same messages.
    """

    def __init__(
        self,
        generator: Generator,
        retry_delay: float = 1.0,
        model_resolver: Callable[[ModelTier], str] = model_for_tier,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.generator = generator
        self.retry_delay = retry_delay
        self._model_for = model_resolver
        self._sleep = sleep

    async def run(
        self,
        messages: list[dict],
        tier: ModelTier,
        validator: Validator[T],
        max_retries: int = 2,
    ) -> T:
        model = self._model_for(tier)
        conversation = list(messages)
        last_error: Optional[BaseException] = None
        attempts = max_retries + 1

        for attempt in range(attempts):
            try:
                raw = await self.generator.generate(conversation, model=model, purpose=validator.name)
            except Exception as e:
                last_error = e
                logger.warning(
                    "%s: generator error (attempt %d/%d): %s",
                    validator.name, attempt + 1, attempts, e,
                )
                if attempt < max_retries:
                    await self._sleep(self.retry_delay * (attempt + 1))
                continue

            try:
                data = parse_json(raw)
            except json.JSONDecodeError as e:
                last_error = e
                logger.warning(
                    "%s: invalid JSON (attempt %d/%d)", validator.name, attempt + 1, attempts,
                )
                conversation = conversation + [
                    {"role": "assistant", "content": raw},
                    {"role": "user", "content": INVALID_JSON_NUDGE},
                ]
                continue

            try:
                return validator.validate(data)
            except ShapeError as e:
                last_error = e
                logger.warning(
                    "%s: shape mismatch (attempt %d/%d): %s",
                    validator.name, attempt + 1, attempts, "; ".join(e.problems[:5]),
                )
                conversation = conversation + [
                    {"role": "assistant", "content": raw},
                    {"role": "user", "content": INVALID_SHAPE_NUDGE.format(problems="; ".join(e.problems[:5]))},
                ]

        logger.error("%s: exhausted %d attempt(s): %s", validator.name, attempts, last_error)
        raise GenerationExhausted(validator.name, attempts, last_error)
