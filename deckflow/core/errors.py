"""
Error taxonomy for the generation pipeline.

Only PreflightRejected, InsufficientBalanceError and GenerationExhausted
ever reach a caller. Reviewer failures and structural findings are
absorbed where they happen.
"""

from typing import Optional


class DeckflowError(Exception):
    """Base for every user-visible pipeline failure."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreflightRejected(DeckflowError):
    """Tier limit hit, required input missing, or no theme available."""

    status_code = 403


class InsufficientBalanceError(DeckflowError):
    """Not enough unreserved credits to start the requested work."""

    status_code = 402

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Insufficient credits: {requested} required, {available} available."
        )
        self.requested = requested
        self.available = available


class GenerationExhausted(DeckflowError):
    """A generative step never produced valid output within its retry budget."""

    status_code = 502

    def __init__(self, step: str, attempts: int, last_error: Optional[BaseException] = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Generation step '{step}' failed after {attempts} attempt(s){detail}")
        self.step = step
        self.attempts = attempts
        self.last_error = last_error


class ReviewerDegraded(Exception):
    """A quality agent could not produce a result. Never propagates past the review."""

    def __init__(self, agent: str, cause: BaseException):
        super().__init__(f"{agent} unavailable: {cause}")
        self.agent = agent
        self.cause = cause
