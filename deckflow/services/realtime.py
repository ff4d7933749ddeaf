"""
Realtime notifications. Thin wrapper around core.redis.
Typed event helpers for each generation pipeline step. Fire-and-forget:
nothing here may affect the pipeline's outcome.
"""

from typing import Optional

from ..core import redis as _redis


# ── Generation events ────────────────────────────────────────────────

async def generation_started(user_id: str, presentation_id: str, data: Optional[dict] = None):
    await _redis.notify_presentation(user_id, presentation_id, "generation.started", data)


async def generation_progress(user_id: str, presentation_id: str, step: str, progress: float, message: str = ""):
    await _redis.notify_presentation(
        user_id, presentation_id, "generation.progress",
        {"step": step, "progress": round(progress, 3), "message": message},
    )


async def generation_completed(user_id: str, presentation_id: str, data: Optional[dict] = None):
    await _redis.notify_presentation(user_id, presentation_id, "generation.completed", data)


async def generation_failed(user_id: str, presentation_id: str, error: str):
    await _redis.notify_presentation(
        user_id, presentation_id, "generation.failed", {"error": error}
    )


# ── Slide events ─────────────────────────────────────────────────────

async def slide_added(user_id: str, presentation_id: str, slide: dict):
    await _redis.notify_presentation(user_id, presentation_id, "slide.added", slide)


async def slide_updated(user_id: str, presentation_id: str, slide_id: str, changes: dict):
    await _redis.notify_presentation(
        user_id, presentation_id, "slide.updated", {"slide_id": slide_id, **changes}
    )


async def validation_requested(user_id: str, presentation_id: str, request: dict):
    await _redis.notify_presentation(user_id, presentation_id, "validation.requested", request)


# ── Credits ──────────────────────────────────────────────────────────

async def credits_changed(user_id: str, available: int):
    await _redis.notify_user(user_id, "credits.changed", {"available": available})
