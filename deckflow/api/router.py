"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "deckflow"}


# ── V1 routes (X-User-Id required) ───────────────────────────────────

from .chat import chat_router
from .credits import credits_router
from .presentations import presentations_router
from .validation import validation_router

router.include_router(chat_router, prefix="/v1")
router.include_router(presentations_router, prefix="/v1")
router.include_router(validation_router, prefix="/v1")
router.include_router(credits_router, prefix="/v1")
