"""
Slide validation API — the per-slide approval gate.

GET  /v1/presentations/{id}/validations/next
POST /v1/presentations/{id}/validations/{slide_id}
PUT  /v1/presentations/{id}/auto-approve
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.container import Services
from ..core.dependencies import get_db, get_services, get_user_id
from ..orchestrator import state
from ..services.validation_gate import SlideEdit, ValidationAction

logger = logging.getLogger(__name__)

validation_router = APIRouter(prefix="/presentations", tags=["validation"])


class ValidationRequest(BaseModel):
    action: ValidationAction
    title: Optional[str] = None
    body: Optional[str] = None
    speaker_notes: Optional[str] = None


class AutoApproveRequest(BaseModel):
    enabled: bool


async def _require_owner(db: AsyncSession, presentation_id: str, user_id: str) -> None:
    if await state.get_presentation(db, presentation_id, user_id=user_id) is None:
        raise HTTPException(status_code=404, detail="Presentation not found")


@validation_router.get("/{presentation_id}/validations/next")
async def next_validation(
    presentation_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    await _require_owner(db, presentation_id, user_id)
    pending = services.gate.get_next_validation(presentation_id)
    return {
        "pending": pending.to_dict() if pending else None,
        "auto_approve": services.gate.is_auto_approve_enabled(presentation_id),
    }


@validation_router.post("/{presentation_id}/validations/{slide_id}")
async def respond(
    presentation_id: str,
    slide_id: str,
    request: ValidationRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    await _require_owner(db, presentation_id, user_id)
    edited = None
    if request.action == ValidationAction.EDIT:
        edited = SlideEdit(title=request.title, body=request.body, speaker_notes=request.speaker_notes)

    outcome = await services.gate.process_validation(
        db, user_id, presentation_id, slide_id, request.action, edited=edited,
    )
    if not outcome.success:
        raise HTTPException(status_code=409, detail=outcome.message)
    return {"message": outcome.message, "slide_updated": outcome.slide_updated}


@validation_router.put("/{presentation_id}/auto-approve")
async def set_auto_approve(
    presentation_id: str,
    request: AutoApproveRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    await _require_owner(db, presentation_id, user_id)
    services.gate.set_auto_approve(presentation_id, request.enabled)
    return {"auto_approve": services.gate.is_auto_approve_enabled(presentation_id)}
