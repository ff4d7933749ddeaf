"""
Presentation API — outline, generate, fetch.

POST /v1/presentations/outline          — draft an outline for approval
POST /v1/presentations/{id}/generate    — run the pipeline (approved outline if one is parked)
POST /v1/presentations/generate         — one-shot generation without an outline step
GET  /v1/presentations/{id}             — presentation with its slides
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.container import Services
from ..core.dependencies import get_db, get_services, get_user_id
from ..orchestrator import state
from ..orchestrator.orchestrator import GenerationResult
from ..services.outline import GenerationConfig

logger = logging.getLogger(__name__)

presentations_router = APIRouter(prefix="/presentations", tags=["presentations"])


class ConfigBody(BaseModel):
    presentation_type: str = "STANDARD"
    theme_id: Optional[str] = None
    archetype: Optional[str] = None
    min_slides: Optional[int] = Field(default=None, ge=1)
    max_slides: Optional[int] = Field(default=None, ge=1)
    show_section_labels: bool = False
    show_agenda: bool = False

    def to_config(self) -> GenerationConfig:
        return GenerationConfig(**self.model_dump())


class OutlineRequest(BaseModel):
    topic: str
    presentation_id: Optional[str] = None
    config: ConfigBody = Field(default_factory=ConfigBody)


class GenerateRequest(BaseModel):
    topic: str = ""
    config: ConfigBody = Field(default_factory=ConfigBody)


def _result(result: GenerationResult) -> dict:
    return asdict(result)


@presentations_router.post("/outline")
async def create_outline(
    request: OutlineRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    outline = await services.orchestrator.create_outline(
        db, user_id, request.topic, request.config.to_config(),
        presentation_id=request.presentation_id,
    )
    return {
        "presentation_id": outline.presentation_id,
        "reservation_id": outline.reservation_id,
        "title": outline.plan.title,
        "slides": [asdict(item) for item in outline.plan.slides],
        "markdown": outline.plan.to_markdown(),
    }


@presentations_router.post("/generate")
async def generate(
    request: GenerateRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await services.orchestrator.generate(db, user_id, request.topic, request.config.to_config())
    return _result(result)


@presentations_router.post("/{presentation_id}/generate")
async def generate_existing(
    presentation_id: str,
    request: GenerateRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Approve the parked outline if there is one, otherwise regenerate from the topic."""
    orchestrator = services.orchestrator
    if services.outline_stage.has_pending_outline(presentation_id):
        result = await orchestrator.execute_outline(db, user_id, presentation_id)
        return _result(result)

    topic = request.topic
    if not topic:
        presentation = await state.get_presentation(db, presentation_id, user_id=user_id)
        if presentation is None:
            raise HTTPException(status_code=404, detail="Presentation not found")
        topic = presentation.topic or ""
    result = await orchestrator.generate(
        db, user_id, topic, request.config.to_config(), presentation_id=presentation_id,
    )
    return _result(result)


@presentations_router.get("/{presentation_id}")
async def get_presentation(
    presentation_id: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    presentation = await state.get_presentation(db, presentation_id, user_id=user_id)
    if presentation is None:
        raise HTTPException(status_code=404, detail="Presentation not found")

    slides = await state.list_slides(db, presentation_id)
    return {
        "id": presentation.id,
        "title": presentation.title,
        "topic": presentation.topic,
        "status": presentation.status,
        "theme_id": presentation.theme_id,
        "presentation_type": presentation.presentation_type,
        "archetype": presentation.archetype,
        "metadata": presentation.presentation_metadata or {},
        "slides": [state.slide_payload(s) for s in slides],
    }
