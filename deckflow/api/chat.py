"""
Chat API — the conversational entry point to the deck agent.

POST /v1/chat — one turn. The client sends back the `state` it received
on the previous turn.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.container import Services
from ..core.dependencies import get_db, get_services, get_user_id

logger = logging.getLogger(__name__)

chat_router = APIRouter(tags=["chat"])


class ChatRequest(BaseModel):
    message: str
    state: dict = Field(default_factory=dict)
    config: Optional[dict] = None


class ChatResponse(BaseModel):
    content: str
    agent: str = ""
    state: dict = Field(default_factory=dict)
    is_complete: bool = False
    needs_input: Optional[str] = None
    status: str = ""
    metadata: Optional[dict] = None


@chat_router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Send a message to the deck agent."""
    agent = services.agents.get("presentation")
    if agent is None:
        raise HTTPException(status_code=503, detail="Deck agent not available")

    state = dict(request.state)
    if request.config:
        state["config"] = request.config

    response = await agent.handle(message=request.message, state=state, db=db, user_id=user_id)
    return ChatResponse(
        content=response.content,
        agent=agent.name,
        state=response.state_update,
        is_complete=response.is_complete,
        needs_input=response.needs_input,
        status=response.status.value,
        metadata=response.metadata or None,
    )
