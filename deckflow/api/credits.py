"""
Credits API.

GET  /v1/credits        — balance, held reservations and what is spendable
POST /v1/credits/grant  — top up the caller (development only)
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.container import Services
from ..core.dependencies import get_db, get_services, get_user_id
from ..models.user import User

credits_router = APIRouter(prefix="/credits", tags=["credits"])


class GrantRequest(BaseModel):
    amount: int = Field(gt=0)
    description: str = "grant"


@credits_router.get("")
async def get_credits(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    balance = user.credit_balance
    await db.commit()

    reserved = await services.ledger.get_reserved_amount(user_id)
    return {"balance": balance, "reserved": reserved, "available": balance - reserved}


@credits_router.post("/grant")
async def grant_credits(
    request: GrantRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
):
    if services.settings.env != "development":
        raise HTTPException(status_code=403, detail="Grants are disabled")
    try:
        balance = await services.ledger.grant(user_id, request.amount, request.description)
    except LookupError:
        raise HTTPException(status_code=404, detail="User not found")
    return {"balance": balance}
