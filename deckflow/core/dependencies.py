"""
FastAPI dependencies. Injected into route handlers.
"""

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .container import Services


def get_services(request: Request) -> Services:
    """The Services container built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not ready")
    return services


async def get_db(request: Request) -> AsyncSession:
    """Yields an async DB session per request. Commits on success, rolls back on error."""
    factory = get_services(request).session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_user_id(x_user_id: str = Header(default="")) -> str:
    """Caller identity from the X-User-Id header."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return user_id
