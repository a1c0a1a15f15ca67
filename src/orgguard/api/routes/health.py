from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orgguard.api.deps import get_cache_provider, session_dependency
from orgguard.cache import CacheProvider

router = APIRouter()

HEALTH_CHECK_KEY = "health_check"


class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"


class ReadinessResponse(BaseModel):
    status: str
    database: str
    cache: str


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(status="healthy")


@router.get("/ready", response_model=ReadinessResponse, status_code=status.HTTP_200_OK)
async def readiness_check(
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    cache: CacheProvider | None = Depends(get_cache_provider),  # noqa: B008
) -> ReadinessResponse:
    """Readiness check with database and cache connectivity."""
    db_status = "unknown"
    cache_status = "disabled"

    try:
        result = await session.execute(text("SELECT 1"))
        if result.scalar() == 1:
            db_status = "connected"
    except (SQLAlchemyError, ConnectionError, TimeoutError, OSError):
        db_status = "disconnected"

    if cache is not None:
        cache_status = "unknown"
        try:
            await cache.set(HEALTH_CHECK_KEY, "ok", ttl=10)
            if await cache.get(HEALTH_CHECK_KEY) == "ok":
                cache_status = "connected"
        except (ConnectionError, TimeoutError, OSError):
            cache_status = "disconnected"

    cache_ok = cache_status in ("connected", "disabled")
    overall_status = "ready" if db_status == "connected" and cache_ok else "not_ready"

    return ReadinessResponse(status=overall_status, database=db_status, cache=cache_status)
