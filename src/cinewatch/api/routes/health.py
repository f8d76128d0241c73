"""Health check endpoint."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Liveness check that also pings the database.

    Returns:
        ``{"status": "ok", "database": "ok"}``, or a 503 when the database
        cannot be reached
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "database": "unreachable"},
        )
    return {"status": "ok", "database": "ok"}
