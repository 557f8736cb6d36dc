"""Health check API routes.

Provides endpoints for monitoring application health and connectivity.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.db.connection import get_db
from weighbatch.db.models import ScaleEventModel

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check application health.

    Verifies database connectivity and reports the reconciliation backlog.
    """
    try:
        await db.execute(text("SELECT 1"))
        backlog = (
            await db.execute(
                select(func.count())
                .select_from(ScaleEventModel)
                .where(ScaleEventModel.is_summarized.is_(False))
            )
        ).scalar_one()
        return {"status": "ok", "database": "connected", "unsummarized_events": backlog}
    except Exception as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e)
        }
