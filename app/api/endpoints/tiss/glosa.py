"""
TISS Glosa Dashboard Endpoints
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_async_session
from app.core.auth import CurrentUser
from app.api.endpoints.tiss.common import require_billing, service_response
from app.schemas.tiss import GlosaPrazosResponse, GlosaStatsResponse
from app.services.tiss.glosa_stats import GlosaStatsService

router = APIRouter(prefix="/tiss/glosas", tags=["TISS Glosas"])


@router.get("/stats", response_model=GlosaStatsResponse)
async def get_glosa_stats(
    period: str = Query("month", description="Time period: month, quarter, year"),
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    """Glosa totals, recovery rate and main denial reasons for the period"""
    result = await GlosaStatsService(db).get_glosa_stats(current_user.clinic_id, period)
    return service_response(result)


@router.get("/prazos", response_model=GlosaPrazosResponse)
async def check_glosa_deadlines(
    current_user: CurrentUser = Depends(require_billing),
    db: AsyncSession = Depends(get_async_session)
):
    result = await GlosaStatsService(db).check_glosa_deadlines(current_user.clinic_id)
    return service_response(result)
