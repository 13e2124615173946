from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.core.auth import Principal, get_current_user
from dashboard_api.core.db import get_db
from dashboard_api.domains.audit.schemas import ActivityPageResponse, AnalyticsResponse
from dashboard_api.domains.audit.services import AnalyticsService

router = APIRouter(prefix="/api", tags=["activity"])


@router.get("/activity", response_model=ActivityPageResponse)
async def activity_logs(
    page_size: int = Query(20, ge=1, le=200),
    cursor: Optional[str] = Query(None),
    action: Optional[str] = Query(None, pattern="^(create|update|delete)$"),
    resource_type: Optional[str] = Query(None, pattern="^(user|document|file)$"),
    db: AsyncSession = Depends(get_db),
    current_user: Principal = Depends(get_current_user),
):
    """Activity log, newest first"""
    return await AnalyticsService(db).activity_page(page_size, cursor, action, resource_type)


@router.get("/analytics", response_model=AnalyticsResponse)
async def analytics(
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    current_user: Principal = Depends(get_current_user),
):
    """Dashboard charts and totals for the last `days` days"""
    return await AnalyticsService(db).summary(days)
