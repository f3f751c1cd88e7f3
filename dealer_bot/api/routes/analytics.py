"""
Analytics API Routes
"""
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.api.dependencies.admin_auth import require_admin_token
from dealer_bot.db.database import get_db
from dealer_bot.domain.services.analytics_service import AnalyticsService

router = APIRouter(dependencies=[Depends(require_admin_token)])


@router.get("/analytics", summary="Funnel conversion summary")
async def analytics(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    return await AnalyticsService(db).get_summary()


@router.get("/dashboard", summary="Totals and recent bookings")
async def dashboard(db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    return await AnalyticsService(db).get_dashboard()
