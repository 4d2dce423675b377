# routers/manager.py — Organization dashboard for org MANAGER and above
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_min_org_role, CurrentUser
from database import get_db_session
from manager_dashboard_service import ManagerDashboardService
from models import OrgRole

router = APIRouter(prefix="/api/v1/manager/dashboard", tags=["Manager Dashboard"])

require_manager = require_min_org_role(OrgRole.MANAGER)


@router.get("")
async def organization_overview(
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db_session),
):
    """Team and member counts plus task totals per status"""
    return await ManagerDashboardService(db).overview(user.organization_id)


@router.get("/teams")
async def team_comparison(
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db_session),
):
    return await ManagerDashboardService(db).team_comparison(user.organization_id)


@router.get("/trends")
async def organization_trends(
    days: int = Query(default=14, ge=1, le=90),
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db_session),
):
    return await ManagerDashboardService(db).trends(user.organization_id, days)


@router.get("/performers")
async def top_performers(
    limit: int = Query(default=10, ge=1, le=50),
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db_session),
):
    return await ManagerDashboardService(db).top_performers(user.organization_id, limit)


@router.get("/priority")
async def priority_distribution(
    user: CurrentUser = Depends(require_manager),
    db: AsyncSession = Depends(get_db_session),
):
    return await ManagerDashboardService(db).priority_distribution(user.organization_id)
