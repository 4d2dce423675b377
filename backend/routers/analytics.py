# routers/analytics.py — Personal and global task analytics, efficiency and insights
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import is_role_at_least
from analytics_service import AnalyticsService, PERSONAL, GLOBAL
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import ForbiddenError
from models import UserRole

router = APIRouter(prefix="/api/v1/analytics", tags=["Analytics"])


def _scope(scope: str, user: CurrentUser) -> str:
    if scope == GLOBAL and not is_role_at_least(user.role, UserRole.ADMIN):
        raise ForbiddenError("Only admins can access global analytics")
    return scope


SCOPE_PATTERN = f"^({PERSONAL}|{GLOBAL})$"


@router.get("/trends")
async def completion_trends(
    days: int = Query(default=7, ge=1, le=90),
    scope: str = Query(default=PERSONAL, pattern=SCOPE_PATTERN),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await AnalyticsService(db).completion_trends(user.id, days, _scope(scope, user))


@router.get("/priorities")
async def priority_distribution(
    scope: str = Query(default=PERSONAL, pattern=SCOPE_PATTERN),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await AnalyticsService(db).priority_distribution(user.id, _scope(scope, user))


@router.get("/productivity")
async def productivity(
    days: int = Query(default=7, ge=1, le=90),
    scope: str = Query(default=PERSONAL, pattern=SCOPE_PATTERN),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await AnalyticsService(db).productivity(user.id, _scope(scope, user), days)


@router.get("/heatmap")
async def heatmap(
    scope: str = Query(default=PERSONAL, pattern=SCOPE_PATTERN),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await AnalyticsService(db).heatmap(user.id, _scope(scope, user))


@router.get("/overview")
async def overview(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await AnalyticsService(db).overview(user.id, user.organization_id)


@router.get("/efficiency")
async def efficiency(
    scope: str = Query(default=PERSONAL, pattern=SCOPE_PATTERN),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Average days a task spends in each open status"""
    return await AnalyticsService(db).efficiency(user.id, _scope(scope, user))


@router.get("/insights")
async def insights(
    days: int = Query(default=7, ge=1, le=90),
    scope: str = Query(default=PERSONAL, pattern=SCOPE_PATTERN),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return {"insights": await AnalyticsService(db).insights(user.id, _scope(scope, user), days)}
