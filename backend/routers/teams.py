# routers/teams.py — Teams of the active organization (X-Organization-ID required)
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import AccessContext
from auth import require_organization, CurrentUser
from database import get_db_session
from models import TaskStatus
from realtime import get_realtime
from task_service import task_to_dict
from team_dashboard_service import TeamDashboardService, TaskAssignment
from team_service import (
    TeamService, TeamCreate, TeamUpdate, TeamMemberAdd, TeamMemberRoleUpdate,
    team_to_dict, team_member_to_dict,
)

router = APIRouter(prefix="/api/v1/teams", tags=["Teams"])


@router.post("", status_code=201)
async def create_team(
    data: TeamCreate,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a team; the creator becomes its LEADER"""
    team = await TeamService(db).create(AccessContext.from_user(user), data)
    return team_to_dict(team, member_count=1)


@router.get("")
async def list_teams(
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    return await TeamService(db).list(user.organization_id)


@router.get("/{team_id}")
async def get_team(
    team_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    return await TeamService(db).get_with_count(team_id, user.organization_id)


@router.patch("/{team_id}")
async def update_team(
    team_id: str,
    data: TeamUpdate,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    team = await TeamService(db).update(AccessContext.from_user(user), team_id, data)
    return team_to_dict(team)


@router.delete("/{team_id}")
async def delete_team(
    team_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    await TeamService(db).delete(AccessContext.from_user(user), team_id)
    return {"status": "deleted", "id": team_id}


# ============================================================
# MEMBERS
# ============================================================

@router.get("/{team_id}/members")
async def list_team_members(
    team_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    members = await TeamService(db).list_members(team_id, user.organization_id)
    return [team_member_to_dict(m) for m in members]


@router.post("/{team_id}/members", status_code=201)
async def add_team_member(
    team_id: str,
    data: TeamMemberAdd,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    membership = await TeamService(db).add_member(AccessContext.from_user(user), team_id, data)
    return team_member_to_dict(membership)


@router.patch("/{team_id}/members/{user_id}")
async def change_team_member_role(
    team_id: str,
    user_id: str,
    data: TeamMemberRoleUpdate,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    membership = await TeamService(db).update_member_role(AccessContext.from_user(user), team_id, user_id, data)
    return team_member_to_dict(membership)


@router.delete("/{team_id}/members/{user_id}")
async def remove_team_member(
    team_id: str,
    user_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    await TeamService(db).remove_member(AccessContext.from_user(user), team_id, user_id)
    return {"status": "removed", "user_id": user_id}


# ============================================================
# DASHBOARD
# ============================================================

@router.get("/{team_id}/dashboard")
async def team_dashboard(
    team_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    return await TeamDashboardService(db).overview(AccessContext.from_user(user), team_id)


@router.get("/{team_id}/dashboard/members")
async def team_member_performance(
    team_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    return await TeamDashboardService(db).member_performance(AccessContext.from_user(user), team_id)


@router.get("/{team_id}/dashboard/tasks")
async def team_tasks(
    team_id: str,
    status: Optional[TaskStatus] = None,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    tasks = await TeamDashboardService(db).team_tasks(AccessContext.from_user(user), team_id, status)
    return [task_to_dict(t) for t in tasks]


@router.get("/{team_id}/dashboard/trends")
async def team_trends(
    team_id: str,
    days: int = Query(default=7, ge=1, le=90),
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    return await TeamDashboardService(db).trends(AccessContext.from_user(user), team_id, days)


@router.get("/{team_id}/dashboard/unassigned")
async def team_unassigned_tasks(
    team_id: str,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
):
    """Open team tasks waiting for an assignee (leaders and org managers)"""
    tasks = await TeamDashboardService(db).unassigned(AccessContext.from_user(user), team_id)
    return [task_to_dict(t) for t in tasks]


@router.post("/{team_id}/dashboard/assign")
async def assign_team_task(
    team_id: str,
    data: TaskAssignment,
    user: CurrentUser = Depends(require_organization),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    mutation = await TeamDashboardService(db, realtime).assign_task(AccessContext.from_user(user), team_id, data)
    return {**task_to_dict(mutation.task), "send_notification_to": mutation.send_notification_to}
