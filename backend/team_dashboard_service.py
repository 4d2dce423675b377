# team_dashboard_service.py — Team-scoped analytics and leader assignment
# - reads: team members, or org MANAGER+
# - unassigned queue and assign: team LEADER, or org MANAGER+
# Assignment follows the task mutation protocol: assignee check, history and
# notification staged with the change, pushes after the commit.
import logging
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_policy import AccessContext, is_org_role_at_least, priority_ordinal
from analytics_service import status_breakdown, daily_completions, completion_rate
from errors import BadRequestError, ForbiddenError, NotFoundError
from models import Task, Team, TeamMembership, TeamRole, TaskStatus, OrgRole
from task_history import HistoryAction, record_history
from task_service import TaskService, TaskMutation, resolve_assignee
from team_service import TeamService

logger = logging.getLogger("taskflow.team_dashboard")


class TaskAssignment(BaseModel):
    task_id: str = Field(..., min_length=1)
    assignee_id: str = Field(..., min_length=1)


class TeamDashboardService:
    def __init__(self, db: AsyncSession, realtime=None):
        self.db = db
        self.teams = TeamService(db)
        self.tasks = TaskService(db, realtime)

    async def _role_in_team(self, team_id: str, user_id: str) -> Optional[TeamRole]:
        return (await self.db.execute(
            select(TeamMembership.role).where(
                TeamMembership.team_id == team_id, TeamMembership.user_id == user_id,
            )
        )).scalar_one_or_none()

    async def _team_for_reader(self, ctx: AccessContext, team_id: str) -> Team:
        team = await self.teams.get(team_id, ctx.organization_id)
        if is_org_role_at_least(ctx.org_role, OrgRole.MANAGER):
            return team
        if await self._role_in_team(team.id, ctx.user_id) is None:
            raise ForbiddenError("Not a member of this team")
        return team

    async def _team_for_leader(self, ctx: AccessContext, team_id: str) -> Team:
        team = await self.teams.get(team_id, ctx.organization_id)
        if is_org_role_at_least(ctx.org_role, OrgRole.MANAGER):
            return team
        if await self._role_in_team(team.id, ctx.user_id) != TeamRole.LEADER:
            raise ForbiddenError("Only team leaders can assign team tasks")
        return team

    def _queue(self, *criteria):
        return (
            select(Task)
            .options(selectinload(Task.creator), selectinload(Task.assigned_to))
            .where(*criteria)
            .order_by(priority_ordinal.desc(), Task.due_date.asc(), Task.id)
        )

    # --- Reads ---

    async def overview(self, ctx: AccessContext, team_id: str) -> Dict[str, Any]:
        team = await self._team_for_reader(ctx, team_id)
        member_count = (await self.db.execute(
            select(func.count(TeamMembership.id)).where(TeamMembership.team_id == team.id)
        )).scalar() or 0
        breakdown = await status_breakdown(self.db, Task.team_id == team.id)
        return {
            "team": {"id": team.id, "name": team.name, "organization_id": team.organization_id},
            "member_count": member_count,
            **breakdown,
        }

    async def member_performance(self, ctx: AccessContext, team_id: str) -> List[Dict[str, Any]]:
        team = await self._team_for_reader(ctx, team_id)
        members = await self.teams.list_members(team.id, team.organization_id)

        rows = (await self.db.execute(
            select(Task.assigned_to_id, Task.status, func.count(Task.id))
            .where(Task.team_id == team.id, Task.assigned_to_id.is_not(None))
            .group_by(Task.assigned_to_id, Task.status)
        )).all()
        counts: Dict[str, Dict[TaskStatus, int]] = {}
        for user_id, status, n in rows:
            counts.setdefault(user_id, {})[status] = n

        performance = []
        for m in members:
            by_status = counts.get(m.user_id, {})
            assigned = sum(by_status.values())
            completed = by_status.get(TaskStatus.COMPLETED, 0)
            performance.append({
                "user": {"id": m.user_id, "name": m.user.name, "email": m.user.email},
                "role": m.role.value,
                "stats": {
                    "assigned": assigned,
                    "completed": completed,
                    "in_progress": by_status.get(TaskStatus.IN_PROGRESS, 0),
                    "completion_rate": completion_rate(completed, assigned),
                },
            })
        return performance

    async def team_tasks(self, ctx: AccessContext, team_id: str, status: Optional[TaskStatus] = None) -> List[Task]:
        """Team tasks, most urgent first, then earliest due"""
        team = await self._team_for_reader(ctx, team_id)
        criteria = [Task.team_id == team.id]
        if status:
            criteria.append(Task.status == status)
        return list((await self.db.execute(self._queue(*criteria))).scalars().all())

    async def trends(self, ctx: AccessContext, team_id: str, days: int = 7) -> List[Dict[str, Any]]:
        team = await self._team_for_reader(ctx, team_id)
        return await daily_completions(self.db, days, Task.team_id == team.id)

    async def unassigned(self, ctx: AccessContext, team_id: str) -> List[Task]:
        """Open team tasks nobody is assigned to"""
        team = await self._team_for_leader(ctx, team_id)
        stmt = self._queue(
            Task.team_id == team.id,
            Task.assigned_to_id.is_(None),
            Task.status != TaskStatus.COMPLETED,
        )
        return list((await self.db.execute(stmt)).scalars().all())

    # --- Assignment ---

    async def assign_task(self, ctx: AccessContext, team_id: str, data: TaskAssignment) -> TaskMutation:
        team = await self._team_for_leader(ctx, team_id)
        task = await self.tasks.get_by_id(data.task_id)
        if task.team_id != team.id:
            raise NotFoundError("Task not found in this team")

        await resolve_assignee(self.db, data.assignee_id)
        if await self._role_in_team(team.id, data.assignee_id) is None:
            raise BadRequestError("Assignee is not a member of this team")

        old_assignee = task.assigned_to_id
        if old_assignee == data.assignee_id:
            return TaskMutation(task=task)

        task.assigned_to_id = data.assignee_id
        record_history(
            self.db, task.id, ctx.user_id, HistoryAction.ASSIGNED,
            field="assigned_to_id", old_value=old_assignee, new_value=data.assignee_id,
        )
        notify = None
        if data.assignee_id != ctx.user_id:
            notify = self.tasks.notifications.notify_assignment(task, data.assignee_id)

        await self.db.commit()
        task = await self.tasks.get_by_id(task.id)
        logger.info(f"Task {task.id} assigned in team={team.id[:8]} by user={ctx.user_id[:8]}")

        await self.tasks.publish("task:updated", task, notify)
        return TaskMutation(task=task, send_notification_to=notify.user_id if notify else None)
