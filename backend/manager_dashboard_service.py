# manager_dashboard_service.py — Cross-team analytics for organization managers
# Every read is scoped to one organization; the router requires org MANAGER+.
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import overdue_clause
from analytics_service import status_breakdown, daily_completions, open_priority_counts, completion_rate
from models import Task, TaskHistory, TaskStatus, Team, TeamMembership, Membership, User
from task_history import HistoryAction

logger = logging.getLogger("taskflow.manager_dashboard")

PERFORMER_WINDOW_DAYS = 30


class ManagerDashboardService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, stmt) -> int:
        return (await self.db.execute(stmt)).scalar() or 0

    async def overview(self, organization_id: str) -> Dict[str, Any]:
        team_count = await self._count(
            select(func.count(Team.id)).where(Team.organization_id == organization_id)
        )
        member_count = await self._count(
            select(func.count(Membership.id)).where(Membership.organization_id == organization_id)
        )
        breakdown = await status_breakdown(self.db, Task.organization_id == organization_id)
        return {"team_count": team_count, "member_count": member_count, **breakdown}

    async def team_comparison(self, organization_id: str) -> List[Dict[str, Any]]:
        """Every team with its task stats, best completion rate first"""
        teams = (await self.db.execute(
            select(Team).where(Team.organization_id == organization_id).order_by(Team.name.asc())
        )).scalars().all()

        comparison = []
        for team in teams:
            in_team = Task.team_id == team.id
            total = await self._count(select(func.count(Task.id)).where(in_team))
            completed = await self._count(
                select(func.count(Task.id)).where(in_team, Task.status == TaskStatus.COMPLETED)
            )
            in_progress = await self._count(
                select(func.count(Task.id)).where(in_team, Task.status == TaskStatus.IN_PROGRESS)
            )
            overdue = await self._count(select(func.count(Task.id)).where(in_team, overdue_clause()))
            members = await self._count(
                select(func.count(TeamMembership.id)).where(TeamMembership.team_id == team.id)
            )
            comparison.append({
                "id": team.id,
                "name": team.name,
                "member_count": members,
                "stats": {
                    "total": total,
                    "completed": completed,
                    "in_progress": in_progress,
                    "overdue": overdue,
                    "completion_rate": completion_rate(completed, total),
                },
            })

        # Stable sort keeps ties in name order
        comparison.sort(key=lambda t: t["stats"]["completion_rate"], reverse=True)
        return comparison

    async def trends(self, organization_id: str, days: int = 14) -> List[Dict[str, Any]]:
        return await daily_completions(self.db, days, Task.organization_id == organization_id)

    async def top_performers(self, organization_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Users with the most completions in the organization over the last 30 days"""
        since = datetime.now(timezone.utc) - timedelta(days=PERFORMER_WINDOW_DAYS)
        completed = func.count(TaskHistory.id).label("completed")
        rows = (await self.db.execute(
            select(User, completed)
            .join(TaskHistory, TaskHistory.user_id == User.id)
            .join(Task, Task.id == TaskHistory.task_id)
            .where(
                Task.organization_id == organization_id,
                TaskHistory.action == HistoryAction.STATUS_CHANGED,
                TaskHistory.new_value == TaskStatus.COMPLETED.value,
                TaskHistory.created_at >= since,
            )
            .group_by(User.id)
            .order_by(completed.desc(), User.name.asc())
            .limit(limit)
        )).all()
        return [
            {"user": {"id": user.id, "name": user.name, "email": user.email}, "completed_tasks": n}
            for user, n in rows
        ]

    async def priority_distribution(self, organization_id: str) -> Dict[str, int]:
        return await open_priority_counts(self.db, Task.organization_id == organization_id)
