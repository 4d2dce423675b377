# analytics_service.py — Task analytics derived from task history
# Personal scope covers tasks the user created or is assigned; global scope
# (admins only, enforced by the router) covers every task.
# Reads run sequentially on the request's session.
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import overdue_clause
from models import Task, TaskHistory, TaskStatus, TaskPriority
from task_history import HistoryAction

logger = logging.getLogger("taskflow.analytics")

PERSONAL = "personal"
GLOBAL = "global"
HEATMAP_DAYS = 90
EFFICIENCY_SAMPLE = 30
EFFICIENCY_STATUSES = (TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.REVIEW)
ELITE_SCORE = 800
MAX_INSIGHTS = 4


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _pct_change(current: float, previous: float, empty_value: int) -> int:
    if previous == 0:
        return empty_value
    return round((current - previous) / previous * 100)


def _count(n: int, noun: str) -> str:
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"


def completion_rate(completed: int, total: int) -> int:
    return round(completed / total * 100) if total else 0


# ============================================================
# SHARED QUERIES (dashboards scope them by organization or team)
# ============================================================

async def status_breakdown(db: AsyncSession, *criteria) -> Dict[str, Any]:
    """Task counts per status for the tasks matching `criteria`"""
    rows = (await db.execute(
        select(Task.status, func.count(Task.id)).where(*criteria).group_by(Task.status)
    )).all()
    counts = {status: n for status, n in rows}
    task_stats = {s.value: counts.get(s, 0) for s in TaskStatus}
    total = sum(task_stats.values())
    return {
        "task_stats": task_stats,
        "total_tasks": total,
        "completion_rate": completion_rate(task_stats[TaskStatus.COMPLETED.value], total),
    }


async def daily_completions(db: AsyncSession, days: int, *criteria) -> List[Dict[str, Any]]:
    """One bucket per day, oldest first, counting COMPLETED transitions"""
    today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=days - 1)
    rows = (await db.execute(
        select(TaskHistory.created_at)
        .join(Task, Task.id == TaskHistory.task_id)
        .where(
            TaskHistory.action == HistoryAction.STATUS_CHANGED,
            TaskHistory.new_value == TaskStatus.COMPLETED.value,
            TaskHistory.created_at >= start,
            *criteria,
        )
    )).all()
    completed = [_aware(r[0]).date() for r in rows]

    series = []
    for offset in range(days):
        day = (start + timedelta(days=offset)).date()
        series.append({"date": day.isoformat(), "weekday": day.strftime("%a"), "completed": completed.count(day)})
    return series


async def open_priority_counts(db: AsyncSession, *criteria) -> Dict[str, int]:
    """Lower-case priority name to count of non-completed tasks"""
    rows = (await db.execute(
        select(Task.priority, func.count(Task.id))
        .where(Task.status != TaskStatus.COMPLETED, *criteria)
        .group_by(Task.priority)
    )).all()
    counts = {p: n for p, n in rows}
    return {p.value.lower(): counts.get(p, 0) for p in TaskPriority}


class AnalyticsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _owned(user_id: str):
        return or_(Task.creator_id == user_id, Task.assigned_to_id == user_id)

    async def _completions(self, user_id: str, scope: str, since: datetime, until: Optional[datetime] = None):
        """(completed_at, task_created_at) pairs for COMPLETED transitions"""
        stmt = (
            select(TaskHistory.created_at, Task.created_at)
            .join(Task, Task.id == TaskHistory.task_id)
            .where(
                TaskHistory.action == HistoryAction.STATUS_CHANGED,
                TaskHistory.new_value == TaskStatus.COMPLETED.value,
                TaskHistory.created_at >= since,
            )
        )
        if until is not None:
            stmt = stmt.where(TaskHistory.created_at < until)
        if scope == PERSONAL:
            stmt = stmt.where(Task.assigned_to_id == user_id)
        result = await self.db.execute(stmt)
        return [(_aware(done), _aware(created)) for done, created in result.all()]

    async def completion_trends(self, user_id: str, days: int = 7, scope: str = PERSONAL) -> List[Dict[str, Any]]:
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        start = today - timedelta(days=days - 1)

        completed_stmt = (
            select(TaskHistory.created_at)
            .join(Task, Task.id == TaskHistory.task_id)
            .where(
                TaskHistory.action == HistoryAction.STATUS_CHANGED,
                TaskHistory.new_value == TaskStatus.COMPLETED.value,
                TaskHistory.created_at >= start,
            )
        )
        created_stmt = (
            select(TaskHistory.created_at)
            .join(Task, Task.id == TaskHistory.task_id)
            .where(TaskHistory.action == HistoryAction.CREATED, TaskHistory.created_at >= start)
        )
        if scope == PERSONAL:
            completed_stmt = completed_stmt.where(self._owned(user_id))
            created_stmt = created_stmt.where(Task.creator_id == user_id)

        completed = [_aware(r[0]).date() for r in (await self.db.execute(completed_stmt)).all()]
        created = [_aware(r[0]).date() for r in (await self.db.execute(created_stmt)).all()]

        trend = []
        for offset in range(days):
            day = (start + timedelta(days=offset)).date()
            trend.append({
                "date": day.isoformat(),
                "weekday": day.strftime("%a"),
                "completed": completed.count(day),
                "created": created.count(day),
            })
        return trend

    async def priority_distribution(self, user_id: str, scope: str = PERSONAL) -> Dict[str, int]:
        criteria = [self._owned(user_id)] if scope == PERSONAL else []
        return await open_priority_counts(self.db, *criteria)

    async def productivity(self, user_id: str, scope: str = PERSONAL, days: int = 7) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        period_start = now - timedelta(days=days)
        prev_start = now - timedelta(days=2 * days)

        current = await self._completions(user_id, scope, period_start)
        previous = await self._completions(user_id, scope, prev_start, until=period_start)

        def avg_lead_days(rows) -> float:
            if not rows:
                return 0.0
            total = sum(max(0.0, (done - created).total_seconds()) for done, created in rows)
            return total / len(rows) / 86400

        avg_days = avg_lead_days(current)
        prev_avg_days = avg_lead_days(previous)
        throughput_trend = _pct_change(len(current), len(previous), 100)
        lead_time_trend = _pct_change(avg_days, prev_avg_days, 0)

        # Score out of 1000: velocity 400, speed 300, volume 300
        velocity = min(400, len(current) / days * 400)
        speed = min(300, 2 / max(0.1, avg_days) * 300) if current else 0
        volume = min(300, len(current) / 20 * 300)

        return {
            "completed_this_period": len(current),
            "completed_previous_period": len(previous),
            "avg_completion_days": round(avg_days, 1),
            "performance_score": min(999, round(velocity + speed + volume)),
            "throughput_trend": throughput_trend,
            "lead_time_trend": -lead_time_trend,
        }

    async def heatmap(self, user_id: str, scope: str = PERSONAL) -> List[Dict[str, Any]]:
        since = datetime.now(timezone.utc) - timedelta(days=HEATMAP_DAYS)
        counts: Dict[str, int] = {}
        for done, _ in await self._completions(user_id, scope, since):
            key = done.date().isoformat()
            counts[key] = counts.get(key, 0) + 1
        return [{"date": d, "count": n} for d, n in sorted(counts.items())]

    async def overview(self, user_id: str, organization_id: Optional[str] = None) -> Dict[str, int]:
        base = [self._owned(user_id)]
        if organization_id:
            base.append(Task.organization_id == organization_id)

        async def count(*extra) -> int:
            return (await self.db.execute(
                select(func.count(Task.id)).where(*base, *extra)
            )).scalar() or 0

        return {
            "total": await count(),
            "completed": await count(Task.status == TaskStatus.COMPLETED),
            "in_progress": await count(Task.status == TaskStatus.IN_PROGRESS),
            "overdue": await count(overdue_clause()),
        }

    async def efficiency(self, user_id: str, scope: str = PERSONAL) -> List[Dict[str, Any]]:
        """Average days spent in each open status, over the latest completed tasks.

        Each status row in a task's history (creation included) opens a stint
        that the next status row closes.
        """
        stmt = (
            select(Task.id)
            .where(Task.status == TaskStatus.COMPLETED)
            .order_by(Task.updated_at.desc())
            .limit(EFFICIENCY_SAMPLE)
        )
        if scope == PERSONAL:
            stmt = stmt.where(Task.assigned_to_id == user_id)
        task_ids = [row[0] for row in (await self.db.execute(stmt)).all()]

        stints: Dict[str, List[float]] = {s.value: [] for s in EFFICIENCY_STATUSES}
        if task_ids:
            rows = (await self.db.execute(
                select(TaskHistory.task_id, TaskHistory.new_value, TaskHistory.created_at)
                .where(
                    TaskHistory.task_id.in_(task_ids),
                    TaskHistory.action.in_([HistoryAction.CREATED, HistoryAction.STATUS_CHANGED]),
                )
                .order_by(TaskHistory.task_id, TaskHistory.created_at)
            )).all()
            for (task_id, status, start), (next_id, _, end) in zip(rows, rows[1:]):
                if task_id != next_id or status not in stints:
                    continue
                stints[status].append(max(0.0, (_aware(end) - _aware(start)).total_seconds()) / 86400)

        return [
            {
                "status": status,
                "avg_days": round(sum(days) / len(days), 1) if days else 0.0,
                "samples": len(days),
            }
            for status, days in stints.items()
        ]

    async def insights(self, user_id: str, scope: str = PERSONAL, days: int = 7) -> List[str]:
        """Short plain-language observations, at most four"""
        open_stmt = select(Task.priority, Task.due_date).where(Task.status != TaskStatus.COMPLETED)
        if scope == PERSONAL:
            open_stmt = open_stmt.where(self._owned(user_id))
        open_tasks = (await self.db.execute(open_stmt)).all()
        stats = await self.productivity(user_id, scope, days)

        now = datetime.now(timezone.utc)
        overdue = sum(1 for _, due in open_tasks if due is not None and _aware(due) < now)
        urgent = sum(1 for priority, _ in open_tasks if priority == TaskPriority.URGENT)
        completed = stats["completed_this_period"]

        insights = []
        if overdue:
            subject = "You have" if scope == PERSONAL else "There are"
            insights.append(f"{subject} {_count(overdue, 'overdue task')} needing attention.")
        if completed > 10:
            insights.append(f"Exceptional run: {completed} tasks completed in the last {days} days.")
        elif completed:
            insights.append(f"Maintain momentum. {_count(completed, 'task')} completed this period.")
        if stats["performance_score"] > ELITE_SCORE:
            insights.append("Consistency reached 'Elite' status.")
        if urgent:
            insights.append(f"Urgent focus required: {_count(urgent, 'urgent task')} still open.")
        if scope == GLOBAL:
            active = (await self.db.execute(
                select(func.count(func.distinct(Task.assigned_to_id))).where(
                    Task.status != TaskStatus.COMPLETED,
                    Task.assigned_to_id.is_not(None),
                )
            )).scalar() or 0
            insights.append(f"{_count(active, 'teammate')} currently working on open tasks.")
        return insights[:MAX_INSIGHTS]
