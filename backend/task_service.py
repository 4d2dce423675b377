# task_service.py — Task visibility & single-task mutations
# - list_tasks: explicit filters AND organization scope AND visibility union
# - create / update: assignee validation, history + notification side effects
# - delete: creator only, immediate
# Side effects of a mutation are staged in the same unit of work as the row
# change; real-time pushes go out only after the commit.
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable

from pydantic import BaseModel, Field
from sqlalchemy import select, delete, update, or_, inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_policy import (
    AccessContext, visible_tasks_clause, overdue_clause, order_by_clause,
    can_view_task, can_update_task, can_delete_task,
)
from errors import BadRequestError, ForbiddenError, NotFoundError
from models import (
    Task, User, Team, TaskHistory, Comment, Notification,
    TaskPriority, TaskStatus, TaskVisibility,
)
from notification_service import NotificationService, notification_to_dict
from task_history import HistoryAction, record_history

logger = logging.getLogger("taskflow.tasks")


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=10000)
    due_date: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    assigned_to_id: Optional[str] = None
    team_id: Optional[str] = None
    visibility: TaskVisibility = TaskVisibility.PRIVATE


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=10000)
    due_date: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assigned_to_id: Optional[str] = None
    team_id: Optional[str] = None
    visibility: Optional[TaskVisibility] = None


class TaskFilters(BaseModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to_id: Optional[str] = None
    creator_id: Optional[str] = None
    team_id: Optional[str] = None
    overdue: bool = False
    search: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    limit: int = Field(default=100, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


@dataclass
class TaskMutation:
    """Outcome of create/update: the fresh task and who was notified, if anyone"""
    task: Task
    send_notification_to: Optional[str] = None


# ============================================================
# SERIALIZATION
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def task_to_dict(task: Task) -> Dict[str, Any]:
    unloaded = sa_inspect(task).unloaded
    out = {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "due_date": _ts(task.due_date),
        "priority": task.priority.value if hasattr(task.priority, "value") else task.priority,
        "status": task.status.value if hasattr(task.status, "value") else task.status,
        "visibility": task.visibility.value if hasattr(task.visibility, "value") else task.visibility,
        "creator_id": task.creator_id,
        "assigned_to_id": task.assigned_to_id,
        "organization_id": task.organization_id,
        "team_id": task.team_id,
        "created_at": _ts(task.created_at),
        "updated_at": _ts(task.updated_at),
    }
    if "creator" not in unloaded:
        out["creator"] = _user_summary(task.creator)
    if "assigned_to" not in unloaded:
        out["assigned_to"] = _user_summary(task.assigned_to)
    return out


def task_event_ref(task: Task) -> Dict[str, Any]:
    """Broadcast payload for task events: identity and tenant only.

    Clients load the task itself through the read routes, which apply
    visibility rules.
    """
    return {"id": task.id, "organization_id": task.organization_id}


# ============================================================
# SHARED HELPERS
# ============================================================

async def resolve_assignee(db: AsyncSession, assignee_id: str) -> User:
    """Load an assignable user or reject the request"""
    assignee = await db.get(User, assignee_id)
    if not assignee:
        raise BadRequestError("Assignee not found")
    if not assignee.is_active:
        raise BadRequestError("Cannot assign to suspended user")
    return assignee


async def purge_task_children(db: AsyncSession, task_ids: Iterable[str]) -> None:
    """Remove rows owned by tasks about to be deleted.

    History and comments go with their task; notifications survive with
    their task reference cleared.
    """
    ids = list(task_ids)
    if not ids:
        return
    await db.execute(delete(TaskHistory).where(TaskHistory.task_id.in_(ids)))
    await db.execute(delete(Comment).where(Comment.task_id.in_(ids)))
    await db.execute(
        update(Notification).where(Notification.task_id.in_(ids)).values(task_id=None)
    )


# ============================================================
# SERVICE
# ============================================================

class TaskService:
    def __init__(self, db: AsyncSession, realtime=None):
        self.db = db
        self.realtime = realtime
        self.notifications = NotificationService(db)

    # --- Reads ---

    async def list_tasks(self, ctx: AccessContext, filters: Optional[TaskFilters] = None) -> List[Task]:
        filters = filters or TaskFilters()
        stmt = (
            select(Task)
            .options(selectinload(Task.creator), selectinload(Task.assigned_to))
            .where(visible_tasks_clause(ctx))
        )
        if filters.status:
            stmt = stmt.where(Task.status == filters.status)
        if filters.priority:
            stmt = stmt.where(Task.priority == filters.priority)
        if filters.assigned_to_id:
            stmt = stmt.where(Task.assigned_to_id == filters.assigned_to_id)
        if filters.creator_id:
            stmt = stmt.where(Task.creator_id == filters.creator_id)
        if filters.team_id:
            stmt = stmt.where(Task.team_id == filters.team_id)
        if filters.overdue:
            stmt = stmt.where(overdue_clause())
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

        stmt = stmt.order_by(order_by_clause(filters.sort_by, filters.sort_order))
        if filters.sort_by == "priority":
            stmt = stmt.order_by(Task.due_date.asc())
        stmt = stmt.order_by(Task.id).offset(filters.offset).limit(filters.limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id(self, task_id: str) -> Task:
        result = await self.db.execute(
            select(Task)
            .options(selectinload(Task.creator), selectinload(Task.assigned_to))
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if not task:
            raise NotFoundError("Task not found")
        return task

    async def get_visible(self, ctx: AccessContext, task_id: str) -> Task:
        task = await self.get_by_id(task_id)
        if not can_view_task(ctx, task):
            raise ForbiddenError("Not authorized to view this task")
        return task

    # --- Mutations ---

    async def _check_team(self, ctx: AccessContext, team_id: Optional[str], visibility) -> None:
        if not ctx.organization_id:
            if team_id or visibility not in (None, TaskVisibility.PRIVATE):
                raise BadRequestError("Team and organization visibility require an organization context")
            return
        if team_id:
            team = await self.db.get(Team, team_id)
            if not team or team.organization_id != ctx.organization_id:
                raise BadRequestError("Team not found in this organization")

    async def create(self, ctx: AccessContext, data: TaskCreate) -> TaskMutation:
        if data.assigned_to_id is not None:
            await resolve_assignee(self.db, data.assigned_to_id)
        await self._check_team(ctx, data.team_id, data.visibility)
        if data.visibility == TaskVisibility.TEAM and not data.team_id:
            raise BadRequestError("Team visibility requires a team")

        task = Task(
            title=data.title,
            description=data.description,
            due_date=data.due_date,
            priority=data.priority,
            status=data.status,
            creator_id=ctx.user_id,
            assigned_to_id=data.assigned_to_id,
            organization_id=ctx.organization_id,
            team_id=data.team_id,
            visibility=data.visibility,
        )
        self.db.add(task)
        await self.db.flush()

        record_history(
            self.db, task.id, ctx.user_id, HistoryAction.CREATED,
            field="status", new_value=task.status.value,
        )

        notify = None
        if data.assigned_to_id is not None:
            record_history(
                self.db, task.id, ctx.user_id, HistoryAction.ASSIGNED,
                field="assigned_to_id", new_value=data.assigned_to_id,
            )
            if data.assigned_to_id != ctx.user_id:
                notify = self.notifications.notify_assignment(task, data.assigned_to_id)

        await self.db.commit()
        task = await self.get_by_id(task.id)
        logger.info(f"Task {task.id} created by user={ctx.user_id[:8]}")

        await self.publish("task:created", task, notify)
        return TaskMutation(task=task, send_notification_to=notify.user_id if notify else None)

    async def update(self, ctx: AccessContext, task_id: str, data: TaskUpdate) -> TaskMutation:
        task = await self.get_by_id(task_id)
        if not can_update_task(ctx, task):
            raise ForbiddenError("Not authorized to update this task")

        updates = data.model_dump(exclude_unset=True)
        if updates.get("assigned_to_id") is not None:
            await resolve_assignee(self.db, updates["assigned_to_id"])
        if "team_id" in updates or "visibility" in updates:
            if not task.organization_id and (
                updates.get("team_id") or updates.get("visibility") not in (None, TaskVisibility.PRIVATE)
            ):
                raise BadRequestError("Team and organization visibility require an organization context")
            if updates.get("team_id"):
                team = await self.db.get(Team, updates["team_id"])
                if not team or team.organization_id != task.organization_id:
                    raise BadRequestError("Team not found in this organization")

        old_status = task.status
        old_assignee = task.assigned_to_id

        for key, value in updates.items():
            if key in ("title", "description", "priority", "status", "visibility") and value is None:
                continue
            setattr(task, key, value)
        if task.visibility == TaskVisibility.TEAM and not task.team_id:
            raise BadRequestError("Team visibility requires a team")

        if task.status != old_status:
            record_history(
                self.db, task.id, ctx.user_id, HistoryAction.STATUS_CHANGED,
                field="status", old_value=old_status.value, new_value=task.status.value,
            )

        notify = None
        new_assignee = task.assigned_to_id
        if new_assignee != old_assignee:
            record_history(
                self.db, task.id, ctx.user_id, HistoryAction.ASSIGNED,
                field="assigned_to_id", old_value=old_assignee, new_value=new_assignee,
            )
            if new_assignee and new_assignee != ctx.user_id:
                notify = self.notifications.notify_assignment(task, new_assignee)

        await self.db.commit()
        task = await self.get_by_id(task.id)

        await self.publish("task:updated", task, notify)
        return TaskMutation(task=task, send_notification_to=notify.user_id if notify else None)

    async def delete(self, ctx: AccessContext, task_id: str) -> None:
        task = await self.get_by_id(task_id)
        if not can_delete_task(ctx, task):
            raise ForbiddenError("Only the creator can delete this task")

        await purge_task_children(self.db, [task.id])
        await self.db.execute(delete(Task).where(Task.id == task.id))
        await self.db.commit()
        logger.info(f"Task {task_id} deleted by user={ctx.user_id[:8]}")

        if self.realtime:
            await self.realtime.emit("task:deleted", {"id": task_id})

    async def publish(self, event: str, task: Task, notification: Optional[Notification] = None) -> None:
        """Post-commit pushes: the task event broadcast, then the targeted notification"""
        if not self.realtime:
            return
        await self.realtime.emit(event, task_event_ref(task))
        if notification is not None:
            await self.realtime.emit_to_user(
                notification.user_id, "notification:new", notification_to_dict(notification),
            )
