# routers/tasks.py — Task CRUD, history and comments
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import AccessContext
from auth import get_current_user, CurrentUser
from comment_service import CommentService, CommentCreate, CommentUpdate, comment_to_dict
from database import get_db_session
from models import TaskPriority, TaskStatus
from realtime import get_realtime
from task_history import get_task_history, history_to_dict
from task_service import TaskService, TaskCreate, TaskUpdate, TaskFilters, task_to_dict

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


def _mutation_out(mutation) -> dict:
    out = task_to_dict(mutation.task)
    out["send_notification_to"] = mutation.send_notification_to
    return out


# ============================================================
# TASKS
# ============================================================

@router.get("")
async def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[TaskPriority] = Query(None),
    assigned_to_id: Optional[str] = Query(None),
    creator_id: Optional[str] = Query(None),
    team_id: Optional[str] = Query(None),
    overdue: bool = Query(default=False),
    search: Optional[str] = Query(None, max_length=200),
    sort_by: str = Query(default="created_at", pattern=r"^(created_at|updated_at|due_date|priority|status|title)$"),
    sort_order: str = Query(default="desc", pattern=r"^(asc|desc)$"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Tasks visible to the caller in the active organization (or individual mode)"""
    filters = TaskFilters(
        status=status, priority=priority, assigned_to_id=assigned_to_id,
        creator_id=creator_id, team_id=team_id, overdue=overdue, search=search,
        sort_by=sort_by, sort_order=sort_order, limit=limit, offset=offset,
    )
    tasks = await TaskService(db).list_tasks(AccessContext.from_user(user), filters)
    return [task_to_dict(t) for t in tasks]


@router.post("", status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    mutation = await TaskService(db, realtime).create(AccessContext.from_user(user), data)
    return _mutation_out(mutation)


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await TaskService(db).get_visible(AccessContext.from_user(user), task_id)
    return task_to_dict(task)


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    mutation = await TaskService(db, realtime).update(AccessContext.from_user(user), task_id, data)
    return _mutation_out(mutation)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    await TaskService(db, realtime).delete(AccessContext.from_user(user), task_id)
    return {"status": "deleted", "id": task_id}


@router.get("/{task_id}/history")
async def task_history(
    task_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await TaskService(db).get_visible(AccessContext.from_user(user), task_id)
    entries = await get_task_history(db, task_id, limit)
    return [history_to_dict(e) for e in entries]


# ============================================================
# COMMENTS
# ============================================================

@router.get("/{task_id}/comments")
async def list_comments(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comments = await CommentService(db).list_for_task(AccessContext.from_user(user), task_id)
    return [comment_to_dict(c) for c in comments]


@router.post("/{task_id}/comments", status_code=201)
async def add_comment(
    task_id: str,
    data: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    realtime=Depends(get_realtime),
):
    comment = await CommentService(db, realtime).create(AccessContext.from_user(user), task_id, data)
    return comment_to_dict(comment)


@router.patch("/comments/{comment_id}")
async def edit_comment(
    comment_id: str,
    data: CommentUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    comment = await CommentService(db).update(AccessContext.from_user(user), comment_id, data)
    return comment_to_dict(comment)


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await CommentService(db).delete(AccessContext.from_user(user), comment_id)
    return {"status": "deleted", "id": comment_id}
