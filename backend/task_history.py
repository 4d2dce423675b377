# task_history.py — Append-only per-task change log
# Entries are written on creation, status change and assignment change,
# in the same unit of work as the mutation they describe. Rows are never
# updated; they disappear only when their task is deleted.
from datetime import datetime
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import TaskHistory


class HistoryAction:
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def record_history(
    db: AsyncSession, task_id: str, user_id: str, action: str,
    field: str = None, old_value: str = None, new_value: str = None,
) -> TaskHistory:
    """Stage a task history entry on the session (caller commits)"""
    entry = TaskHistory(
        task_id=task_id,
        user_id=user_id,
        action=action,
        field=field,
        old_value=old_value,
        new_value=new_value,
    )
    db.add(entry)
    return entry


async def get_task_history(db: AsyncSession, task_id: str, limit: int = 50) -> List[TaskHistory]:
    result = await db.execute(
        select(TaskHistory)
        .where(TaskHistory.task_id == task_id)
        .order_by(TaskHistory.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def history_to_dict(entry: TaskHistory) -> dict:
    return {
        "id": entry.id,
        "task_id": entry.task_id,
        "user_id": entry.user_id,
        "action": entry.action,
        "field": entry.field,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "created_at": _ts(entry.created_at),
    }
