# bulk_service.py — Bulk operation engine (admin path)
# One action over a caller-supplied id list:
#   1. resolve which ids exist; each missing id becomes an error entry
#   2. validate the action payload (failure rejects the whole call)
#   3. one batch UPDATE/DELETE over the existing ids
#   4. exactly one audit entry per call
# Per-task ownership rules do not apply here; callers are gated by a
# minimum-role check upstream.
import logging
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from audit_service import (
    AuditService, AuditActor,
    BulkAssignMetadata, BulkStatusMetadata, BulkPriorityMetadata,
    BulkDeleteMetadata, BulkArchiveMetadata,
)
from errors import BadRequestError
from models import Task, TaskStatus, TaskPriority, AuditAction, utcnow
from notification_service import NotificationService, notification_to_dict
from task_history import HistoryAction, record_history
from task_service import resolve_assignee, purge_task_children, task_to_dict

logger = logging.getLogger("taskflow.bulk")

PREVIEW_SAMPLE_SIZE = 10
MAX_BULK_IDS = 500


class BulkAction(str, Enum):
    ASSIGN = "assign"
    UPDATE_STATUS = "update_status"
    UPDATE_PRIORITY = "update_priority"
    DELETE = "delete"
    ARCHIVE = "archive"


# ============================================================
# SCHEMAS
# ============================================================

class BulkOperationRequest(BaseModel):
    # Plain string so an unknown action is a business rejection, not a 422
    action: str
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_IDS)
    data: Dict[str, Any] = Field(default_factory=dict)


class BulkPreviewRequest(BaseModel):
    task_ids: List[str] = Field(..., min_length=1, max_length=MAX_BULK_IDS)


class BulkError(BaseModel):
    task_id: str
    error: str


class BulkOperationResult(BaseModel):
    success: bool
    processed: int
    failed: int
    errors: List[BulkError]


def _dedupe(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def _parse_enum(enum_cls, value, label: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise BadRequestError(f"Invalid {label}: {value}")


# ============================================================
# SERVICE
# ============================================================

class BulkService:
    def __init__(self, db: AsyncSession, realtime=None):
        self.db = db
        self.realtime = realtime
        self.audit = AuditService(db)
        self.notifications = NotificationService(db)

    async def _existing(self, task_ids: List[str]) -> List[Task]:
        result = await self.db.execute(select(Task).where(Task.id.in_(task_ids)))
        by_id = {t.id: t for t in result.scalars().all()}
        return [by_id[i] for i in task_ids if i in by_id]

    async def execute(self, request: BulkOperationRequest, actor: AuditActor) -> BulkOperationResult:
        task_ids = _dedupe(request.task_ids)
        tasks = await self._existing(task_ids)
        found_ids = [t.id for t in tasks]
        found = set(found_ids)
        missing_ids = [i for i in task_ids if i not in found]
        errors = [BulkError(task_id=i, error="Task not found") for i in missing_ids]

        try:
            action = BulkAction(request.action)
        except ValueError:
            raise BadRequestError(f"Unknown action: {request.action}")

        data = request.data or {}
        staged_notifications = []

        if action == BulkAction.ASSIGN:
            assignee_id = data.get("assignee_id") or data.get("assigneeId")
            if not assignee_id:
                raise BadRequestError("Assignee ID required for assign action")
            assignee = await resolve_assignee(self.db, assignee_id)

            processed = await self._update(found_ids, assigned_to_id=assignee.id)
            for task in tasks:
                if task.assigned_to_id == assignee.id:
                    continue
                record_history(
                    self.db, task.id, actor.id, HistoryAction.ASSIGNED,
                    field="assigned_to_id", old_value=task.assigned_to_id, new_value=assignee.id,
                )
                if assignee.id != actor.id:
                    staged_notifications.append(self.notifications.notify_assignment(task, assignee.id))
            audit_action = AuditAction.BULK_ASSIGN
            metadata = BulkAssignMetadata(
                task_ids=found_ids, missing_ids=missing_ids, count=processed,
                assignee_id=assignee.id, assignee_name=assignee.name,
            )

        elif action in (BulkAction.UPDATE_STATUS, BulkAction.ARCHIVE):
            if action == BulkAction.ARCHIVE:
                new_status = TaskStatus.COMPLETED
            else:
                if not data.get("status"):
                    raise BadRequestError("Status required for update_status action")
                new_status = _parse_enum(TaskStatus, data["status"], "status")

            processed = await self._update(found_ids, status=new_status)
            for task in tasks:
                if task.status != new_status:
                    record_history(
                        self.db, task.id, actor.id, HistoryAction.STATUS_CHANGED,
                        field="status", old_value=task.status.value, new_value=new_status.value,
                    )
            if action == BulkAction.ARCHIVE:
                audit_action = AuditAction.BULK_ARCHIVE
                metadata = BulkArchiveMetadata(task_ids=found_ids, missing_ids=missing_ids, count=processed)
            else:
                audit_action = AuditAction.BULK_STATUS_UPDATE
                metadata = BulkStatusMetadata(
                    task_ids=found_ids, missing_ids=missing_ids, count=processed,
                    new_status=new_status.value,
                )

        elif action == BulkAction.UPDATE_PRIORITY:
            if not data.get("priority"):
                raise BadRequestError("Priority required for update_priority action")
            new_priority = _parse_enum(TaskPriority, data["priority"], "priority")

            processed = await self._update(found_ids, priority=new_priority)
            audit_action = AuditAction.BULK_PRIORITY_UPDATE
            metadata = BulkPriorityMetadata(
                task_ids=found_ids, missing_ids=missing_ids, count=processed,
                new_priority=new_priority.value,
            )

        else:  # BulkAction.DELETE
            processed = 0
            if found_ids:
                await purge_task_children(self.db, found_ids)
                result = await self.db.execute(delete(Task).where(Task.id.in_(found_ids)))
                processed = result.rowcount
            audit_action = AuditAction.BULK_DELETE
            metadata = BulkDeleteMetadata(task_ids=found_ids, missing_ids=missing_ids, count=processed)

        await self.db.commit()
        logger.info(
            f"Bulk {action.value} by {actor.email}: processed={processed} failed={len(errors)}"
        )

        await self.audit.log("Task", "bulk", audit_action, actor, metadata=metadata)
        await self._push(action, found_ids, staged_notifications)

        return BulkOperationResult(
            success=len(errors) == 0,
            processed=processed,
            failed=len(errors),
            errors=errors,
        )

    async def _update(self, task_ids: List[str], **values) -> int:
        if not task_ids:
            return 0
        result = await self.db.execute(
            update(Task)
            .where(Task.id.in_(task_ids))
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _push(self, action: BulkAction, task_ids: List[str], notifications: list) -> None:
        if not self.realtime or not task_ids:
            return
        event = "task:deleted" if action == BulkAction.DELETE else "task:updated"
        for task_id in task_ids:
            await self.realtime.emit(event, {"id": task_id, "bulk_action": action.value})
        for notification in notifications:
            await self.realtime.emit_to_user(
                notification.user_id, "notification:new", notification_to_dict(notification),
            )

    async def preview(self, task_ids: List[str]) -> Dict[str, Any]:
        """Read-only dry run: what a bulk action over these ids would touch"""
        task_ids = _dedupe(task_ids)
        result = await self.db.execute(
            select(Task)
            .options(selectinload(Task.creator), selectinload(Task.assigned_to))
            .where(Task.id.in_(task_ids))
            .order_by(Task.created_at.desc())
        )
        tasks = list(result.scalars().all())

        by_status: Dict[str, int] = {}
        by_priority: Dict[str, int] = {}
        for task in tasks:
            by_status[task.status.value] = by_status.get(task.status.value, 0) + 1
            by_priority[task.priority.value] = by_priority.get(task.priority.value, 0) + 1

        return {
            "total_requested": len(task_ids),
            "found": len(tasks),
            "missing": len(task_ids) - len(tasks),
            "by_status": by_status,
            "by_priority": by_priority,
            "tasks": [task_to_dict(t) for t in tasks[:PREVIEW_SAMPLE_SIZE]],
        }
