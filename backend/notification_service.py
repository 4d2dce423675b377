# notification_service.py — In-app notifications
# Notifications are delivery records only: created as a side effect of
# assignment or commenting, then flipped to read by their recipient.
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NotFoundError
from models import Notification, NotificationType, Task

logger = logging.getLogger("taskflow.notifications")

RECENT_LIMIT = 20


def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def notification_to_dict(n: Notification) -> Dict[str, Any]:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "user_id": n.user_id,
        "task_id": n.task_id,
        "read": n.read,
        "created_at": _ts(n.created_at),
    }


class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def notify_assignment(self, task: Task, assignee_id: str) -> Notification:
        """Stage an assignment notification (caller commits)"""
        notification = Notification(
            title="New Task Assigned",
            message=f"You have been assigned to task: {task.title}",
            type=NotificationType.TASK_ASSIGNED.value,
            user_id=assignee_id,
            task_id=task.id,
        )
        self.db.add(notification)
        return notification

    def notify_comment(self, task: Task, recipient_id: str, commenter_name: str) -> Notification:
        notification = Notification(
            title="New Comment",
            message=f"{commenter_name} commented on task: {task.title}",
            type=NotificationType.TASK_COMMENT.value,
            user_id=recipient_id,
            task_id=task.id,
        )
        self.db.add(notification)
        return notification

    async def list_for_user(self, user_id: str, limit: int = RECENT_LIMIT) -> Dict[str, Any]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        notifications = result.scalars().all()
        unread = (await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        )).scalar() or 0
        return {
            "notifications": [notification_to_dict(n) for n in notifications],
            "unread_count": unread,
        }

    async def mark_as_read(self, notification_id: str, user_id: str) -> Notification:
        notification = (await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )).scalar_one_or_none()
        if not notification:
            raise NotFoundError("Notification not found")
        notification.read = True
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def mark_all_as_read(self, user_id: str) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        await self.db.commit()
        logger.info(f"Marked {result.rowcount} notifications read for user={user_id[:8]}")
        return result.rowcount

