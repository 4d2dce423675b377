# comment_service.py — Task comments
# Readers and commenters must be able to see the task; only the author may
# edit or delete a comment.
import logging
from typing import List, Dict, Any

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_policy import AccessContext, can_view_task
from errors import ForbiddenError, NotFoundError
from models import Comment, Task, User
from notification_service import NotificationService, notification_to_dict

logger = logging.getLogger("taskflow.comments")


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


def comment_to_dict(c: Comment) -> Dict[str, Any]:
    return {
        "id": c.id,
        "task_id": c.task_id,
        "user_id": c.user_id,
        "content": c.content,
        "author": {"id": c.author.id, "name": c.author.name} if c.author else None,
        "created_at": c.created_at.isoformat() if c.created_at else None,
        "updated_at": c.updated_at.isoformat() if c.updated_at else None,
    }


class CommentService:
    def __init__(self, db: AsyncSession, realtime=None):
        self.db = db
        self.realtime = realtime
        self.notifications = NotificationService(db)

    async def _visible_task(self, ctx: AccessContext, task_id: str) -> Task:
        task = await self.db.get(Task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        if not can_view_task(ctx, task):
            raise ForbiddenError("Not authorized to view this task")
        return task

    async def _load(self, comment_id: str) -> Comment:
        comment = (await self.db.execute(
            select(Comment)
            .options(selectinload(Comment.author))
            .where(Comment.id == comment_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not comment:
            raise NotFoundError("Comment not found")
        return comment

    async def list_for_task(self, ctx: AccessContext, task_id: str) -> List[Comment]:
        await self._visible_task(ctx, task_id)
        result = await self.db.execute(
            select(Comment)
            .options(selectinload(Comment.author))
            .where(Comment.task_id == task_id)
            .order_by(Comment.created_at.asc())
        )
        return list(result.scalars().all())

    async def create(self, ctx: AccessContext, task_id: str, data: CommentCreate) -> Comment:
        task = await self._visible_task(ctx, task_id)
        author = await self.db.get(User, ctx.user_id)

        comment = Comment(content=data.content, task_id=task.id, user_id=ctx.user_id)
        self.db.add(comment)

        # Assignee hears about it, or the creator when nobody is assigned
        recipient = task.assigned_to_id or task.creator_id
        notification = None
        if recipient != ctx.user_id:
            notification = self.notifications.notify_comment(task, recipient, author.name if author else "Someone")

        await self.db.commit()
        comment = await self._load(comment.id)

        if self.realtime and notification is not None:
            await self.realtime.emit_to_user(recipient, "notification:new", notification_to_dict(notification))
        return comment

    async def update(self, ctx: AccessContext, comment_id: str, data: CommentUpdate) -> Comment:
        comment = await self._load(comment_id)
        if comment.user_id != ctx.user_id:
            raise ForbiddenError("You can only edit your own comments")
        comment.content = data.content
        await self.db.commit()
        return await self._load(comment.id)

    async def delete(self, ctx: AccessContext, comment_id: str) -> None:
        comment = await self._load(comment_id)
        if comment.user_id != ctx.user_id:
            raise ForbiddenError("You can only delete your own comments")
        await self.db.delete(comment)
        await self.db.commit()
        logger.info(f"Comment {comment_id} deleted by user={ctx.user_id[:8]}")
