# template_service.py — Reusable task templates
# A template is visible to its creator, or to everyone when global. Only the
# creator edits or deletes it; publishing a global template needs ADMIN+.
import logging
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_policy import AccessContext, is_role_at_least
from errors import ForbiddenError, NotFoundError
from models import TaskTemplate, TaskPriority, UserRole

logger = logging.getLogger("taskflow.templates")


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=10000)
    priority: TaskPriority = TaskPriority.MEDIUM
    is_global: bool = False


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=10000)
    priority: Optional[TaskPriority] = None
    is_global: Optional[bool] = None


def template_to_dict(t: TaskTemplate) -> Dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "title": t.title,
        "description": t.description,
        "priority": t.priority.value,
        "is_global": t.is_global,
        "creator_id": t.creator_id,
        "creator": {"id": t.creator.id, "name": t.creator.name} if t.creator else None,
        "created_at": t.created_at.isoformat() if t.created_at else None,
        "updated_at": t.updated_at.isoformat() if t.updated_at else None,
    }


class TemplateService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, template_id: str) -> TaskTemplate:
        template = (await self.db.execute(
            select(TaskTemplate)
            .options(selectinload(TaskTemplate.creator))
            .where(TaskTemplate.id == template_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if not template:
            raise NotFoundError("Template not found")
        return template

    async def _owned(self, ctx: AccessContext, template_id: str, verb: str) -> TaskTemplate:
        template = await self._load(template_id)
        if template.creator_id != ctx.user_id:
            raise ForbiddenError(f"Only the template creator can {verb} this template")
        return template

    @staticmethod
    def _check_global(ctx: AccessContext, is_global: Optional[bool]) -> None:
        if is_global and not is_role_at_least(ctx.role, UserRole.ADMIN):
            raise ForbiddenError("Only admins can publish global templates")

    async def list_for_user(self, user_id: str) -> List[TaskTemplate]:
        """Own templates plus global ones; global first, then by name"""
        result = await self.db.execute(
            select(TaskTemplate)
            .options(selectinload(TaskTemplate.creator))
            .where(or_(TaskTemplate.creator_id == user_id, TaskTemplate.is_global.is_(True)))
            .order_by(TaskTemplate.is_global.desc(), TaskTemplate.name.asc())
        )
        return list(result.scalars().all())

    async def get(self, ctx: AccessContext, template_id: str) -> TaskTemplate:
        template = await self._load(template_id)
        if template.creator_id != ctx.user_id and not template.is_global:
            raise ForbiddenError("You do not have access to this template")
        return template

    async def create(self, ctx: AccessContext, data: TemplateCreate) -> TaskTemplate:
        self._check_global(ctx, data.is_global)
        template = TaskTemplate(
            name=data.name,
            title=data.title,
            description=data.description,
            priority=data.priority,
            is_global=data.is_global,
            creator_id=ctx.user_id,
        )
        self.db.add(template)
        await self.db.commit()
        logger.info(f"Template {template.id} created by user={ctx.user_id[:8]}")
        return await self._load(template.id)

    async def update(self, ctx: AccessContext, template_id: str, data: TemplateUpdate) -> TaskTemplate:
        template = await self._owned(ctx, template_id, "update")
        updates = data.model_dump(exclude_unset=True)
        self._check_global(ctx, updates.get("is_global"))
        for key, value in updates.items():
            if value is None:
                continue
            setattr(template, key, value)
        await self.db.commit()
        return await self._load(template.id)

    async def delete(self, ctx: AccessContext, template_id: str) -> None:
        template = await self._owned(ctx, template_id, "delete")
        await self.db.delete(template)
        await self.db.commit()
        logger.info(f"Template {template_id} deleted by user={ctx.user_id[:8]}")
