# routers/templates.py — Task templates of the current user
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from access_policy import AccessContext
from auth import get_current_user, CurrentUser
from database import get_db_session
from template_service import TemplateService, TemplateCreate, TemplateUpdate, template_to_dict

router = APIRouter(prefix="/api/v1/templates", tags=["Templates"])


@router.get("")
async def list_templates(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Own templates plus every global template"""
    templates = await TemplateService(db).list_for_user(user.id)
    return [template_to_dict(t) for t in templates]


@router.get("/{template_id}")
async def get_template(
    template_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    template = await TemplateService(db).get(AccessContext.from_user(user), template_id)
    return template_to_dict(template)


@router.post("", status_code=201)
async def create_template(
    data: TemplateCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    template = await TemplateService(db).create(AccessContext.from_user(user), data)
    return template_to_dict(template)


@router.put("/{template_id}")
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    template = await TemplateService(db).update(AccessContext.from_user(user), template_id, data)
    return template_to_dict(template)


@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await TemplateService(db).delete(AccessContext.from_user(user), template_id)
    return {"message": "Template deleted successfully"}
