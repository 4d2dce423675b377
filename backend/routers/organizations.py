# routers/organizations.py — Organizations and their members
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, CurrentUser
from database import get_db_session
from organization_service import (
    OrganizationService, OrganizationCreate, MemberAdd,
    organization_to_dict, member_to_dict,
)
from models import OrgRole

router = APIRouter(prefix="/api/v1/organizations", tags=["Organizations"])


@router.post("", status_code=201)
async def create_organization(
    data: OrganizationCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create an organization; the creator becomes its SUPER_ADMIN"""
    org = await OrganizationService(db).create(user.id, data)
    return organization_to_dict(org, OrgRole.SUPER_ADMIN)


@router.get("")
async def list_my_organizations(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await OrganizationService(db).list_for_user(user.id)


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await OrganizationService(db).get(organization_id, user.id)


@router.get("/{organization_id}/members")
async def list_members(
    organization_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    members = await OrganizationService(db).list_members(organization_id, user.id)
    return [member_to_dict(m) for m in members]


@router.post("/{organization_id}/members", status_code=201)
async def add_member(
    organization_id: str,
    data: MemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    membership = await OrganizationService(db).add_member(organization_id, user.id, data)
    return member_to_dict(membership)
