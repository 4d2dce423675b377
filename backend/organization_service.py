# organization_service.py — Organizations & organization membership
import re
import logging
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, EmailStr
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_policy import is_org_role_at_least
from database import transaction
from errors import ConflictError, ForbiddenError, NotFoundError
from models import Organization, Membership, Team, User, OrgRole, PlanType

logger = logging.getLogger("taskflow.organizations")


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    slug: Optional[str] = Field(None, min_length=2, max_length=60, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


class MemberAdd(BaseModel):
    email: EmailStr
    role: OrgRole = OrgRole.MEMBER


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def organization_to_dict(org: Organization, role: Optional[OrgRole] = None, **counts) -> Dict[str, Any]:
    out = {
        "id": org.id,
        "name": org.name,
        "slug": org.slug,
        "plan": org.plan.value if isinstance(org.plan, PlanType) else org.plan,
        "created_at": org.created_at.isoformat() if org.created_at else None,
    }
    if role is not None:
        out["role"] = role.value
    out.update(counts)
    return out


def member_to_dict(m: Membership) -> Dict[str, Any]:
    return {
        "id": m.id,
        "user_id": m.user_id,
        "organization_id": m.organization_id,
        "role": m.role.value,
        "name": m.user.name if m.user else None,
        "email": m.user.email if m.user else None,
    }


class OrganizationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _membership(self, organization_id: str, user_id: str) -> Optional[Membership]:
        return (await self.db.execute(
            select(Membership).where(
                Membership.organization_id == organization_id,
                Membership.user_id == user_id,
            )
        )).scalar_one_or_none()

    async def create(self, user_id: str, data: OrganizationCreate) -> Organization:
        slug = data.slug or slugify(data.name)
        existing = (await self.db.execute(
            select(Organization.id).where(Organization.slug == slug)
        )).first()
        if existing:
            raise ConflictError("Organization slug already taken")

        async with transaction(self.db):
            org = Organization(name=data.name, slug=slug, plan=PlanType.FREE)
            self.db.add(org)
            await self.db.flush()
            self.db.add(Membership(user_id=user_id, organization_id=org.id, role=OrgRole.SUPER_ADMIN))

        logger.info(f"Organization {org.slug} created by user={user_id[:8]}")
        return org

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Organization, Membership.role)
            .join(Membership, Membership.organization_id == Organization.id)
            .where(Membership.user_id == user_id)
            .order_by(Organization.name.asc())
        )
        return [organization_to_dict(org, role) for org, role in result.all()]

    async def get(self, organization_id: str, user_id: str) -> Dict[str, Any]:
        org = await self.db.get(Organization, organization_id)
        if not org:
            raise NotFoundError("Organization not found")
        membership = await self._membership(organization_id, user_id)
        if not membership:
            raise ForbiddenError("You are not a member of this organization")

        member_count = (await self.db.execute(
            select(func.count(Membership.id)).where(Membership.organization_id == organization_id)
        )).scalar() or 0
        team_count = (await self.db.execute(
            select(func.count(Team.id)).where(Team.organization_id == organization_id)
        )).scalar() or 0
        return organization_to_dict(org, membership.role, member_count=member_count, team_count=team_count)

    async def list_members(self, organization_id: str, user_id: str) -> List[Membership]:
        if not await self._membership(organization_id, user_id):
            raise ForbiddenError("You are not a member of this organization")
        result = await self.db.execute(
            select(Membership)
            .options(selectinload(Membership.user))
            .where(Membership.organization_id == organization_id)
            .order_by(Membership.created_at.asc())
        )
        return list(result.scalars().all())

    async def add_member(self, organization_id: str, actor_id: str, data: MemberAdd) -> Membership:
        actor = await self._membership(organization_id, actor_id)
        if not actor or not is_org_role_at_least(actor.role.value, OrgRole.MANAGER):
            raise ForbiddenError("Only organization managers can add members")

        user = (await self.db.execute(
            select(User).where(User.email == data.email.lower())
        )).scalar_one_or_none()
        if not user:
            raise NotFoundError("User not found")
        if await self._membership(organization_id, user.id):
            raise ConflictError("User is already a member of this organization")

        membership = Membership(user_id=user.id, organization_id=organization_id, role=data.role)
        self.db.add(membership)
        await self.db.commit()
        logger.info(f"User {user.id[:8]} joined org={organization_id[:8]} as {data.role.value}")

        result = await self.db.execute(
            select(Membership)
            .options(selectinload(Membership.user))
            .where(Membership.id == membership.id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
