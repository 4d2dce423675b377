# team_service.py — Teams inside an organization
# - create: team + creator as LEADER in one transaction
# - membership changes: team LEADER only; new members must already belong
#   to the organization
import logging
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_policy import AccessContext, can_manage_team_membership, is_org_role_at_least
from database import transaction
from errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from models import (
    Team, TeamMembership, Membership, Task, TeamRole, OrgRole, TaskVisibility,
)

logger = logging.getLogger("taskflow.teams")


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class TeamMemberAdd(BaseModel):
    user_id: str
    role: TeamRole = TeamRole.MEMBER


class TeamMemberRoleUpdate(BaseModel):
    role: TeamRole


def team_to_dict(team: Team, member_count: Optional[int] = None) -> Dict[str, Any]:
    out = {
        "id": team.id,
        "name": team.name,
        "description": team.description,
        "organization_id": team.organization_id,
        "created_at": team.created_at.isoformat() if team.created_at else None,
    }
    if member_count is not None:
        out["member_count"] = member_count
    return out


def team_member_to_dict(m: TeamMembership) -> Dict[str, Any]:
    return {
        "id": m.id,
        "team_id": m.team_id,
        "user_id": m.user_id,
        "role": m.role.value,
        "name": m.user.name if m.user else None,
        "email": m.user.email if m.user else None,
    }


class TeamService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _name_taken(self, organization_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
        stmt = select(Team.id).where(
            Team.organization_id == organization_id,
            func.lower(Team.name) == name.lower(),
        )
        if exclude_id:
            stmt = stmt.where(Team.id != exclude_id)
        return (await self.db.execute(stmt)).first() is not None

    async def _member_count(self, team_id: str) -> int:
        return (await self.db.execute(
            select(func.count(TeamMembership.id)).where(TeamMembership.team_id == team_id)
        )).scalar() or 0

    async def _membership(self, team_id: str, user_id: str) -> Optional[TeamMembership]:
        return (await self.db.execute(
            select(TeamMembership)
            .options(selectinload(TeamMembership.user))
            .where(TeamMembership.team_id == team_id, TeamMembership.user_id == user_id)
            .execution_options(populate_existing=True)
        )).scalar_one_or_none()

    async def _require_leader(self, team_id: str, user_id: str) -> None:
        caller = await self._membership(team_id, user_id)
        if not caller or not can_manage_team_membership(caller.role):
            raise ForbiddenError("Only team leaders can manage team membership")

    async def _require_leader_or_manager(self, team_id: str, ctx: AccessContext) -> None:
        if is_org_role_at_least(ctx.org_role, OrgRole.MANAGER):
            return
        await self._require_leader(team_id, ctx.user_id)

    async def _leader_count(self, team_id: str) -> int:
        return (await self.db.execute(
            select(func.count(TeamMembership.id)).where(
                TeamMembership.team_id == team_id,
                TeamMembership.role == TeamRole.LEADER,
            )
        )).scalar() or 0

    # --- Teams ---

    async def create(self, ctx: AccessContext, data: TeamCreate) -> Team:
        if await self._name_taken(ctx.organization_id, data.name):
            raise ConflictError("Team with this name already exists in the organization")

        async with transaction(self.db):
            team = Team(
                name=data.name,
                description=data.description,
                organization_id=ctx.organization_id,
            )
            self.db.add(team)
            await self.db.flush()
            self.db.add(TeamMembership(team_id=team.id, user_id=ctx.user_id, role=TeamRole.LEADER))

        logger.info(f"Team {team.id} created in org={ctx.organization_id[:8]} by user={ctx.user_id[:8]}")
        return team

    async def get(self, team_id: str, organization_id: str) -> Team:
        team = await self.db.get(Team, team_id)
        if not team or team.organization_id != organization_id:
            raise NotFoundError("Team not found")
        return team

    async def get_with_count(self, team_id: str, organization_id: str) -> Dict[str, Any]:
        team = await self.get(team_id, organization_id)
        return team_to_dict(team, await self._member_count(team.id))

    async def list(self, organization_id: str) -> List[Dict[str, Any]]:
        counts = (
            select(TeamMembership.team_id, func.count(TeamMembership.id).label("n"))
            .group_by(TeamMembership.team_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Team, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.team_id == Team.id)
            .where(Team.organization_id == organization_id)
            .order_by(Team.name.asc())
        )
        return [team_to_dict(team, n) for team, n in result.all()]

    async def update(self, ctx: AccessContext, team_id: str, data: TeamUpdate) -> Team:
        team = await self.get(team_id, ctx.organization_id)
        await self._require_leader_or_manager(team.id, ctx)

        updates = data.model_dump(exclude_unset=True)
        if updates.get("name") and await self._name_taken(ctx.organization_id, updates["name"], exclude_id=team.id):
            raise ConflictError("Team with this name already exists")
        for key, value in updates.items():
            if key == "name" and not value:
                continue
            setattr(team, key, value)

        await self.db.commit()
        await self.db.refresh(team)
        return team

    async def delete(self, ctx: AccessContext, team_id: str) -> None:
        team = await self.get(team_id, ctx.organization_id)
        await self._require_leader_or_manager(team.id, ctx)

        # Team-visible tasks fall back to their creator
        await self.db.execute(
            update(Task)
            .where(Task.team_id == team.id)
            .values(team_id=None, visibility=TaskVisibility.PRIVATE)
            .execution_options(synchronize_session=False)
        )
        await self.db.delete(team)
        await self.db.commit()
        logger.info(f"Team {team_id} deleted by user={ctx.user_id[:8]}")

    # --- Members ---

    async def list_members(self, team_id: str, organization_id: str) -> List[TeamMembership]:
        await self.get(team_id, organization_id)
        result = await self.db.execute(
            select(TeamMembership)
            .options(selectinload(TeamMembership.user))
            .where(TeamMembership.team_id == team_id)
            .order_by(TeamMembership.created_at.asc())
        )
        return list(result.scalars().all())

    async def add_member(self, ctx: AccessContext, team_id: str, data: TeamMemberAdd) -> TeamMembership:
        team = await self.get(team_id, ctx.organization_id)
        await self._require_leader(team.id, ctx.user_id)

        org_member = (await self.db.execute(
            select(Membership.id).where(
                Membership.user_id == data.user_id,
                Membership.organization_id == team.organization_id,
            )
        )).first()
        if not org_member:
            raise BadRequestError("User is not a member of the organization")
        if await self._membership(team.id, data.user_id):
            raise ConflictError("User is already a member of this team")

        self.db.add(TeamMembership(team_id=team.id, user_id=data.user_id, role=data.role))
        await self.db.commit()
        return await self._membership(team.id, data.user_id)

    async def remove_member(self, ctx: AccessContext, team_id: str, user_id: str) -> None:
        team = await self.get(team_id, ctx.organization_id)
        await self._require_leader(team.id, ctx.user_id)

        membership = await self._membership(team.id, user_id)
        if not membership:
            raise NotFoundError("User is not a member of this team")
        if membership.role == TeamRole.LEADER and await self._leader_count(team.id) <= 1:
            raise BadRequestError("A team must keep at least one leader")

        await self.db.delete(membership)
        await self.db.commit()

    async def update_member_role(
        self, ctx: AccessContext, team_id: str, user_id: str, data: TeamMemberRoleUpdate,
    ) -> TeamMembership:
        team = await self.get(team_id, ctx.organization_id)
        await self._require_leader(team.id, ctx.user_id)

        membership = await self._membership(team.id, user_id)
        if not membership:
            raise NotFoundError("User is not a member of this team")
        if (
            membership.role == TeamRole.LEADER
            and data.role != TeamRole.LEADER
            and await self._leader_count(team.id) <= 1
        ):
            raise BadRequestError("A team must keep at least one leader")

        membership.role = data.role
        await self.db.commit()
        return await self._membership(team.id, user_id)
