# access_policy.py — Task visibility & authorization rules
# Every rule about who may see or change what lives here, once:
# - visible_tasks_clause: SQL form of the visibility union (used by list queries)
# - can_view_task / can_update_task / can_delete_task: the same rules on a loaded row
# - can_manage_team_membership: team LEADER gate
#
# A task is visible to a requester iff it lives in the requester's active
# organization (or in individual mode, in no organization) AND any of:
#   a. visibility = PRIVATE and the requester created it
#   b. visibility = ORGANIZATION (organization mode only)
#   c. visibility = TEAM and its team is one of the requester's teams
#   d. the requester is the assignee

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, or_, case

from auth import ROLE_HIERARCHY, ORG_ROLE_HIERARCHY, CurrentUser
from models import Task, TaskPriority, TaskVisibility, TaskStatus, TeamRole, UserRole, OrgRole


@dataclass
class AccessContext:
    """Capability set of a requester: identity, role and tenant position."""
    user_id: str
    role: str = UserRole.USER.value
    organization_id: Optional[str] = None
    org_role: Optional[str] = None
    team_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_user(cls, user: CurrentUser) -> "AccessContext":
        return cls(
            user_id=user.id,
            role=user.role,
            organization_id=user.organization_id,
            org_role=user.org_role,
            team_ids=list(user.team_ids),
        )


def _value(v) -> Optional[str]:
    return v.value if hasattr(v, "value") else v


def is_role_at_least(role: str, minimum: UserRole) -> bool:
    try:
        return ROLE_HIERARCHY[UserRole(role)] >= ROLE_HIERARCHY[minimum]
    except (ValueError, KeyError):
        return False


def is_org_role_at_least(org_role: Optional[str], minimum: OrgRole) -> bool:
    if not org_role:
        return False
    try:
        return ORG_ROLE_HIERARCHY[OrgRole(org_role)] >= ORG_ROLE_HIERARCHY[minimum]
    except (ValueError, KeyError):
        return False


# ============================================================
# LIST FILTERING
# ============================================================

def organization_scope_clause(ctx: AccessContext):
    if ctx.organization_id:
        return Task.organization_id == ctx.organization_id
    return Task.organization_id.is_(None)


def visible_tasks_clause(ctx: AccessContext):
    """WHERE-clause selecting exactly the tasks ctx may see."""
    grants = [
        and_(Task.visibility == TaskVisibility.PRIVATE, Task.creator_id == ctx.user_id),
        Task.assigned_to_id == ctx.user_id,
    ]
    if ctx.organization_id:
        grants.append(Task.visibility == TaskVisibility.ORGANIZATION)
    if ctx.team_ids:
        grants.append(and_(
            Task.visibility == TaskVisibility.TEAM,
            Task.team_id.in_(ctx.team_ids),
        ))
    return and_(organization_scope_clause(ctx), or_(*grants))


# URGENT > HIGH > MEDIUM > LOW
PRIORITY_RANK = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}

priority_ordinal = case(
    *[(Task.priority == p, rank) for p, rank in PRIORITY_RANK.items()],
    else_=0,
)


def overdue_clause(now: Optional[datetime] = None):
    now = now or datetime.now(timezone.utc)
    return and_(
        Task.due_date.is_not(None),
        Task.due_date < now,
        Task.status != TaskStatus.COMPLETED,
    )


SORT_COLUMNS = {
    "created_at": Task.created_at,
    "updated_at": Task.updated_at,
    "due_date": Task.due_date,
    "title": Task.title,
    "status": Task.status,
    "priority": priority_ordinal,
}


def order_by_clause(sort_by: Optional[str] = None, sort_order: Optional[str] = None):
    column = SORT_COLUMNS.get(sort_by or "created_at", Task.created_at)
    if (sort_order or "desc").lower() == "asc":
        return column.asc()
    return column.desc()


# ============================================================
# SINGLE-TASK RULES
# ============================================================

def _in_scope(ctx: AccessContext, task: Task) -> bool:
    if ctx.organization_id:
        return task.organization_id == ctx.organization_id
    return task.organization_id is None


def can_view_task(ctx: AccessContext, task: Task) -> bool:
    if not _in_scope(ctx, task):
        return False
    if task.assigned_to_id == ctx.user_id:
        return True
    visibility = _value(task.visibility)
    if visibility == TaskVisibility.PRIVATE.value:
        return task.creator_id == ctx.user_id
    if visibility == TaskVisibility.ORGANIZATION.value:
        return bool(ctx.organization_id)
    if visibility == TaskVisibility.TEAM.value:
        return task.team_id is not None and task.team_id in ctx.team_ids
    return False


def can_update_task(ctx: AccessContext, task: Task) -> bool:
    if task.creator_id == ctx.user_id or task.assigned_to_id == ctx.user_id:
        return True
    return (
        ctx.organization_id is not None
        and task.organization_id == ctx.organization_id
        and is_org_role_at_least(ctx.org_role, OrgRole.MANAGER)
    )


def can_delete_task(ctx: AccessContext, task: Task) -> bool:
    return task.creator_id == ctx.user_id


def can_manage_team_membership(team_role) -> bool:
    return _value(team_role) == TeamRole.LEADER.value
