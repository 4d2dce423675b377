# admin_service.py — User management for administrators
# Every mutation here writes exactly one audit entry after it commits.
import logging
import math
from typing import Optional, Dict, Any

from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from audit_service import AuditService, AuditActor, UserAdminMetadata
from auth import AuthService, user_to_dict, MIN_PASSWORD_LENGTH
from errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from models import User, Task, UserRole, TaskStatus, AuditAction

logger = logging.getLogger("taskflow.admin")

DEFAULT_PAGE_SIZE = 20
RECENT_USERS = 5


class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.USER
    manager_id: Optional[str] = None


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    manager_id: Optional[str] = None


class SuspendRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AdminService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def _get(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _check_manager(self, user_id: Optional[str], manager_id: str) -> User:
        if user_id and manager_id == user_id:
            raise BadRequestError("User cannot be their own manager")
        manager = await self.db.get(User, manager_id)
        if not manager:
            raise BadRequestError("Manager not found")

        # Walk up the chain; meeting user_id again would close a loop
        seen = set()
        current = manager
        while user_id and current is not None and current.manager_id:
            if current.manager_id == user_id:
                raise BadRequestError("Circular management chain")
            if current.manager_id in seen:
                break
            seen.add(current.manager_id)
            current = await self.db.get(User, current.manager_id)
        return manager

    # --- Reads ---

    async def get_stats(self) -> Dict[str, Any]:
        total_users = (await self.db.execute(select(func.count(User.id)))).scalar() or 0
        active_users = (await self.db.execute(
            select(func.count(User.id)).where(User.is_active.is_(True))
        )).scalar() or 0
        by_role_rows = (await self.db.execute(
            select(User.role, func.count(User.id)).group_by(User.role)
        )).all()
        total_tasks = (await self.db.execute(select(func.count(Task.id)))).scalar() or 0
        by_status_rows = (await self.db.execute(
            select(Task.status, func.count(Task.id)).group_by(Task.status)
        )).all()
        recent = (await self.db.execute(
            select(User).order_by(User.created_at.desc()).limit(RECENT_USERS)
        )).scalars().all()

        by_role = {r.value: 0 for r in UserRole}
        by_role.update({role.value: n for role, n in by_role_rows})
        by_status = {s.value: 0 for s in TaskStatus}
        by_status.update({status.value: n for status, n in by_status_rows})

        return {
            "users": {
                "total": total_users,
                "active": active_users,
                "suspended": total_users - active_users,
                "by_role": by_role,
            },
            "tasks": {"total": total_tasks, "by_status": by_status},
            "recent_users": [user_to_dict(u) for u in recent],
        }

    async def list_users(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        conditions = []
        if role:
            conditions.append(User.role == role)
        if is_active is not None:
            conditions.append(User.is_active.is_(is_active))
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

        total = (await self.db.execute(
            select(func.count(User.id)).where(*conditions)
        )).scalar() or 0
        result = await self.db.execute(
            select(User)
            .where(*conditions)
            .order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "users": [user_to_dict(u) for u in result.scalars().all()],
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        user = await self._get(user_id)
        out = user_to_dict(user)
        if user.manager_id:
            manager = await self.db.get(User, user.manager_id)
            out["manager"] = user_to_dict(manager) if manager else None
        reports = (await self.db.execute(
            select(User).where(User.manager_id == user.id).order_by(User.name.asc())
        )).scalars().all()
        out["direct_reports"] = [{"id": r.id, "name": r.name, "email": r.email} for r in reports]
        out["task_counts"] = {
            "created": (await self.db.execute(
                select(func.count(Task.id)).where(Task.creator_id == user.id)
            )).scalar() or 0,
            "assigned": (await self.db.execute(
                select(func.count(Task.id)).where(Task.assigned_to_id == user.id)
            )).scalar() or 0,
        }
        return out

    # --- Mutations ---

    async def create_user(self, data: AdminUserCreate, actor: AuditActor, actor_role: str) -> User:
        email = data.email.lower()
        if await AuthService.get_user_by_email(email, self.db):
            raise ConflictError("Email already registered")
        if data.role == UserRole.SUPER_ADMIN and actor_role != UserRole.SUPER_ADMIN.value:
            raise ForbiddenError("Only a Super Admin can grant the Super Admin role")
        if data.manager_id:
            await self._check_manager(None, data.manager_id)

        user = User(
            email=email,
            name=data.name,
            password_hash=AuthService.hash_password(data.password),
            role=data.role,
            manager_id=data.manager_id,
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        await self.audit.log(
            "User", user.id, AuditAction.USER_CREATED, actor,
            changes={"role": {"old": None, "new": user.role.value}},
            metadata=UserAdminMetadata(action=AuditAction.USER_CREATED.value, target_email=user.email),
        )
        return user

    async def update_user(self, user_id: str, data: AdminUserUpdate, actor: AuditActor, actor_role: str) -> User:
        user = await self._get(user_id)
        updates = data.model_dump(exclude_unset=True)

        if user_id == actor.id and updates.get("role") and updates["role"] != user.role:
            raise ForbiddenError("Cannot modify your own role")
        if updates.get("role") == UserRole.SUPER_ADMIN and actor_role != UserRole.SUPER_ADMIN.value:
            raise ForbiddenError("Only a Super Admin can grant the Super Admin role")
        if updates.get("email"):
            updates["email"] = updates["email"].lower()
            if updates["email"] != user.email:
                existing = await AuthService.get_user_by_email(updates["email"], self.db)
                if existing and existing.id != user.id:
                    raise ConflictError("Email already taken")
        if updates.get("manager_id"):
            await self._check_manager(user.id, updates["manager_id"])

        changes = {}
        for key, value in updates.items():
            if key in ("name", "email", "role") and value is None:
                continue
            old = getattr(user, key)
            if old != value:
                changes[key] = {
                    "old": old.value if hasattr(old, "value") else old,
                    "new": value.value if hasattr(value, "value") else value,
                }
                setattr(user, key, value)

        await self.db.commit()
        await self.db.refresh(user)

        if changes:
            await self.audit.log(
                "User", user.id, AuditAction.USER_UPDATED, actor, changes=changes,
                metadata=UserAdminMetadata(action=AuditAction.USER_UPDATED.value, target_email=user.email),
            )
        return user

    async def suspend_user(self, user_id: str, actor: AuditActor, reason: Optional[str] = None) -> User:
        if user_id == actor.id:
            raise ForbiddenError("Cannot suspend your own account")
        user = await self._get(user_id)
        if not user.is_active:
            raise BadRequestError("User is already suspended")
        if user.role == UserRole.SUPER_ADMIN:
            raise ForbiddenError("Cannot suspend Super Admin")

        user.is_active = False
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"User {user.id[:8]} suspended by {actor.email}")

        await self.audit.log(
            "User", user.id, AuditAction.USER_SUSPENDED, actor,
            changes={"is_active": {"old": True, "new": False}},
            metadata=UserAdminMetadata(
                action=AuditAction.USER_SUSPENDED.value, target_email=user.email, reason=reason,
            ),
        )
        return user

    async def activate_user(self, user_id: str, actor: AuditActor) -> User:
        user = await self._get(user_id)
        if user.is_active:
            raise BadRequestError("User is already active")

        user.is_active = True
        await self.db.commit()
        await self.db.refresh(user)

        await self.audit.log(
            "User", user.id, AuditAction.USER_ACTIVATED, actor,
            changes={"is_active": {"old": False, "new": True}},
            metadata=UserAdminMetadata(action=AuditAction.USER_ACTIVATED.value, target_email=user.email),
        )
        return user
